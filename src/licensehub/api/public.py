"""Public license request endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from licensehub.licensing.issuance import LicenseIssuer, SubmissionData
from licensehub.licensing.registry import get_issuer

logger = logging.getLogger("licensehub.api.public")

router = APIRouter(prefix="/public", tags=["public"])


class LicenseRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    machineId: str = Field(min_length=1, max_length=50, pattern=r"^[a-zA-Z0-9]+$")
    phone: str = Field(pattern=r"^\+?[1-9]\d{6,14}$")
    shopName: str = Field(min_length=2, max_length=100)
    numberOfCashiers: int = Field(ge=1, le=50)
    email: str | None = Field(default=None, max_length=255)
    website: str | None = Field(default=None, max_length=255)  # honeypot

    @field_validator("name", "shopName")
    @classmethod
    def _no_markup(cls, value: str) -> str:
        if "<" in value or ">" in value:
            raise ValueError("contains invalid characters (< or >)")
        return value


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post("/submit-license-request", status_code=201)
async def submit_license_request(
    body: LicenseRequest,
    request: Request,
    issuer: LicenseIssuer = Depends(get_issuer),
):
    """Record a license request and issue its license in one transaction."""
    ip_address = client_ip(request)

    if body.website:
        logger.warning("Spam detected from IP %s: honeypot field filled", ip_address)
        return JSONResponse({"success": False, "message": "Spam detected"}, status_code=400)

    license_row = await issuer.create_license_with_transaction(
        SubmissionData(
            name=body.name,
            machine_id=body.machineId,
            phone=body.phone,
            shop_name=body.shopName,
            email=body.email,
            number_of_cashiers=body.numberOfCashiers,
            ip_address=ip_address,
        )
    )

    return {
        "success": True,
        "message": "License request submitted successfully",
        "data": {
            "licenseKey": license_row.license_key,
            "expiresAt": license_row.expires_at.isoformat() if license_row.expires_at else None,
        },
    }
