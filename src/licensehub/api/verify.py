"""License verification endpoint for client software (API key protected)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from licensehub.api.public import client_ip
from licensehub.auth.dependencies import require_api_key
from licensehub.licensing.registry import get_verifier
from licensehub.licensing.verification import LicenseVerifier

router = APIRouter(prefix="/v1", tags=["verification"])


class VerifyRequest(BaseModel):
    machineId: str = Field(min_length=1, max_length=128)


@router.post("/verify-license")
async def verify_license(
    body: VerifyRequest,
    request: Request,
    _key: dict = Depends(require_api_key),
    verifier: LicenseVerifier = Depends(get_verifier),
):
    """Answer whether a machine's license is currently valid."""
    result = await verifier.verify_license(body.machineId, client_ip(request))
    return JSONResponse(result.to_dict(), status_code=200 if result.valid else 404)
