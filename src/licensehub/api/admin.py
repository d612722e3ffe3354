"""Admin endpoints: login and license administration (JWT protected)."""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field

from licensehub.auth.admins import authenticate_admin
from licensehub.auth.dependencies import TOKEN_COOKIE, get_current_admin
from licensehub.auth.jwt import create_access_token
from licensehub.config import get_settings
from licensehub.licensing.issuance import LicenseIssuer
from licensehub.licensing.registry import get_issuer, get_status_manager
from licensehub.licensing.status import LicenseStatusManager

logger = logging.getLogger("licensehub.api.admin")

router = APIRouter(prefix="/admin", tags=["admin"])


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class StatusChangeRequest(BaseModel):
    status: Literal["active", "inactive", "revoked"]
    reason: str | None = Field(default=None, max_length=1000)


class RevokeRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


@router.post("/auth/login")
async def login(body: LoginRequest, response: Response):
    """Exchange admin credentials for an access token."""
    admin = await authenticate_admin(body.username, body.password)
    if admin is None:
        raise HTTPException(401, "Invalid username or password")

    token = create_access_token(admin.id, admin.username)
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        samesite="strict",
        max_age=get_settings().security.session_expiry_hours * 3600,
    )
    logger.info("Admin %s logged in", admin.username)
    return {"success": True, "accessToken": token, "admin": {"id": admin.id, "username": admin.username}}


@router.get("/licenses")
async def list_machine_licenses(
    machine_id: str = Query(alias="machineId", min_length=1),
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    _admin: dict = Depends(get_current_admin),
    issuer: LicenseIssuer = Depends(get_issuer),
):
    """License history for one machine, newest first."""
    rows, total = await issuer.get_licenses_by_machine_id(machine_id, limit=limit, offset=offset)
    return {
        "success": True,
        "data": [row.to_dict() for row in rows],
        "pagination": {"limit": limit, "offset": offset, "total": total},
    }


@router.get("/licenses/{license_id}")
async def get_license(
    license_id: int,
    _admin: dict = Depends(get_current_admin),
    manager: LicenseStatusManager = Depends(get_status_manager),
):
    """One license with its full status history."""
    row = await manager.get_license(license_id)
    if row is None:
        raise HTTPException(404, "License not found")
    return {
        "success": True,
        "data": row.to_dict(),
        "history": await manager.get_status_history(license_id),
    }


@router.patch("/licenses/{license_id}/status")
async def update_license_status(
    license_id: int,
    body: StatusChangeRequest,
    admin: dict = Depends(get_current_admin),
    manager: LicenseStatusManager = Depends(get_status_manager),
):
    """Activate, deactivate or revoke a license."""
    row = await manager.update_license_status(
        license_id, body.status, admin["admin_id"], body.reason
    )
    if row is None:
        raise HTTPException(404, "License not found")
    return {"success": True, "data": row.to_dict()}


@router.post("/licenses/{license_id}/revoke")
async def revoke_license(
    license_id: int,
    body: RevokeRequest | None = None,
    admin: dict = Depends(get_current_admin),
    manager: LicenseStatusManager = Depends(get_status_manager),
):
    """Permanently revoke a license."""
    reason = body.reason if body else None
    row = await manager.revoke_license(license_id, admin["admin_id"], reason)
    if row is None:
        raise HTTPException(404, "License not found")
    return {"success": True, "data": row.to_dict()}
