"""
Request dependencies shared by the route modules.
"""
from typing import Optional

from fastapi import Header, HTTPException, Request

from ebay_ingest.container import Components


def get_components(request: Request) -> Components:
    return request.app.state.components


def get_settings(request: Request):
    return request.app.state.settings


def require_user(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Authenticated user id, supplied by the fronting auth layer."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id
