"""Authentication utilities"""

from typing import Optional
from fastapi import HTTPException, Header
from care_scheduling.config import settings


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Verify API key from header"""
    if not x_api_key:
        raise HTTPException(
            status_code=401,
            detail="API key required"
        )

    if x_api_key not in settings.get_api_keys() and not is_admin_key(x_api_key):
        raise HTTPException(
            status_code=401,
            detail="Invalid API key"
        )

    return x_api_key


async def verify_admin_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Verify the key and require admin privileges (refresh, credentialing)"""
    api_key = await verify_api_key(x_api_key)
    if not is_admin_key(api_key):
        raise HTTPException(
            status_code=403,
            detail="Admin API key required"
        )
    return api_key


def is_admin_key(api_key: str) -> bool:
    """Check if API key has admin privileges"""
    return api_key in settings.get_admin_api_keys()
