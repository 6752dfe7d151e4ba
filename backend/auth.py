"""
API key authentication for the ledger.

The ledger is a single-book tool: API_KEY_USER1 belongs to the book owner,
who may run admin repairs.  API_KEY_USER2..5 are clerk keys that can read
and write the ledger but not reach /admin routes.
"""

import os
from functools import lru_cache
from typing import Dict

from dotenv import load_dotenv
from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

load_dotenv()

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

OWNER = "owner"
DEV_KEY = "dev-key-insecure"


@lru_cache(maxsize=1)
def get_valid_api_keys() -> Dict[str, str]:
    """Map each configured key to its role ("owner" or "clerkN")."""
    keys = {}
    owner_key = os.getenv("API_KEY_USER1")
    if owner_key:
        keys[owner_key] = OWNER
    for i in range(2, 6):
        key = os.getenv(f"API_KEY_USER{i}")
        if key:
            keys[key] = f"clerk{i}"

    if not keys:
        # Development fallback (never use in production)
        if os.getenv("ENVIRONMENT") == "development":
            keys[DEV_KEY] = OWNER
        else:
            raise ValueError("No API keys configured! Set API_KEY_USER1 in environment")

    return keys


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    """
    Resolve the X-API-Key header to a role.

    Usage in FastAPI routes:
        @app.get("/api/matches")
        async def list_all(user: str = Depends(verify_api_key)):
            ...
    """
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Include 'X-API-Key' header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    role = get_valid_api_keys().get(api_key)
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    return role


async def verify_admin_api_key(user: str = Security(verify_api_key)) -> str:
    """Owner-only routes (reconciliation and other repairs)."""
    if user != OWNER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
