"""
Authentication

Resolves the calling user from a Supabase access token. Story and audio
routes depend on get_current_user_id; ownership checks happen in the
database layer with that id.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Header
from pydantic import BaseModel

from talebox.config import config
from talebox.database.client import get_supabase_client, SupabaseClientError
from talebox.utils.logging import auth_logger as logger

router = APIRouter(prefix="/api/auth", tags=["authentication"])

DEV_USER_ID = "dev-user-id"


class WhoAmIResponse(BaseModel):
    user_id: str
    dev_mode: bool


async def get_current_user_id(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> str:
    """
    Extract and verify user ID from Authorization header.

    In dev mode a request without a header runs as a fixed dev user.
    """
    if config.DEV_MODE and not authorization:
        return DEV_USER_ID

    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required"
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization header format. Use 'Bearer <token>'"
        )

    try:
        client = get_supabase_client()
        user_response = client.auth.get_user(parts[1])
    except SupabaseClientError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Authentication service unavailable: {str(e)}"
        )
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired token"
        )

    if not user_response or not user_response.user:
        raise HTTPException(
            status_code=401,
            detail="Invalid or expired token"
        )

    return str(user_response.user.id)


@router.get("/me", response_model=WhoAmIResponse)
async def who_am_i(user_id: str = Depends(get_current_user_id)):
    """Return the id the API resolves for the caller."""
    return WhoAmIResponse(user_id=user_id, dev_mode=config.DEV_MODE)
