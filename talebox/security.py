"""
Security utilities for the Talebox API.

The worker and admin endpoints are called by schedulers and operators, not
end users; they are protected by a shared secret.
"""

import hmac
from typing import Optional

from fastapi import HTTPException, Header, Depends

from talebox.config import config


def get_worker_token(
    x_worker_secret: Optional[str] = Header(None, alias="X-Worker-Secret"),
    authorization: Optional[str] = Header(None)
) -> Optional[str]:
    """
    Extract the worker secret from headers.
    Supports both X-Worker-Secret header and Bearer token.
    """
    if x_worker_secret:
        return x_worker_secret.strip()

    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip()

    return None


async def verify_worker_secret(
    token: Optional[str] = Depends(get_worker_token)
) -> str:
    """
    Check the caller against STORY_WORKER_SECRET (falling back to CRON_SECRET).

    There is no dev-mode bypass: without a configured secret the endpoints
    refuse to run.
    """
    expected = config.worker_secret
    if not expected:
        raise HTTPException(
            status_code=500,
            detail="STORY_WORKER_SECRET not configured"
        )

    if not token or not hmac.compare_digest(token.encode(), expected.encode()):
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return token
