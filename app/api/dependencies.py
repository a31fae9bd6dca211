from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from app.core.config import SETTINGS
from app.core.retry import StoreUnavailableError

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Seconds a client should wait before retrying after a 503
RETRY_AFTER_SECONDS = 5


def require_admin(
    api_key: Annotated[str | None, Security(api_key_header)],
) -> str:
    """Demand a configured admin API key in the X-API-Key header.

    Used as a FastAPI dependency on admin endpoints.  With no
    ADMIN_API_KEYS configured every admin call is refused.
    """
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
        )
    if not any(hmac.compare_digest(api_key, k) for k in SETTINGS.admin_api_keys):
        logger.warning("Admin access denied: invalid API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )
    return api_key


def store_unavailable(exc: StoreUnavailableError) -> HTTPException:
    """503 with Retry-After for a store that stayed down through retries."""
    logger.error("Store unavailable: %s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Storage temporarily unavailable",
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )
