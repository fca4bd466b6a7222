"""FastAPI dependencies for the transfer endpoints.

Security:
- Every endpoint except ``/transfer/available`` requires the ``X-API-Key``
  header when ``HCT_SERVER__ADMIN_API_KEY`` is set.
- If no key is configured, authentication is disabled (development mode).
"""

from __future__ import annotations

import logging
import secrets

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from home_cloud_transfer.config.settings import AppSettings
from home_cloud_transfer.transfer.orchestrator import TransferOrchestrator

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> TransferOrchestrator:
    return request.app.state.orchestrator


async def verify_api_key(
    request: Request,
    api_key: str | None = Security(api_key_header),
) -> bool:
    """Verify the admin API key from the request header.

    Args:
        request: Incoming request (used to reach the settings).
        api_key: Value of the X-API-Key header.

    Returns:
        True if authenticated.

    Raises:
        HTTPException: 401 if the key is missing or invalid.
    """
    expected_key = get_settings(request).server.admin_api_key
    if expected_key is None:
        return True

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not secrets.compare_digest(api_key, expected_key):
        logger.warning("Rejected request with invalid API key from %s", request.client)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return True
