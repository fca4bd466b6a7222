"""Async HTTP client for the remote cloud API.

The client knows how to authenticate and how to move typed bodies over HTTP,
but nothing about categories or the ledger. Every call returns an
``ApiResult``; transport and HTTP failures never escape as exceptions, so the
caller decides whether to log-and-continue or abort.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from home_cloud_transfer.cloud.schemas import (
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    TokenResponse,
)

logger = logging.getLogger(__name__)

_LOGIN_PATH = "api/auth/login"
_REGISTER_PATH = "api/auth/register"
_REFRESH_PATH = "api/auth/refresh"
_DEFAULT_ERROR = "An error occurred"

type Body = BaseModel | Sequence[BaseModel] | None


@dataclass(frozen=True)
class ApiResult[T]:
    """Outcome of one remote call.

    Attributes:
        ok: Whether the call succeeded (2xx and a parseable body).
        data: Parsed response body, if one was requested.
        error_message: Remote or transport error text on failure.
        status_code: HTTP status; 0 means the request never got a response.
    """

    ok: bool
    data: T | None = None
    error_message: str | None = None
    status_code: int = 0

    @classmethod
    def success(cls, data: T | None = None, *, status_code: int = 200) -> ApiResult[T]:
        return cls(ok=True, data=data, status_code=status_code)

    @classmethod
    def failure(cls, error_message: str, *, status_code: int = 0) -> ApiResult[T]:
        return cls(ok=False, error_message=error_message, status_code=status_code)

    @property
    def unreachable(self) -> bool:
        """True when the remote could not be reached or refused our credentials."""
        return not self.ok and self.status_code in (0, 401)


@functools.cache
def _adapter(response_type: Any) -> TypeAdapter[Any]:
    """Return a cached TypeAdapter for a response type."""
    return TypeAdapter(response_type)


def _dump(body: Body) -> Any:
    """Serialize request models to camelCase JSON, omitting unset references."""
    if body is None:
        return None
    if isinstance(body, BaseModel):
        return body.model_dump(mode="json", by_alias=True, exclude_none=True)
    return [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in body]


def _error_message(response: httpx.Response) -> str:
    """Extract a human readable error from a failed response.

    Args:
        response: Non-success HTTP response.

    Returns:
        The ``error_message`` field of a JSON body, the raw body, or the reason phrase.
    """
    text = response.text
    if not text:
        return response.reason_phrase or _DEFAULT_ERROR
    try:
        payload = response.json()
    except ValueError:
        return text
    if isinstance(payload, dict) and payload.get("error_message"):
        return str(payload["error_message"])
    return text


class CloudApiClient:
    """Authenticated client for the multi-tenant cloud service.

    Use as an async context manager, or call ``aclose`` when done:

        async with CloudApiClient(base_url="https://app.example.com") as client:
            await client.login(email, password)
            result = await client.get("api/v1/locations", list[RemoteNamed])
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Root URL of the cloud service.
            timeout_seconds: Per-request timeout.
            transport: Optional httpx transport (tests inject a mock here).
        """
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            timeout=timeout_seconds,
            transport=transport,
        )
        self._access_token: str | None = None
        self._refresh_token: str | None = None
        self._account_email: str | None = None
        self._refresh_lock = asyncio.Lock()

    async def __aenter__(self) -> CloudApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._http.aclose()

    @property
    def base_url(self) -> str:
        return str(self._http.base_url)

    @property
    def account_email(self) -> str | None:
        return self._account_email

    @property
    def session_credential(self) -> str | None:
        """Refresh token that a later process can hand to ``restore_session``."""
        return self._refresh_token

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    async def login(self, email: str, password: str) -> ApiResult[TokenResponse]:
        """Authenticate with an existing cloud account."""
        body = LoginRequest(email=email, password=password)
        return await self._authenticate(_LOGIN_PATH, body, email=email)

    async def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
    ) -> ApiResult[TokenResponse]:
        """Create a cloud account and authenticate with it."""
        body = RegisterRequest(
            email=email,
            password=password,
            confirm_password=password,
            first_name=first_name,
            last_name=last_name,
        )
        return await self._authenticate(_REGISTER_PATH, body, email=email)

    async def restore_session(self, credential: str, *, email: str | None = None) -> bool:
        """Restore authentication from a stored refresh token.

        Args:
            credential: Refresh token saved by an earlier process.
            email: Account email recorded alongside the credential.

        Returns:
            True if a fresh access token was obtained. On failure the previous
            tokens are left untouched.
        """
        previous = (self._access_token, self._refresh_token)
        self._refresh_token = credential
        if await self._refresh(stale_access_token=self._access_token):
            if email:
                self._account_email = email
            return True
        self._access_token, self._refresh_token = previous
        return False

    async def get[T](self, path: str, response_type: type[T] | Any) -> ApiResult[T]:
        """GET a resource and parse it as ``response_type``."""
        return await self._execute("GET", path, body=None, response_type=response_type)

    async def post[T](
        self,
        path: str,
        body: Body,
        response_type: type[T] | Any = None,
    ) -> ApiResult[T]:
        """POST a body; parse the response only when ``response_type`` is given."""
        return await self._execute("POST", path, body=body, response_type=response_type)

    async def put[T](
        self,
        path: str,
        body: Body,
        response_type: type[T] | Any = None,
    ) -> ApiResult[T]:
        """PUT a body; parse the response only when ``response_type`` is given."""
        return await self._execute("PUT", path, body=body, response_type=response_type)

    def _auth_headers(self) -> dict[str, str]:
        if self._access_token is None:
            return {}
        return {"Authorization": f"Bearer {self._access_token}"}

    async def _authenticate(
        self,
        path: str,
        body: BaseModel,
        *,
        email: str,
    ) -> ApiResult[TokenResponse]:
        try:
            response = await self._http.post(path, json=_dump(body))
        except httpx.HTTPError as exc:
            logger.error("Cloud authentication failed for %s: %r", email, exc)
            return ApiResult.failure(f"Connection failed: {exc}")

        result: ApiResult[TokenResponse] = self._to_result(response, TokenResponse)
        if result.ok and result.data is not None:
            self._access_token = result.data.access_token
            self._refresh_token = result.data.refresh_token
            self._account_email = email
        return result

    async def _execute(
        self,
        method: str,
        path: str,
        *,
        body: Body,
        response_type: Any,
    ) -> ApiResult[Any]:
        payload = _dump(body)
        token = self._access_token
        try:
            response = await self._http.request(
                method,
                path,
                json=payload,
                headers=self._auth_headers(),
            )
            if response.status_code == httpx.codes.UNAUTHORIZED and await self._refresh(
                stale_access_token=token,
            ):
                response = await self._http.request(
                    method,
                    path,
                    json=payload,
                    headers=self._auth_headers(),
                )
        except httpx.HTTPError as exc:
            logger.warning("Cloud %s %s failed: %r", method, path, exc)
            return ApiResult.failure(f"Connection failed: {exc}")
        return self._to_result(response, response_type)

    async def _refresh(self, *, stale_access_token: str | None) -> bool:
        """Exchange the refresh token for a new access token (single flight).

        Args:
            stale_access_token: Access token the caller saw rejected. If another
                task already replaced it, no second refresh is attempted.

        Returns:
            True if a usable access token is now available.
        """
        async with self._refresh_lock:
            if self._access_token is not None and self._access_token != stale_access_token:
                return True
            if not self._refresh_token:
                return False
            body = RefreshTokenRequest(refresh_token=self._refresh_token)
            try:
                response = await self._http.post(_REFRESH_PATH, json=_dump(body))
            except httpx.HTTPError as exc:
                logger.error("Cloud token refresh failed: %r", exc)
                return False

            result: ApiResult[TokenResponse] = self._to_result(response, TokenResponse)
            if not result.ok or result.data is None:
                logger.warning("Cloud token refresh failed with status %s", response.status_code)
                return False
            self._access_token = result.data.access_token
            self._refresh_token = result.data.refresh_token
            return True

    @staticmethod
    def _to_result(response: httpx.Response, response_type: Any) -> ApiResult[Any]:
        status = response.status_code
        if not response.is_success:
            return ApiResult.failure(_error_message(response), status_code=status)
        if response_type is None:
            return ApiResult.success(status_code=status)
        if not response.content:
            return ApiResult.failure("Empty response", status_code=status)
        try:
            data = _adapter(response_type).validate_python(response.json())
        except (ValueError, ValidationError) as exc:
            return ApiResult.failure(f"Unexpected response: {exc}", status_code=status)
        return ApiResult.success(data, status_code=status)
