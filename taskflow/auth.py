"""
Auth client for the hosted backend's auth service (/auth/v1).

Handles:
- Email/password sign-in, which starts the SessionContext
- Sign-out, which always clears the local session
- Password change with local checks and re-verification of the current password
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from .gateway import GatewayResult
from .schemas.users import SessionUser
from .session import SessionContext

log = structlog.get_logger()

AUTH_PREFIX = "/auth/v1"
MIN_PASSWORD_LENGTH = 6


class _TokenResponse(BaseModel):
    access_token: str
    user: SessionUser


class AuthClient:
    """Signs users in and out and keeps the SessionContext in step."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: SessionContext,
        verify_tls: bool = True,
        request_timeout: int = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._session = session
        self._verify_tls = verify_tls
        self._request_timeout = request_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._request_timeout),
            verify=self._verify_tls,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # --- Sign in / out ---

    async def sign_in(self, email: str, password: str) -> GatewayResult[SessionUser]:
        email = (email or "").strip()
        if not email or not password:
            return GatewayResult.failure("Email and password are required", code="validation")

        result = await self._password_grant(email, password)
        if not result.ok:
            return result
        token: _TokenResponse = result.data
        self._session.start(token.user, token.access_token)
        log.info("auth.signed_in", user_id=token.user.id)
        return GatewayResult.success(token.user)

    async def sign_out(self) -> None:
        """Revoke the token server-side (best effort) and clear the session."""
        if self._session.access_token:
            result = await self._call(
                "POST", "logout", token=self._session.access_token
            )
            if not result.ok:
                log.warning("auth.sign_out_remote_failed", error=result.error.message)
        self._session.clear()

    # --- Password ---

    async def change_password(
        self,
        current_password: str,
        new_password: str,
        confirm_password: str,
    ) -> GatewayResult[None]:
        user = self._session.current_user
        if user is None:
            return GatewayResult.failure("Not signed in", code="no_session")
        if not current_password or not new_password or not confirm_password:
            return GatewayResult.failure("All fields are required", code="validation")
        if new_password != confirm_password:
            return GatewayResult.failure("New passwords do not match", code="validation")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            return GatewayResult.failure(
                f"New password must be at least {MIN_PASSWORD_LENGTH} characters",
                code="validation",
            )
        if new_password == current_password:
            return GatewayResult.failure(
                "New password must differ from the current one", code="validation"
            )

        verified = await self._password_grant(user.email, current_password)
        if not verified.ok:
            return GatewayResult.failure("Current password is incorrect", code="invalid_credentials")
        token: _TokenResponse = verified.data

        result = await self._call(
            "PUT", "user", json={"password": new_password}, token=token.access_token
        )
        if not result.ok:
            return result
        self._session.start(token.user, token.access_token)
        log.info("auth.password_changed", user_id=user.id)
        return GatewayResult.success()

    # --- Plumbing ---

    async def _password_grant(self, email: str, password: str) -> GatewayResult[_TokenResponse]:
        result = await self._call(
            "POST",
            "token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if not result.ok:
            return result
        try:
            return GatewayResult.success(_TokenResponse.model_validate(result.data))
        except ValidationError:
            log.error("auth.invalid_token_response")
            return GatewayResult.failure("Invalid token response", code="invalid_response")

    async def _call(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        token: str | None = None,
    ) -> GatewayResult[Any]:
        assert self._client
        headers = {"apikey": self._api_key}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            resp = await self._client.request(
                method,
                f"{AUTH_PREFIX}/{path}",
                params=params,
                json=json,
                headers=headers,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            log.warning("auth.request_failed", path=path, status=status)
            if path == "token" and status in (400, 401):
                message = "Invalid email or password"
            else:
                message = f"HTTP {status}"
            return GatewayResult.failure(message, code="auth_error", status=status)
        except httpx.TransportError as exc:
            log.error("auth.unreachable", path=path, error=str(exc))
            return GatewayResult.failure(str(exc) or type(exc).__name__, code="transport_error")

        if not resp.content:
            return GatewayResult.success()
        try:
            body = resp.json()
        except ValueError:
            log.error("auth.invalid_body", path=path, status=resp.status_code)
            return GatewayResult.failure(
                f"Invalid JSON from auth/{path}", code="invalid_response", status=resp.status_code
            )
        return GatewayResult.success(body)
