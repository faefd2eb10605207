"""Tests for sign-in, sign-out and password change."""

import httpx
import pytest

from taskflow.auth import AuthClient
from taskflow.session import SessionContext

from .mock_servers import API_KEY, BACKEND_URL

EMAIL = "bruno@example.com"
PASSWORD = "secret1"


@pytest.fixture
def auth_session():
    return SessionContext()


@pytest.fixture
async def auth(transport, backend, auth_session):
    backend.add_account(EMAIL, PASSWORD, user_id="user-0002-bbbb")
    client = AuthClient(BACKEND_URL, API_KEY, auth_session, transport=transport)
    await client.open()
    yield client
    await client.close()


class TestSignIn:
    async def test_success_starts_session(self, auth, auth_session, backend):
        result = await auth.sign_in(f"  {EMAIL} ", PASSWORD)
        assert result.ok
        assert result.data.id == "user-0002-bbbb"

        assert auth_session.is_active
        assert auth_session.current_user.email == EMAIL
        assert backend.tokens[auth_session.access_token] == "user-0002-bbbb"

    async def test_wrong_password(self, auth, auth_session):
        result = await auth.sign_in(EMAIL, "nope")
        assert not result.ok
        assert result.error.message == "Invalid email or password"
        assert result.error.status == 400
        assert not auth_session.is_active

    @pytest.mark.parametrize("email,password", [("", PASSWORD), (EMAIL, ""), ("   ", PASSWORD)])
    async def test_missing_fields_skip_request(self, auth, backend, email, password):
        result = await auth.sign_in(email, password)
        assert result.error.code == "validation"
        assert backend.requests == []

    async def test_malformed_token_response(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": True}))
        session = SessionContext()
        client = AuthClient(BACKEND_URL, API_KEY, session, transport=transport)
        await client.open()
        try:
            result = await client.sign_in(EMAIL, PASSWORD)
        finally:
            await client.close()
        assert result.error.code == "invalid_response"
        assert not session.is_active

    async def test_non_json_token_response(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, content=b"<html>captive portal</html>")
        )
        session = SessionContext()
        client = AuthClient(BACKEND_URL, API_KEY, session, transport=transport)
        await client.open()
        try:
            result = await client.sign_in(EMAIL, PASSWORD)
        finally:
            await client.close()
        assert result.error.code == "invalid_response"
        assert not session.is_active

    async def test_unreachable_backend(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = AuthClient(
            BACKEND_URL, API_KEY, SessionContext(), transport=httpx.MockTransport(refuse)
        )
        await client.open()
        try:
            result = await client.sign_in(EMAIL, PASSWORD)
        finally:
            await client.close()
        assert result.error.code == "transport_error"


class TestSignOut:
    async def test_revokes_token_and_clears_session(self, auth, auth_session, backend):
        await auth.sign_in(EMAIL, PASSWORD)
        token = auth_session.access_token

        await auth.sign_out()
        assert not auth_session.is_active
        assert token not in backend.tokens

    async def test_clears_session_even_if_backend_fails(self):
        def handler(request):
            if request.url.path.endswith("/logout"):
                return httpx.Response(500)
            return httpx.Response(200, json={
                "access_token": "tok", "user": {"id": "u1", "email": EMAIL},
            })

        session = SessionContext()
        client = AuthClient(BACKEND_URL, API_KEY, session, transport=httpx.MockTransport(handler))
        await client.open()
        try:
            assert (await client.sign_in(EMAIL, PASSWORD)).ok
            await client.sign_out()
        finally:
            await client.close()
        assert not session.is_active

    async def test_noop_when_signed_out(self, auth, backend):
        await auth.sign_out()
        assert backend.requests == []


class TestChangePassword:
    async def test_success(self, auth, auth_session, backend):
        await auth.sign_in(EMAIL, PASSWORD)

        result = await auth.change_password(PASSWORD, "better-secret", "better-secret")
        assert result.ok
        assert backend.accounts[EMAIL]["password"] == "better-secret"
        assert auth_session.is_active

        await auth.sign_out()
        assert (await auth.sign_in(EMAIL, "better-secret")).ok
        assert not (await auth.sign_in(EMAIL, PASSWORD)).ok

    @pytest.mark.parametrize("current,new,confirm,message", [
        (PASSWORD, "abc", "abc", "New password must be at least 6 characters"),
        (PASSWORD, "abcdef", "abcdeg", "New passwords do not match"),
        (PASSWORD, PASSWORD, PASSWORD, "New password must differ from the current one"),
        ("", "abcdef", "abcdef", "All fields are required"),
    ])
    async def test_local_validation(self, auth, backend, current, new, confirm, message):
        await auth.sign_in(EMAIL, PASSWORD)
        requests_before = len(backend.requests)

        result = await auth.change_password(current, new, confirm)
        assert not result.ok
        assert result.error.code == "validation"
        assert result.error.message == message
        assert len(backend.requests) == requests_before
        assert backend.accounts[EMAIL]["password"] == PASSWORD

    async def test_current_password_is_verified(self, auth, backend):
        await auth.sign_in(EMAIL, PASSWORD)

        result = await auth.change_password("wrong-one", "abcdef", "abcdef")
        assert not result.ok
        assert result.error.code == "invalid_credentials"
        assert backend.accounts[EMAIL]["password"] == PASSWORD

    async def test_requires_session(self, auth):
        result = await auth.change_password(PASSWORD, "abcdef", "abcdef")
        assert result.error.code == "no_session"
