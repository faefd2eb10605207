"""
Shared fixtures: an active session, the in-memory gateway, a task manager and
the mock hosted backend served over ASGI.
"""

import httpx
import pytest

from taskflow.metrics import MetricsCollector
from taskflow.rest_gateway import RestGateway
from taskflow.schemas.users import SessionUser
from taskflow.session import SessionContext
from taskflow.state import TaskManager

from .fakes import USER_EMAIL, USER_ID, FakeGateway
from .mock_servers import API_KEY, BACKEND_URL, create_backend_app


@pytest.fixture
def session():
    s = SessionContext()
    s.start(SessionUser(id=USER_ID, email=USER_EMAIL), "token-user-0001")
    return s


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def manager(gateway, session, metrics):
    return TaskManager(gateway, session, metrics=metrics)


# --- Mock backend over ASGI ---

@pytest.fixture
def backend_app():
    return create_backend_app()


@pytest.fixture
def backend(backend_app):
    return backend_app.state.backend


@pytest.fixture
def transport(backend_app):
    return httpx.ASGITransport(app=backend_app)


@pytest.fixture
def account(backend):
    """A registered account with a live token, matching the `session` fixture."""
    backend.add_account(USER_EMAIL, "secret1", user_id=USER_ID)
    backend.tokens["token-user-0001"] = USER_ID
    return USER_ID


@pytest.fixture
async def rest_gateway(transport, session, metrics, account):
    gw = RestGateway(BACKEND_URL, API_KEY, session, metrics=metrics, transport=transport)
    await gw.open()
    yield gw
    await gw.close()
