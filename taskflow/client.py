"""
TaskFlow client: wires config, session, gateway, auth and task manager.

Lifecycle: open() -> sign_in() (loads state) -> ... -> sign_out() -> close().
"""

from __future__ import annotations

from pathlib import Path

import httpx
import structlog

from .auth import AuthClient
from .config import TaskFlowConfig, load_config
from .gateway import GatewayResult
from .logging_config import configure_logging
from .metrics import MetricsCollector
from .rest_gateway import RestGateway
from .schemas.users import SessionUser
from .session import SessionContext
from .state import TaskManager

log = structlog.get_logger()


class TaskFlowClient:
    """
    One signed-in user's view of the backend.

    `transport` is passed to every httpx client; tests use it to route
    requests to an in-process mock backend.
    """

    def __init__(
        self,
        config: TaskFlowConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        backend = config.backend
        api_key = backend.api_key
        if not api_key:
            raise ValueError(f"Missing backend API key (set {backend.api_key_env})")

        self._config = config
        self.metrics = MetricsCollector()
        self.session = SessionContext()
        self.gateway = RestGateway(
            base_url=backend.url,
            api_key=api_key,
            session=self.session,
            verify_tls=backend.verify_tls,
            request_timeout=backend.request_timeout_seconds,
            metrics=self.metrics,
            transport=transport,
        )
        self.auth = AuthClient(
            base_url=backend.url,
            api_key=api_key,
            session=self.session,
            verify_tls=backend.verify_tls,
            request_timeout=backend.request_timeout_seconds,
            transport=transport,
        )
        self.manager = TaskManager(
            self.gateway,
            self.session,
            metrics=self.metrics,
            default_sort=config.view.default_sort,
        )

    @classmethod
    def from_config_file(
        cls,
        path: str | Path,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "TaskFlowClient":
        """Load YAML config, configure logging from it and build a client."""
        config = load_config(path)
        configure_logging(config.logging.level, config.logging.format)
        return cls(config, transport=transport)

    async def open(self) -> None:
        await self.gateway.open()
        await self.auth.open()
        log.info("client.opened", backend=self._config.backend.url)

    async def close(self) -> None:
        await self.auth.close()
        await self.gateway.close()
        log.info("client.closed")

    async def sign_in(self, email: str, password: str) -> GatewayResult[SessionUser]:
        result = await self.auth.sign_in(email, password)
        if result.ok:
            await self.manager.load()
        return result

    async def sign_out(self) -> None:
        await self.auth.sign_out()
        self.manager.reset()

    async def __aenter__(self) -> "TaskFlowClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
