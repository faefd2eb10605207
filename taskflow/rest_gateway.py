"""
REST gateway to the hosted backend.

Speaks the PostgREST dialect exposed under /rest/v1:
- GET    /rest/v1/<table>?select=*&order=created_at.desc
- POST   /rest/v1/<table>          (Prefer: return=representation)
- PATCH  /rest/v1/<table>?id=eq.<id>
- DELETE /rest/v1/<table>?id=eq.<id>
- POST   /rest/v1/rpc/get_users    (privileged user directory)

Row-level security on the backend scopes every query to the signed-in user,
so requests carry the session's bearer token next to the project API key.
"""

from __future__ import annotations

from typing import Any, Generic, Iterable, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from .gateway import GatewayResult
from .metrics import MetricsCollector
from .schemas.common import PartialUpdate
from .schemas.projects import Project
from .schemas.tasks import StatusHistoryCreate, StatusHistoryEntry, Task
from .schemas.users import AppUser, UserProfile
from .session import SessionContext

log = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)

REST_PREFIX = "/rest/v1"


class RestTable(Generic[M]):
    """CRUD for a single table, parsing rows into `model`."""

    def __init__(self, gateway: "RestGateway", table: str, model: type[M]):
        self._gateway = gateway
        self._table = table
        self._model = model

    async def list(self) -> GatewayResult[list[M]]:
        result = await self._gateway.request(
            "GET",
            self._table,
            params={"select": "*", "order": "created_at.desc"},
        )
        if not result.ok:
            return result
        return self._gateway.parse_rows(self._table, self._model, result.data)

    async def create(self, fields: BaseModel) -> GatewayResult[M]:
        result = await self._gateway.request(
            "POST",
            self._table,
            json=fields.model_dump(mode="json", exclude_none=True),
            prefer="return=representation",
        )
        if not result.ok:
            return result
        parsed = self._gateway.parse_rows(self._table, self._model, result.data)
        if not parsed.ok:
            return parsed
        if not parsed.data:
            return GatewayResult.failure("Insert returned no row", code="empty_response")
        return GatewayResult.success(parsed.data[0])

    async def update(self, record_id: str, fields: PartialUpdate) -> GatewayResult[None]:
        result = await self._gateway.request(
            "PATCH",
            self._table,
            params={"id": f"eq.{record_id}"},
            json=fields.changes(mode="json"),
        )
        return result if not result.ok else GatewayResult.success()

    async def delete(self, record_id: str) -> GatewayResult[None]:
        result = await self._gateway.request(
            "DELETE",
            self._table,
            params={"id": f"eq.{record_id}"},
        )
        return result if not result.ok else GatewayResult.success()


class RestGateway:
    """
    PersistenceGateway over httpx.

    Never raises for HTTP or transport failures: they are logged and turned
    into failed GatewayResults. No retries; the caller decides what to do.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: SessionContext,
        verify_tls: bool = True,
        request_timeout: int = 30,
        metrics: MetricsCollector | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._session = session
        self._verify_tls = verify_tls
        self._request_timeout = request_timeout
        self._metrics = metrics
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        self.projects: RestTable[Project] = RestTable(self, "projects", Project)
        self.tasks: RestTable[Task] = RestTable(self, "tasks", Task)

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

    # --- History ---

    async def list_status_history(self, task_id: str) -> GatewayResult[list[StatusHistoryEntry]]:
        result = await self.request(
            "GET",
            "task_status_history",
            params={
                "select": "*",
                "task_id": f"eq.{task_id}",
                "order": "created_at.asc",
            },
        )
        if not result.ok:
            return result
        return self.parse_rows("task_status_history", StatusHistoryEntry, result.data)

    async def record_status_change(
        self, entry: StatusHistoryCreate
    ) -> GatewayResult[StatusHistoryEntry]:
        result = await self.request(
            "POST",
            "task_status_history",
            json=entry.model_dump(mode="json"),
            prefer="return=representation",
        )
        if not result.ok:
            return result
        parsed = self.parse_rows("task_status_history", StatusHistoryEntry, result.data)
        if not parsed.ok:
            return parsed
        if not parsed.data:
            return GatewayResult.failure("Insert returned no row", code="empty_response")
        return GatewayResult.success(parsed.data[0])

    # --- Users ---

    async def list_users(self) -> GatewayResult[list[AppUser]]:
        result = await self.request("POST", "rpc/get_users", json={})
        if not result.ok:
            return result
        return self.parse_rows("rpc/get_users", AppUser, result.data)

    async def get_profiles(self, user_ids: Iterable[str]) -> GatewayResult[list[UserProfile]]:
        ids = sorted(set(user_ids))
        if not ids:
            return GatewayResult.success([])
        result = await self.request(
            "GET",
            "user_profiles",
            params={"select": "*", "id": f"in.({','.join(ids)})"},
        )
        if not result.ok:
            return result
        return self.parse_rows("user_profiles", UserProfile, result.data)

    # --- Plumbing ---

    def _headers(self, prefer: str | None) -> dict[str, str]:
        token = self._session.access_token or self._api_key
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {token}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> GatewayResult[Any]:
        """Issue one REST call. `data` is the decoded JSON body, or None if empty."""
        assert self._client
        url = f"{REST_PREFIX}/{path}"
        if self._metrics:
            self._metrics.inc("requests_total", method=method)
        try:
            resp = await self._client.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(prefer),
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body = _error_body(exc.response)
            log.error(
                "gateway.request_failed",
                method=method,
                path=path,
                status=exc.response.status_code,
                code=body.get("code"),
            )
            if self._metrics:
                self._metrics.inc("request_failures_total", method=method)
            return GatewayResult.failure(
                body.get("message") or f"HTTP {exc.response.status_code}",
                code=body.get("code"),
                status=exc.response.status_code,
            )
        except httpx.TransportError as exc:
            log.error("gateway.unreachable", method=method, path=path, error=str(exc))
            if self._metrics:
                self._metrics.inc("request_failures_total", method=method)
            return GatewayResult.failure(str(exc) or type(exc).__name__, code="transport_error")

        if not resp.content:
            return GatewayResult.success()
        try:
            body = resp.json()
        except ValueError:
            log.error("gateway.invalid_body", method=method, path=path, status=resp.status_code)
            if self._metrics:
                self._metrics.inc("request_failures_total", method=method)
            return GatewayResult.failure(
                f"Invalid JSON from {path}", code="invalid_response", status=resp.status_code
            )
        return GatewayResult.success(body)

    def parse_rows(self, source: str, model: type[M], rows: Any) -> GatewayResult[list[M]]:
        if rows is None:
            return GatewayResult.success([])
        if isinstance(rows, dict):
            rows = [rows]
        try:
            return GatewayResult.success([model.model_validate(r) for r in rows])
        except ValidationError as exc:
            log.error("gateway.invalid_rows", source=source, errors=exc.error_count())
            return GatewayResult.failure(f"Invalid rows from {source}", code="invalid_response")


def _error_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
