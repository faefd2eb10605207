"""
End-to-end: TaskFlowClient against the mock backend.

Sign in, load, create a project and tasks, move a task through the pipeline,
read its history, then sign out.
"""

from datetime import date

import pytest
import structlog
import yaml

from taskflow.client import TaskFlowClient
from taskflow.config import TaskFlowConfig
from taskflow.schemas.common import SortOption, Status

from .mock_servers import API_KEY, BACKEND_URL

EMAIL = "ana@example.com"
PASSWORD = "secret1"


@pytest.fixture
def config(monkeypatch):
    monkeypatch.setenv("TEST_TASKFLOW_API_KEY", API_KEY)
    return TaskFlowConfig.model_validate({
        "backend": {"url": BACKEND_URL, "api_key_env": "TEST_TASKFLOW_API_KEY"},
        "view": {"default_sort": "dueDate"},
    })


@pytest.fixture
async def client(config, transport, backend):
    backend.add_account(EMAIL, PASSWORD, user_id="user-0001-aaaa")
    async with TaskFlowClient(config, transport=transport) as c:
        yield c


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("TEST_TASKFLOW_API_KEY", raising=False)
    config = TaskFlowConfig.model_validate({"backend": {"api_key_env": "TEST_TASKFLOW_API_KEY"}})
    with pytest.raises(ValueError, match="TEST_TASKFLOW_API_KEY"):
        TaskFlowClient(config)


async def test_configured_default_sort(client):
    assert client.manager.sort_by == SortOption.DUE_DATE


async def test_failed_sign_in_loads_nothing(client, backend):
    result = await client.sign_in(EMAIL, "wrong")
    assert not result.ok
    assert not client.session.is_active
    assert not any(path.startswith("/rest/") for _, path, _ in backend.requests)


async def test_sign_in_loads_existing_data(client, backend):
    backend.insert("projects", {"name": "Existing", "color": "#3881ec"})
    result = await client.sign_in(EMAIL, PASSWORD)
    assert result.ok
    assert [p.name for p in client.manager.projects] == ["Existing"]
    assert [u.email for u in client.manager.users] == [EMAIL]


async def test_user_directory_fallback(client, backend):
    backend.get_users_enabled = False
    await client.sign_in(EMAIL, PASSWORD)
    [me] = client.manager.users
    assert (me.id, me.email, me.name) == ("user-0001-aaaa", EMAIL, "ana")


async def test_full_workflow(client, backend):
    await client.sign_in(EMAIL, PASSWORD)
    manager = client.manager

    project_id = await manager.create_project("Site launch", "Q3 release")
    assert project_id
    task_id = await manager.create_task({
        "title": "Write copy",
        "project_id": project_id,
        "priority": "alta",
        "due_date": date(2025, 3, 1),
    })
    assert task_id
    assert backend.tables["tasks"][0]["created_by"] == "user-0001-aaaa"

    assert await manager.change_task_status(task_id, Status.INICIADA)
    assert await manager.change_task_status(task_id, Status.CONCLUIDA, comment="Shipped")
    assert manager.get_task(task_id).status == Status.CONCLUIDA
    assert backend.tables["tasks"][0]["status"] == "concluída"

    history = await manager.load_task_history(task_id)
    assert [(h.previous_status, h.new_status) for h in history] == [
        (None, Status.NA_FILA),
        (Status.NA_FILA, Status.INICIADA),
        (Status.INICIADA, Status.CONCLUIDA),
    ]
    assert history[-1].comment == "Shipped"

    assert manager.stats.by_status[Status.CONCLUIDA] == 1
    assert client.metrics.get("gateway_failures_total") == 0

    assert await manager.delete_project(project_id)
    assert manager.tasks == []
    assert backend.tables["tasks"] == []

    await client.sign_out()
    assert not client.session.is_active
    assert manager.projects == []


async def test_sign_out_resets_view_state(client):
    await client.sign_in(EMAIL, PASSWORD)
    client.manager.set_sort_by(SortOption.TITLE)
    client.manager.set_filters({"search": "copy"})

    await client.sign_out()
    assert client.manager.sort_by == SortOption.DUE_DATE
    assert not client.manager.filters.is_active


async def test_from_config_file(tmp_path, monkeypatch, transport, backend):
    monkeypatch.setenv("TEST_TASKFLOW_API_KEY", API_KEY)
    path = tmp_path / "taskflow.yaml"
    path.write_text(yaml.dump({
        "backend": {"url": BACKEND_URL, "api_key_env": "TEST_TASKFLOW_API_KEY"},
        "logging": {"level": "warning", "format": "text"},
    }))
    backend.add_account(EMAIL, PASSWORD)

    try:
        async with TaskFlowClient.from_config_file(path, transport=transport) as client:
            assert (await client.sign_in(EMAIL, PASSWORD)).ok
            assert client.metrics.get("requests_total", method="GET") == 2
    finally:
        structlog.reset_defaults()
