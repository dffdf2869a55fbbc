"""Unit tests for the Conductor and Hatchet engine adapters."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from schedwf.errors import DispatchError, TransientError
from schedwf.workflows import hatchet as hatchet_module
from schedwf.workflows.conductor import ConductorClient
from schedwf.workflows.hatchet import HatchetWorkflowEngine


def _client(handler) -> ConductorClient:  # type: ignore[no-untyped-def]
    return ConductorClient(
        "http://conductor.local/api/",
        api_token="secret",
        transport=httpx.MockTransport(handler),
    )


async def test_conductor_start_posts_workflow_and_returns_run_id() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        seen["token"] = request.headers.get("X-Authorization")
        return httpx.Response(200, text="run-123")

    client = _client(handler)
    handle = await client.start_workflow("invoice-run", 2, {"scheduledBy": "abc"}, correlation_id="billing")
    await client.aclose()

    assert handle.run_id == "run-123"
    assert seen["url"] == "http://conductor.local/api/workflow"
    assert seen["body"] == {
        "name": "invoice-run",
        "version": 2,
        "input": {"scheduledBy": "abc"},
        "correlationId": "billing",
    }
    assert seen["token"] == "secret"


async def test_conductor_start_http_error_raises_dispatch_error() -> None:
    client = _client(lambda request: httpx.Response(500, text="engine down"))
    with pytest.raises(DispatchError, match="HTTP 500"):
        await client.start_workflow("w", 1, {})
    await client.aclose()


async def test_conductor_start_network_error_raises_dispatch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler)
    with pytest.raises(DispatchError, match="ConnectError"):
        await client.start_workflow("w", 1, {})
    await client.aclose()


async def test_conductor_count_active_uses_search_query() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["query"] = request.url.params.get("query")
        seen["size"] = request.url.params.get("size")
        return httpx.Response(200, json={"totalHits": 3, "results": []})

    client = _client(handler)
    assert await client.count_active_runs("billing", "invoice-run") == 3
    await client.aclose()
    assert seen["path"] == "/api/workflow/search"
    assert seen["query"] == (
        "workflowType IN (invoice-run) AND status IN (RUNNING,PAUSED) AND correlationId IN (billing)"
    )
    assert seen["size"] == "0"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="unavailable"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"results": []}),
    ],
)
async def test_conductor_count_active_failures_are_transient(response: httpx.Response) -> None:
    client = _client(lambda request: response)
    with pytest.raises(TransientError):
        await client.count_active_runs("billing", "invoice-run")
    await client.aclose()


def _hatchet_client(*, create_result=None, list_result=None, create_error=None, list_error=None):  # type: ignore[no-untyped-def]
    runs = SimpleNamespace(
        aio_create=AsyncMock(return_value=create_result, side_effect=create_error),
        aio_list=AsyncMock(return_value=list_result, side_effect=list_error),
    )
    return SimpleNamespace(runs=runs)


@pytest.fixture
def task_status(monkeypatch: pytest.MonkeyPatch) -> SimpleNamespace:
    status = SimpleNamespace(QUEUED="QUEUED", RUNNING="RUNNING")
    monkeypatch.setattr(hatchet_module, "_get_task_status", lambda: status)
    return status


async def test_hatchet_start_tags_metadata_and_returns_run_id() -> None:
    result = SimpleNamespace(run=SimpleNamespace(metadata=SimpleNamespace(id="wr-1")))
    client = _hatchet_client(create_result=result)
    engine = HatchetWorkflowEngine(server_url="http://hatchet:7077", client=client)

    handle = await engine.start_workflow("invoice-run", 3, {"a": 1}, correlation_id="billing")

    assert handle.run_id == "wr-1"
    client.runs.aio_create.assert_awaited_once_with(
        workflow_name="invoice-run",
        input={"a": 1},
        additional_metadata={"workflow": "invoice-run", "version": "3", "namespace": "billing"},
    )


async def test_hatchet_start_failure_is_dispatch_error() -> None:
    client = _hatchet_client(create_error=RuntimeError("grpc unavailable"))
    engine = HatchetWorkflowEngine(server_url="http://hatchet:7077", client=client)
    with pytest.raises(DispatchError, match="grpc unavailable"):
        await engine.start_workflow("w", 1, {})


async def test_hatchet_count_active_filters_by_metadata(task_status: SimpleNamespace) -> None:
    client = _hatchet_client(list_result=SimpleNamespace(rows=[object(), object()]))
    engine = HatchetWorkflowEngine(server_url="http://hatchet:7077", client=client)

    assert await engine.count_active_runs("billing", "invoice-run") == 2
    kwargs = client.runs.aio_list.await_args.kwargs
    assert kwargs["statuses"] == [task_status.QUEUED, task_status.RUNNING]
    assert kwargs["additional_metadata"] == {"namespace": "billing", "workflow": "invoice-run"}


async def test_hatchet_count_active_pages_until_short_page(task_status: SimpleNamespace) -> None:
    client = _hatchet_client()
    client.runs.aio_list.side_effect = [
        SimpleNamespace(rows=[object()] * 2),
        SimpleNamespace(rows=[object()] * 2),
        SimpleNamespace(rows=[object()]),
    ]
    engine = HatchetWorkflowEngine(server_url="http://hatchet:7077", client=client)
    engine.list_page_size = 2

    assert await engine.count_active_runs("billing", "invoice-run") == 5
    calls = client.runs.aio_list.await_args_list
    assert [(c.kwargs["offset"], c.kwargs["limit"]) for c in calls] == [(0, 2), (2, 2), (4, 2)]
    assert len({c.kwargs["since"] for c in calls}) == 1


async def test_hatchet_count_active_failure_is_transient(task_status: SimpleNamespace) -> None:
    client = _hatchet_client(list_error=ConnectionError("down"))
    engine = HatchetWorkflowEngine(server_url="http://hatchet:7077", client=client)
    with pytest.raises(TransientError):
        await engine.count_active_runs("billing", "invoice-run")


def test_hatchet_connect_requires_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HATCHET_API_TOKEN", raising=False)
    engine = HatchetWorkflowEngine(server_url="http://hatchet:7077")
    with pytest.raises(ValueError, match="token"):
        engine.connect()


def test_server_url_to_host_port() -> None:
    assert hatchet_module._server_url_to_host_port("https://hatchet.example.com/api") == "hatchet.example.com:7077"
    assert hatchet_module._server_url_to_host_port("http://localhost:8080") == "localhost:8080"
