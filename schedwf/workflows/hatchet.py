"""Hatchet-backed workflow engine.

hatchet-sdk is an optional extra and is imported only when this engine
connects.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any

from schedwf.errors import DispatchError, TransientError
from schedwf.workflows.base import RunHandle

logger = logging.getLogger(__name__)


def _get_hatchet():  # type: ignore[no-untyped-def]
    from hatchet_sdk import Hatchet
    from hatchet_sdk.config import ClientConfig, ClientTLSConfig

    return Hatchet, ClientConfig, ClientTLSConfig


def _get_task_status():  # type: ignore[no-untyped-def]
    from hatchet_sdk.clients.rest.models.v1_task_status import V1TaskStatus

    return V1TaskStatus


def _server_url_to_host_port(server_url: str) -> str:
    """Convert http://host:port to host:port (gRPC defaults to 7077)."""
    rest = server_url.split("://", 1)[-1].split("/", 1)[0]
    return rest if ":" in rest else f"{rest}:7077"


def _run_id(result: Any) -> str:
    run = getattr(result, "run", None)
    meta = getattr(run, "metadata", None) or getattr(result, "metadata", None)
    return str(getattr(meta, "id", "") or getattr(result, "workflow_run_id", "") or "")


class HatchetWorkflowEngine:
    """Start runs by workflow name and count QUEUED/RUNNING runs by metadata."""

    list_page_size = 100

    def __init__(
        self,
        *,
        server_url: str,
        namespace: str = "default",
        api_token: str = "",
        grpc_host_port: str = "",
        grpc_tls_strategy: str = "tls",
        active_lookback_hours: int = 24,
        client: Any = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.namespace = namespace
        self._api_token = api_token
        self._grpc_host_port = grpc_host_port
        self._grpc_tls_strategy = grpc_tls_strategy
        self._lookback = timedelta(hours=active_lookback_hours)
        self._hatchet: Any = client

    def connect(self) -> None:
        if self._hatchet is not None:
            return
        token = self._api_token or os.environ.get("HATCHET_API_TOKEN", "")
        if not token:
            raise ValueError("Hatchet API token required: set engine.hatchet.api_token or HATCHET_API_TOKEN")
        hatchet_cls, client_config_cls, client_tls_config_cls = _get_hatchet()
        client_config = client_config_cls(
            host_port=self._grpc_host_port or _server_url_to_host_port(self.server_url),
            server_url=self.server_url,
            token=token,
            namespace=self.namespace,
            tls_config=client_tls_config_cls(strategy=self._grpc_tls_strategy),
        )
        self._hatchet = hatchet_cls(config=client_config)
        logger.info("Connected to Hatchet at %s", self.server_url)

    async def start_workflow(
        self,
        name: str,
        version: int,
        input: dict[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> RunHandle:
        # Hatchet has no per-call version pinning; the version travels as metadata.
        metadata = {"workflow": name, "version": str(version)}
        if correlation_id:
            metadata["namespace"] = correlation_id
        try:
            self.connect()
            result = await self._hatchet.runs.aio_create(
                workflow_name=name,
                input=input,
                additional_metadata=metadata,
            )
        except Exception as exc:
            raise DispatchError(f"start {name} failed: {type(exc).__name__}: {exc}") from exc
        run_id = _run_id(result)
        if not run_id:
            raise DispatchError(f"start {name} returned no run id")
        return RunHandle(run_id=run_id)

    async def count_active_runs(self, namespace: str, workflow_name: str) -> int:
        try:
            self.connect()
            status_cls = _get_task_status()
            since = datetime.now(timezone.utc) - self._lookback
            total = 0
            while True:
                runs = await self._hatchet.runs.aio_list(
                    since=since,
                    offset=total,
                    limit=self.list_page_size,
                    statuses=[status_cls.QUEUED, status_cls.RUNNING],
                    additional_metadata={"namespace": namespace, "workflow": workflow_name},
                )
                rows = runs if isinstance(runs, list) else (getattr(runs, "rows", None) or [])
                total += len(rows)
                if len(rows) < self.list_page_size:
                    return total
        except Exception as exc:
            raise TransientError(f"active run lookup failed for {namespace}/{workflow_name}: {exc}") from exc

    async def aclose(self) -> None:
        self._hatchet = None
