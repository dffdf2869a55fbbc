"""Conductor REST client for starting and counting workflow runs."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from schedwf.errors import DispatchError, TransientError
from schedwf.workflows.base import RunHandle

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("RUNNING", "PAUSED")


class ConductorClient:
    """Thin async client over the Conductor ``/workflow`` endpoints.

    Runs are tagged with ``correlationId = namespace`` so active-run counts
    can be scoped per namespace.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_token: str = "",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json, text/plain"}
        if api_token:
            headers["X-Authorization"] = api_token
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def start_workflow(
        self,
        name: str,
        version: int,
        input: dict[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> RunHandle:
        body: dict[str, Any] = {"name": name, "version": version, "input": input}
        if correlation_id:
            body["correlationId"] = correlation_id
        try:
            response = await self._client.post("/workflow", json=body)
        except httpx.HTTPError as exc:
            raise DispatchError(f"start {name} v{version} failed: {type(exc).__name__}: {exc}") from exc
        if response.status_code >= 400:
            raise DispatchError(
                f"start {name} v{version} rejected: HTTP {response.status_code} {response.text[:500]}"
            )
        # Conductor answers with the bare run id as text.
        run_id = response.text.strip().strip('"')
        if not run_id:
            raise DispatchError(f"start {name} v{version} returned an empty run id")
        logger.debug("conductor_started workflow=%s version=%s run_id=%s", name, version, run_id)
        return RunHandle(run_id=run_id, detail=f"HTTP {response.status_code}")

    async def count_active_runs(self, namespace: str, workflow_name: str) -> int:
        query = (
            f"workflowType IN ({workflow_name}) "
            f"AND status IN ({','.join(ACTIVE_STATUSES)}) "
            f"AND correlationId IN ({namespace})"
        )
        try:
            response = await self._client.get("/workflow/search", params={"query": query, "size": 0})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TransientError(f"active run lookup failed for {namespace}/{workflow_name}: {exc}") from exc
        total = payload.get("totalHits") if isinstance(payload, dict) else None
        if not isinstance(total, int) or total < 0:
            raise TransientError(f"active run lookup returned no totalHits for {namespace}/{workflow_name}")
        return total

    async def aclose(self) -> None:
        await self._client.aclose()
