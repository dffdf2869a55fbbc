"""Workflow engine adapters, concurrency oracle and trigger dispatcher."""

from schedwf.workflows.base import RunHandle, WorkflowEngine
from schedwf.workflows.conductor import ConductorClient
from schedwf.workflows.dispatcher import DispatchResult, TriggerDispatcher
from schedwf.workflows.hatchet import HatchetWorkflowEngine
from schedwf.workflows.oracle import ConcurrencyOracle

__all__ = [
    "ConcurrencyOracle",
    "ConductorClient",
    "DispatchResult",
    "HatchetWorkflowEngine",
    "RunHandle",
    "TriggerDispatcher",
    "WorkflowEngine",
]
