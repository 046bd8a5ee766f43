"""Execution value types and the handler contract.

FlowExecutionInput  — runtime signals (string → string metadata) shared by
                      every handler in a run: local_time, battery_percent,
                      context, trigger, step_count, activity, location, ...
FlowExecutionState  — mutable variables owned by one run
FlowStepResult      — exactly one per executed block
FlowExecutionResult — ordered step results of one run
FlowBlockHandler    — capability contract implemented by the embedding app
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

from automation_agent.flow.models import FlowBlock


class FlowStepStatus(str, Enum):
    SUCCESS = "SUCCESS"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class RunStatus(str, Enum):
    """Lifecycle of one execute() call. Never persisted."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETE = "COMPLETE"


@dataclass(frozen=True)
class FlowExecutionInput:
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class FlowExecutionState:
    variables: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FlowStepResult:
    block_id: str
    status: FlowStepStatus
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"block_id": self.block_id, "status": self.status.value, "message": self.message}


@dataclass
class FlowExecutionResult:
    """Step results in visitation order. No aggregate status is computed."""

    flow_id: str
    steps: list[FlowStepResult] = field(default_factory=list)

    def step_for(self, block_id: str) -> FlowStepResult | None:
        return next((s for s in self.steps if s.block_id == block_id), None)

    def to_dict(self) -> dict:
        return {"flow_id": self.flow_id, "steps": [s.to_dict() for s in self.steps]}


@runtime_checkable
class FlowBlockHandler(Protocol):
    """Executes one block type.

    Must resolve to exactly one FlowStepResult or raise. Raising terminates
    the whole run; logical failures (condition not met, non-2xx webhook)
    are reported as SKIPPED / FAILED instead.
    """

    async def handle(
        self,
        block: FlowBlock,
        input: FlowExecutionInput,
        state: FlowExecutionState,
    ) -> FlowStepResult:
        ...
