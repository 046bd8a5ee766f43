"""Flow execution: engine, handler contract, registry and reference handlers."""

from automation_agent.runtime.engine import FlowEngine, TraversalPolicy
from automation_agent.runtime.handlers import build_default_registry
from automation_agent.runtime.platform import PlatformCapabilities, PlatformEvent, SimulatedPlatform
from automation_agent.runtime.registry import HandlerRegistry
from automation_agent.runtime.types import (
    FlowBlockHandler,
    FlowExecutionInput,
    FlowExecutionResult,
    FlowExecutionState,
    FlowStepResult,
    FlowStepStatus,
    RunStatus,
)

__all__ = [
    "FlowBlockHandler",
    "FlowEngine",
    "FlowExecutionInput",
    "FlowExecutionResult",
    "FlowExecutionState",
    "FlowStepResult",
    "FlowStepStatus",
    "HandlerRegistry",
    "PlatformCapabilities",
    "PlatformEvent",
    "RunStatus",
    "SimulatedPlatform",
    "TraversalPolicy",
    "build_default_registry",
]
