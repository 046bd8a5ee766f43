"""Automation agent — natural-language intent to executable flow graphs.

Entry points:
    FlowSynthesisService.synthesize(request) → FlowGraphResponse (validated)
    FlowEngine(registry).execute(graph, input) → FlowExecutionResult
    build_default_registry() → HandlerRegistry with the reference handlers

The HTTP API (automation_agent.api) and the CLI (automation_agent.cli) are
thin surfaces over these two subsystems.
"""

from automation_agent.errors import (
    AutomationAgentError,
    FlowValidationError,
    MalformedResponseError,
    ProviderError,
)
from automation_agent.flow import (
    BlockCategory,
    BlockType,
    FlowBlock,
    FlowEdge,
    FlowGraph,
    FlowGraphResponse,
    IntentContext,
    IntentRequest,
    validate_flow,
    validate_graph,
)
from automation_agent.runtime import (
    FlowEngine,
    FlowExecutionInput,
    FlowExecutionResult,
    FlowExecutionState,
    FlowStepResult,
    FlowStepStatus,
    HandlerRegistry,
    TraversalPolicy,
    build_default_registry,
)
from automation_agent.synthesis import FlowSynthesisService

__all__ = [
    # Errors
    "AutomationAgentError",
    "FlowValidationError",
    "MalformedResponseError",
    "ProviderError",
    # Flow model
    "BlockCategory",
    "BlockType",
    "FlowBlock",
    "FlowEdge",
    "FlowGraph",
    "FlowGraphResponse",
    "IntentContext",
    "IntentRequest",
    "validate_flow",
    "validate_graph",
    # Runtime
    "FlowEngine",
    "FlowExecutionInput",
    "FlowExecutionResult",
    "FlowExecutionState",
    "FlowStepResult",
    "FlowStepStatus",
    "HandlerRegistry",
    "TraversalPolicy",
    "build_default_registry",
    # Synthesis
    "FlowSynthesisService",
]
