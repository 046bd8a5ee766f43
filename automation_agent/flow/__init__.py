"""Flow graph model and structural validation."""

from automation_agent.flow.models import (
    ALLOWED_BLOCK_TYPES,
    BLOCK_PARAM_HINTS,
    BlockCategory,
    BlockType,
    FlowBlock,
    FlowEdge,
    FlowGraph,
    FlowGraphResponse,
    IntentContext,
    IntentRequest,
    TimeWindow,
)
from automation_agent.flow.validator import is_trigger, validate_flow, validate_graph

__all__ = [
    "ALLOWED_BLOCK_TYPES",
    "BLOCK_PARAM_HINTS",
    "BlockCategory",
    "BlockType",
    "FlowBlock",
    "FlowEdge",
    "FlowGraph",
    "FlowGraphResponse",
    "IntentContext",
    "IntentRequest",
    "TimeWindow",
    "is_trigger",
    "validate_flow",
    "validate_graph",
]
