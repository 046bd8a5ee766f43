"""Structural acceptance gate for flow graphs.

Every graph passes through validate_flow() before it is trusted — before it
is returned to a synthesis caller, and before the HTTP layer executes it.

Rules, checked in order; the first violation raises FlowValidationError:
  blank_block_id          every block has a non-blank id
  duplicate_block_id      block ids are unique
  unsupported_block_type  every type belongs to the BlockType catalog
  dangling_edge           every edge endpoint references an existing block
  missing_trigger         at least one block is a trigger

The validator never repairs a graph. It is a pure check with no side effects.
"""

from __future__ import annotations

from typing import Any

from automation_agent.errors import FlowValidationError
from automation_agent.flow.models import (
    ALLOWED_BLOCK_TYPES,
    BlockCategory,
    BlockType,
    FlowGraph,
    FlowGraphResponse,
)


def is_trigger(block_type: Any) -> bool:
    """True when `block_type` marks a traversal entry point.

    A BlockType answers by category. Text that never became a BlockType
    (e.g. a graph built with model_construct) falls back to a name match.
    """
    if isinstance(block_type, BlockType):
        return block_type.category is BlockCategory.TRIGGER
    return "trigger" in str(block_type).lower()


def _type_name(block_type: Any) -> str:
    return block_type.value if isinstance(block_type, BlockType) else str(block_type)


def validate_graph(graph: FlowGraph) -> None:
    """Raise FlowValidationError if `graph` violates any structural rule."""
    for block in graph.blocks:
        if not block.id or not block.id.strip():
            raise FlowValidationError("blank_block_id", "Block id missing")

    seen: set[str] = set()
    for block in graph.blocks:
        if block.id in seen:
            raise FlowValidationError(
                "duplicate_block_id", f"Duplicate block id {block.id}"
            )
        seen.add(block.id)

    for block in graph.blocks:
        if _type_name(block.type) not in ALLOWED_BLOCK_TYPES:
            raise FlowValidationError(
                "unsupported_block_type",
                f"Unsupported block type {_type_name(block.type)}",
            )

    for edge in graph.edges:
        if edge.from_ not in seen:
            raise FlowValidationError(
                "dangling_edge", f"Edge source {edge.from_} missing"
            )
        if edge.to not in seen:
            raise FlowValidationError(
                "dangling_edge", f"Edge target {edge.to} missing"
            )

    if not any(is_trigger(block.type) for block in graph.blocks):
        raise FlowValidationError("missing_trigger", "No trigger blocks found")


def validate_flow(response: FlowGraphResponse) -> None:
    """Validate the graph carried by a synthesis response."""
    validate_graph(response.graph)
