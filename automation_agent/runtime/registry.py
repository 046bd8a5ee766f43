"""HandlerRegistry — typed lookup from BlockType to an executable capability.

Handlers are owned and constructed by the embedding application (they need
network, sensors, notification surfaces). The engine only needs the lookup.

Usage:
    registry = HandlerRegistry()
    registry.register(BlockType.PLAY_SOUND_ACTION, MySoundHandler(player))
    engine = FlowEngine(registry)

A block type with no registered handler is a silent no-op during execution.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping

from automation_agent.flow.models import BlockType
from automation_agent.runtime.types import FlowBlockHandler

logger = logging.getLogger("automation_agent.runtime.registry")


class HandlerRegistry(Mapping[BlockType, FlowBlockHandler]):
    """Read-mostly mapping of BlockType → FlowBlockHandler.

    Re-registering a block type replaces the previous handler.
    """

    def __init__(self) -> None:
        self._handlers: dict[BlockType, FlowBlockHandler] = {}

    @classmethod
    def from_mapping(cls, mapping: Mapping[BlockType, FlowBlockHandler]) -> HandlerRegistry:
        registry = cls()
        for block_type, handler in mapping.items():
            registry.register(block_type, handler)
        return registry

    def register(self, block_type: BlockType, handler: FlowBlockHandler) -> None:
        if not isinstance(block_type, BlockType):
            raise TypeError(f"block_type must be a BlockType, got {block_type!r}")
        if not callable(getattr(handler, "handle", None)):
            raise TypeError(f"{type(handler).__name__} has no handle() method")
        if block_type in self._handlers:
            logger.debug("Replacing handler for %s", block_type.value)
        self._handlers[block_type] = handler

    def unregister(self, block_type: BlockType) -> None:
        self._handlers.pop(block_type, None)

    def block_types(self) -> list[BlockType]:
        """Registered block types in catalog order."""
        return [t for t in BlockType if t in self._handlers]

    def __getitem__(self, block_type: BlockType) -> FlowBlockHandler:
        return self._handlers[block_type]

    def __iter__(self) -> Iterator[BlockType]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)
