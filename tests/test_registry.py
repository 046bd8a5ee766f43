"""HandlerRegistry: typed registration and Mapping behaviour."""

from __future__ import annotations

import pytest

from automation_agent.flow.models import BlockType
from automation_agent.runtime import FlowBlockHandler, FlowStepResult, FlowStepStatus, HandlerRegistry


class _Handler:
    async def handle(self, block, input, state):
        return FlowStepResult(block.id, FlowStepStatus.SUCCESS)


class TestHandlerRegistry:
    def test_register_and_lookup(self):
        registry = HandlerRegistry()
        handler = _Handler()
        registry.register(BlockType.PLAY_SOUND_ACTION, handler)

        assert registry[BlockType.PLAY_SOUND_ACTION] is handler
        assert registry.get(BlockType.CAMERA) is None
        assert BlockType.PLAY_SOUND_ACTION in registry
        assert len(registry) == 1

    def test_reregister_replaces(self):
        registry = HandlerRegistry()
        first, second = _Handler(), _Handler()
        registry.register(BlockType.CAMERA, first)
        registry.register(BlockType.CAMERA, second)
        assert registry[BlockType.CAMERA] is second
        assert len(registry) == 1

    def test_unregister(self):
        registry = HandlerRegistry.from_mapping({BlockType.CAMERA: _Handler()})
        registry.unregister(BlockType.CAMERA)
        registry.unregister(BlockType.CAMERA)
        assert BlockType.CAMERA not in registry

    def test_block_types_in_catalog_order(self):
        registry = HandlerRegistry.from_mapping(
            {
                BlockType.BRANCH_SELECTOR: _Handler(),
                BlockType.MANUAL_QUICK_TRIGGER: _Handler(),
                BlockType.CAMERA: _Handler(),
            }
        )
        assert registry.block_types() == [
            BlockType.MANUAL_QUICK_TRIGGER,
            BlockType.CAMERA,
            BlockType.BRANCH_SELECTOR,
        ]

    def test_rejects_wire_name_key(self):
        with pytest.raises(TypeError, match="BlockType"):
            HandlerRegistry().register("Camera", _Handler())  # type: ignore[arg-type]

    def test_rejects_object_without_handle(self):
        with pytest.raises(TypeError, match="handle"):
            HandlerRegistry().register(BlockType.CAMERA, object())  # type: ignore[arg-type]

    def test_handler_satisfies_protocol(self):
        assert isinstance(_Handler(), FlowBlockHandler)
