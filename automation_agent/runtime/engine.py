"""FlowEngine — deterministic, sequential traversal of a flow graph.

Traversal rules:
  * Entry points are all TRIGGER blocks in declaration order; a graph with
    no trigger starts from its first block (the engine does not assume the
    validator already ran).
  * Depth-first, pre-order. One visited set per run: each block executes at
    most once, even when several triggers or converging edges reach it.
  * A block with no registered handler is skipped silently: no result, and
    its outgoing edges are not followed.
  * Under TraversalPolicy.CONTINUE (default) every outgoing edge is followed
    regardless of the block's status — a SKIPPED condition does NOT prune
    its successors. TraversalPolicy.GATE_CONDITIONS is the opt-in
    alternative: a CONDITION block that returns SKIPPED/FAILED is a dead end.
  * Handler exceptions are not caught. They propagate out of execute() and
    end the run; pass on_step to capture results as they are produced.

The walk uses an explicit stack and visits blocks in recursive pre-order.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum

from automation_agent.flow.models import BlockCategory, BlockType, FlowBlock, FlowEdge, FlowGraph
from automation_agent.runtime.types import (
    FlowBlockHandler,
    FlowExecutionInput,
    FlowExecutionResult,
    FlowExecutionState,
    FlowStepResult,
    FlowStepStatus,
    RunStatus,
)

logger = logging.getLogger("automation_agent.runtime.engine")

StepCallback = Callable[[FlowStepResult], Awaitable[None] | None]


class TraversalPolicy(str, Enum):
    CONTINUE = "continue"
    GATE_CONDITIONS = "gate_conditions"


class FlowEngine:
    """Executes flow graphs against a handler registry.

    No per-run state lives on self; one instance may serve concurrent runs.
    """

    def __init__(
        self,
        handlers: Mapping[BlockType, FlowBlockHandler],
        policy: TraversalPolicy = TraversalPolicy.CONTINUE,
    ) -> None:
        self._handlers = handlers
        self._policy = policy

    @property
    def policy(self) -> TraversalPolicy:
        return self._policy

    async def execute(
        self,
        graph: FlowGraph,
        input: FlowExecutionInput | None = None,
        *,
        on_step: StepCallback | None = None,
    ) -> FlowExecutionResult:
        input = input or FlowExecutionInput()
        state = FlowExecutionState()
        result = FlowExecutionResult(flow_id=graph.id)
        status = RunStatus.PENDING
        logger.debug("Flow %s %s", graph.id, status.value)

        blocks_by_id: dict[str, FlowBlock] = {b.id: b for b in graph.blocks}
        edges_by_source: dict[str, list[FlowEdge]] = defaultdict(list)
        for edge in graph.edges:
            edges_by_source[edge.from_].append(edge)

        start_blocks = graph.trigger_blocks() or graph.blocks[:1]
        visited: set[str] = set()

        status = RunStatus.RUNNING
        logger.info(
            "Flow %s %s: %d entry point(s), policy=%s",
            graph.id, status.value, len(start_blocks), self._policy.value,
        )

        for start in start_blocks:
            stack: list[FlowBlock] = [start]
            while stack:
                block = stack.pop()
                if block.id in visited:
                    continue
                visited.add(block.id)

                handler = self._handlers.get(block.type)
                if handler is None:
                    logger.debug("No handler for %s (%s); skipping", block.id, block.type.value)
                    continue

                step = await handler.handle(block, input, state)
                result.steps.append(step)
                logger.debug("Step %s → %s: %s", step.block_id, step.status.value, step.message)
                if on_step is not None:
                    maybe_awaitable = on_step(step)
                    if inspect.isawaitable(maybe_awaitable):
                        await maybe_awaitable

                if not self._should_expand(block, step):
                    logger.debug("Condition %s gated its successors", block.id)
                    continue

                # Reverse so the first declared edge is visited first.
                successors = [
                    blocks_by_id[e.to]
                    for e in edges_by_source.get(block.id, [])
                    if e.to in blocks_by_id
                ]
                stack.extend(reversed(successors))

        status = RunStatus.COMPLETE
        logger.info("Flow %s %s: %d step(s)", graph.id, status.value, len(result.steps))
        return result

    def _should_expand(self, block: FlowBlock, step: FlowStepResult) -> bool:
        if self._policy is TraversalPolicy.CONTINUE:
            return True
        return not (
            block.category is BlockCategory.CONDITION
            and step.status in (FlowStepStatus.SKIPPED, FlowStepStatus.FAILED)
        )
