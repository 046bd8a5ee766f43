"""Synthesis gateway — one provider call per intent, JSON graph out.

build_prompt() is deterministic: the same IntentRequest always yields the
same prompt text. It embeds the intent, the device capabilities, the exact
JSON schema the generator must return, the trigger-first rule, and the
closed block catalog with parameter conventions (from BLOCK_PARAM_HINTS).

FlowGateway.generate_flow() calls the ReasoningEngine exactly once. There is
no retry/backoff on transient provider failures; callers that want one wrap
the call themselves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from automation_agent.errors import MalformedResponseError, ProviderError
from automation_agent.flow.models import (
    BLOCK_PARAM_HINTS,
    BlockCategory,
    BlockType,
    FlowGraph,
    IntentRequest,
)
from automation_agent.reasoning import Message, ReasoningEngine
from automation_agent.synthesis.extract import parse_graph

logger = logging.getLogger("automation_agent.synthesis.gateway")

SYSTEM_PROMPT = (
    "You are an automation architect returning strict JSON for mobile automation flows. "
    "You must never include explanations outside the JSON payload."
)

_RESPONSE_SCHEMA = """\
{
  "graph": {
    "id": "unique_guid",
    "title": "Short Title",
    "blocks": [
      { "id": "b1", "type": "Type", "params": { "k": "v" } }
    ],
    "edges": [
      { "from": "b1", "to": "b2", "condition": "label" }
    ],
    "explanation": "One sentence summary",
    "risk_flags": []
  },
  "explanation": "Same summary as above",
  "risk_flags": []
}"""

# Catalog sections in prompt order.
_CATALOG_SECTIONS: list[tuple[str, BlockCategory]] = [
    ("TRIGGERS", BlockCategory.TRIGGER),
    ("CONDITIONS & SENSORS", BlockCategory.CONDITION),
    ("ACTIONS", BlockCategory.ACTION),
    ("UTILITIES", BlockCategory.UTILITY),
]


def _catalog_lines() -> list[str]:
    lines: list[str] = ["AVAILABLE BLOCKS:"]
    for index, (heading, category) in enumerate(_CATALOG_SECTIONS, start=1):
        lines.append(f"{index}. {heading}:")
        for block_type in BlockType:
            if block_type.category is not category:
                continue
            hint = BLOCK_PARAM_HINTS.get(block_type)
            lines.append(
                f"   - {block_type.value} (params: {hint})" if hint
                else f"   - {block_type.value}"
            )
    return lines


def build_prompt(request: IntentRequest) -> str:
    """Build the user prompt for a synthesis request."""
    ctx = request.context
    lines: list[str] = [
        f"User intent: {request.intent_text}",
        f"Capabilities available: {', '.join(ctx.capabilities) if ctx.capabilities else '(none declared)'}",
    ]
    if ctx.location_aliases:
        lines.append(f"Known locations: {', '.join(ctx.location_aliases)}")
    if ctx.time_window is not None:
        lines.append(f"Current time: {ctx.time_window.now} ({ctx.time_window.tz})")

    lines.append("RETURN JSON ONLY. The JSON must match this EXACT structure:")
    lines.append(_RESPONSE_SCHEMA)
    lines.extend([
        "IMPORTANT:",
        "1. Use 'blocks', NOT 'nodes'.",
        "2. 'graph' object MUST contain 'id', 'title', 'blocks', 'edges', 'explanation'.",
        "3. Use the exact block types listed below.",
        "4. EVERY flow MUST start with a Trigger. For immediate commands, use "
        "'ManualQuickTrigger' and link it to the first action.",
        "5. All param values are strings.",
    ])
    lines.extend(_catalog_lines())
    lines.append(
        "Edges should reference block ids. Condition is optional (empty string if none)."
    )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


@dataclass
class GeneratedFlow:
    """Decoded generator output, before the service applies its defaults."""

    flow_id: str | None
    graph: FlowGraph
    explanation: str | None = None
    risk_flags: list[str] = field(default_factory=list)


class FlowGateway:
    """Adapter from a ReasoningEngine to a decoded FlowGraph."""

    def __init__(self, engine: ReasoningEngine, temperature: float = 0.2) -> None:
        self._engine = engine
        self._temperature = temperature

    @property
    def model_id(self) -> str:
        return self._engine.model_id

    async def generate_flow(self, request: IntentRequest) -> GeneratedFlow:
        prompt = build_prompt(request)
        logger.info(
            "Requesting flow from %s for user %s (%d prompt chars)",
            self._engine.model_id, request.user_id, len(prompt),
        )
        try:
            response = await self._engine.complete(
                [Message(role="user", content=prompt)],
                system=SYSTEM_PROMPT,
                temperature=self._temperature,
            )
        except Exception as e:
            raise ProviderError(f"{self._engine.model_id} request failed: {e}") from e

        if not response.content or not response.content.strip():
            raise MalformedResponseError("No content from provider")

        graph, envelope = parse_graph(response.content)

        explanation = envelope.get("explanation")
        risk_flags = envelope.get("risk_flags")
        return GeneratedFlow(
            flow_id=response.response_id,
            graph=graph,
            explanation=explanation if isinstance(explanation, str) and explanation.strip() else None,
            risk_flags=[str(f) for f in risk_flags] if isinstance(risk_flags, list) else [],
        )
