"""FlowSynthesisService — free-text intent in, validated FlowGraphResponse out.

Pipeline:
    build prompt → gateway (one provider call) → extract → decode → validate

When no provider is configured (no API key), the service returns a fixed,
documented demo graph instead of failing. The demo graph goes through the
same validator as generated graphs.

Validation failures are never repaired: FlowValidationError propagates to the
caller so an invalid graph is never persisted or activated.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from uuid import uuid4

from automation_agent.flow.models import (
    BlockType,
    FlowBlock,
    FlowEdge,
    FlowGraph,
    FlowGraphResponse,
    IntentRequest,
)
from automation_agent.flow.validator import validate_flow
from automation_agent.reasoning import ReasoningSettings, create_engine
from automation_agent.synthesis.gateway import FlowGateway

logger = logging.getLogger("automation_agent.synthesis.service")

DEMO_EXPLANATION = "Demo response: Security scenario with sensors."


def _new_id() -> str:
    return str(uuid4())


def demo_graph(graph_id: str) -> FlowGraph:
    """The fixed "Intruder Alert" graph served when no provider is configured.

    ManualQuickTrigger → Pedometer(5 steps) → Camera(front) → Location(high)
    → SendNotificationAction
    """
    return FlowGraph(
        id=graph_id,
        title="Intruder Alert",
        blocks=[
            FlowBlock(
                id="trigger1",
                type=BlockType.MANUAL_QUICK_TRIGGER,
                params={"label": "Start Security"},
            ),
            FlowBlock(id="condition1", type=BlockType.PEDOMETER, params={"threshold": "5"}),
            FlowBlock(id="action1", type=BlockType.CAMERA, params={"lens": "front"}),
            FlowBlock(id="action2", type=BlockType.LOCATION, params={"accuracy": "high"}),
            FlowBlock(
                id="action3",
                type=BlockType.SEND_NOTIFICATION_ACTION,
                params={
                    "title": "Security Alert",
                    "message": "Movement detected! Photo taken at location.",
                },
            ),
        ],
        edges=[
            FlowEdge(from_="trigger1", to="condition1", condition="activate"),
            FlowEdge(from_="condition1", to="action1", condition="steps_detected"),
            FlowEdge(from_="action1", to="action2", condition="photo_saved"),
            FlowEdge(from_="action2", to="action3", condition="location_found"),
        ],
        explanation=(
            "If you walk 5 steps, I'll take a selfie, tag your location, and notify you."
        ),
        risk_flags=["Uses Camera", "Tracks Location"],
    )


class FlowSynthesisService:
    """Orchestrates flow synthesis for one IntentRequest at a time.

    gateway:         FlowGateway to call; None → demo mode.
    id_factory:      generates flow/graph ids (uuid4 strings by default).
    """

    def __init__(
        self,
        gateway: FlowGateway | None = None,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._gateway = gateway
        self._id_factory = id_factory

    @classmethod
    def from_settings(cls, settings: ReasoningSettings) -> FlowSynthesisService:
        """Build a service from settings; demo mode when no provider key is set.

        Raises ValueError for an unknown provider even when no key is set.
        """
        if not settings.provider_known:
            raise ValueError(
                f"Unknown reasoning engine provider: {settings.provider!r}. "
                f"Valid options: 'openai', 'claude'"
            )
        if not settings.has_api_key:
            logger.warning(
                "No API key configured for provider %r — serving the demo flow",
                settings.provider,
            )
            return cls()
        engine = create_engine(settings)
        return cls(gateway=FlowGateway(engine, temperature=settings.temperature))

    @property
    def demo_mode(self) -> bool:
        return self._gateway is None

    async def synthesize(self, request: IntentRequest) -> FlowGraphResponse:
        if self._gateway is None:
            response = self.demo_flow(request)
            logger.info("Served demo flow %s for user %s", response.flow_id, request.user_id)
        else:
            generated = await self._gateway.generate_flow(request)
            response = FlowGraphResponse(
                flow_id=generated.flow_id or self._id_factory(),
                graph=generated.graph,
                explanation=generated.explanation or (
                    f"Generated via {self._gateway.model_id} at "
                    f"{datetime.now(timezone.utc).isoformat()}"
                ),
                risk_flags=generated.risk_flags or ["AI generated"],
            )
            logger.info(
                "Generated flow %s (%d blocks, %d edges) for user %s",
                response.flow_id, len(response.graph.blocks),
                len(response.graph.edges), request.user_id,
            )

        validate_flow(response)
        return response

    def demo_flow(self, request: IntentRequest) -> FlowGraphResponse:
        return FlowGraphResponse(
            flow_id=self._id_factory(),
            graph=demo_graph(self._id_factory()),
            explanation=DEMO_EXPLANATION,
            risk_flags=["Demo mode"],
        )
