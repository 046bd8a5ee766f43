"""Flow graph model — typed, JSON-serializable automation definitions.

A flow is a directed graph of blocks:
  FlowBlock  — one step; its BlockType fixes the step's BlockCategory
  FlowEdge   — directed link with a descriptive (never evaluated) label
  FlowGraph  — blocks + edges + human explanation + risk flags

BlockType is the closed catalog of every block the agent may emit or run.
The enum IS the allow-list: adding a block means adding a member here (and a
BLOCK_PARAM_HINTS entry so the prompt builder can advertise it).

Wire format uses snake_case field names (flow_id, risk_flags, ...).  Unknown
keys are dropped on decode so a chatty generator cannot break parsing.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Block catalog
# ---------------------------------------------------------------------------


class BlockCategory(str, Enum):
    TRIGGER = "TRIGGER"
    CONDITION = "CONDITION"
    ACTION = "ACTION"
    UTILITY = "UTILITY"


class BlockType(str, Enum):
    """Closed catalog of block types. Value = wire name."""

    LOCATION_EXIT_TRIGGER = "LocationExitTrigger"
    TIME_SCHEDULE_TRIGGER = "TimeScheduleTrigger"
    MANUAL_QUICK_TRIGGER = "ManualQuickTrigger"

    TIME_WINDOW_CONDITION = "TimeWindowCondition"
    BATTERY_GUARD_CONDITION = "BatteryGuardCondition"
    CONTEXT_MATCH_CONDITION = "ContextMatchCondition"
    BATTERY_LEVEL_CONDITION = "BatteryLevelCondition"

    SEND_NOTIFICATION_ACTION = "SendNotificationAction"
    SEND_SMS_ACTION = "SendSMSAction"
    HTTP_WEBHOOK_ACTION = "HttpWebhookAction"
    TOGGLE_WIFI_ACTION = "ToggleWifiAction"
    PLAY_SOUND_ACTION = "PlaySoundAction"
    SET_ALARM_ACTION = "SetAlarmAction"

    PEDOMETER = "Pedometer"
    CAMERA = "Camera"
    LOCATION = "Location"
    ACTIVITY_RECOGNITION = "ActivityRecognition"

    DELAY_ACTION = "DelayAction"
    SET_VARIABLE_ACTION = "SetVariableAction"
    GET_VARIABLE_BLOCK = "GetVariableBlock"
    BRANCH_SELECTOR = "BranchSelector"

    @property
    def category(self) -> BlockCategory:
        return _CATEGORIES[self]

    @classmethod
    def parse(cls, name: str) -> BlockType | None:
        """Return the BlockType whose wire name is `name`, or None if unknown."""
        try:
            return cls(name)
        except ValueError:
            return None


_CATEGORIES: dict[BlockType, BlockCategory] = {
    BlockType.LOCATION_EXIT_TRIGGER: BlockCategory.TRIGGER,
    BlockType.TIME_SCHEDULE_TRIGGER: BlockCategory.TRIGGER,
    BlockType.MANUAL_QUICK_TRIGGER: BlockCategory.TRIGGER,
    BlockType.TIME_WINDOW_CONDITION: BlockCategory.CONDITION,
    BlockType.BATTERY_GUARD_CONDITION: BlockCategory.CONDITION,
    BlockType.CONTEXT_MATCH_CONDITION: BlockCategory.CONDITION,
    BlockType.BATTERY_LEVEL_CONDITION: BlockCategory.CONDITION,
    # Sensors pass or skip on a signal.
    BlockType.PEDOMETER: BlockCategory.CONDITION,
    BlockType.ACTIVITY_RECOGNITION: BlockCategory.CONDITION,
    BlockType.SEND_NOTIFICATION_ACTION: BlockCategory.ACTION,
    BlockType.SEND_SMS_ACTION: BlockCategory.ACTION,
    BlockType.HTTP_WEBHOOK_ACTION: BlockCategory.ACTION,
    BlockType.TOGGLE_WIFI_ACTION: BlockCategory.ACTION,
    BlockType.PLAY_SOUND_ACTION: BlockCategory.ACTION,
    BlockType.SET_ALARM_ACTION: BlockCategory.ACTION,
    BlockType.CAMERA: BlockCategory.ACTION,
    BlockType.LOCATION: BlockCategory.ACTION,
    BlockType.DELAY_ACTION: BlockCategory.UTILITY,
    BlockType.SET_VARIABLE_ACTION: BlockCategory.UTILITY,
    BlockType.GET_VARIABLE_BLOCK: BlockCategory.UTILITY,
    BlockType.BRANCH_SELECTOR: BlockCategory.UTILITY,
}

ALLOWED_BLOCK_TYPES: frozenset[str] = frozenset(t.value for t in BlockType)

# Parameter conventions advertised to the generator. Values are examples, not
# defaults. Handlers own their defaults.
BLOCK_PARAM_HINTS: dict[BlockType, str] = {
    BlockType.LOCATION_EXIT_TRIGGER: "geofence, radiusMeters",
    BlockType.TIME_SCHEDULE_TRIGGER: "time='HH:mm', days='[\"Mon\"]'",
    BlockType.MANUAL_QUICK_TRIGGER: "label (optional)",
    BlockType.TIME_WINDOW_CONDITION: "start='HH:mm', end='HH:mm'",
    BlockType.BATTERY_GUARD_CONDITION: "minPercent='15'",
    BlockType.CONTEXT_MATCH_CONDITION: "value='driving'",
    BlockType.BATTERY_LEVEL_CONDITION: "minLevel='15', maxLevel='80'",
    BlockType.SEND_NOTIFICATION_ACTION: "title, message",
    BlockType.SEND_SMS_ACTION: "phone, body",
    BlockType.HTTP_WEBHOOK_ACTION: "url, method, body",
    BlockType.TOGGLE_WIFI_ACTION: "enable='true'|'false'",
    BlockType.PLAY_SOUND_ACTION: "uri='content://media/internal/audio/media/1'",
    BlockType.SET_ALARM_ACTION: "hour='7', minute='30', message='Wake Up', skipUi='true'",
    BlockType.PEDOMETER: "threshold='10'",
    BlockType.CAMERA: "lens='front'|'back'",
    BlockType.LOCATION: "accuracy='high'|'balanced'|'low'",
    BlockType.ACTIVITY_RECOGNITION: "type='STILL'|'WALKING'|'RUNNING', confidence='50'",
    BlockType.DELAY_ACTION: "millis='1000'",
    BlockType.SET_VARIABLE_ACTION: "key, value",
    BlockType.GET_VARIABLE_BLOCK: "key",
    BlockType.BRANCH_SELECTOR: "route",
}


# ---------------------------------------------------------------------------
# Graph models
# ---------------------------------------------------------------------------


_WIRE_CONFIG = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class FlowBlock(BaseModel):
    """One node in a flow graph.

    params are string → string. Their meaning is owned by the handler that
    executes the block; the graph layer never interprets them.
    """

    model_config = _WIRE_CONFIG

    id: str
    type: BlockType
    params: dict[str, str] = Field(default_factory=dict)

    @field_validator("params", mode="before")
    @classmethod
    def stringify_params(cls, v: Any) -> Any:
        """Generators often emit threshold=5 or days=["Mon"]; coerce values to str (JSON for lists/dicts)."""
        if v is None:
            return {}
        if isinstance(v, dict):
            return {
                str(k): (
                    "" if val is None
                    else str(val).lower() if isinstance(val, bool)
                    else json.dumps(val) if isinstance(val, (list, dict))
                    else str(val)
                )
                for k, val in v.items()
            }
        return v

    @property
    def category(self) -> BlockCategory:
        return self.type.category


class FlowEdge(BaseModel):
    """Directed link between two blocks. `condition` is a label only."""

    model_config = _WIRE_CONFIG

    from_: str = Field(alias="from")
    to: str
    condition: str = ""


class FlowGraph(BaseModel):
    """The canonical automation definition."""

    model_config = _WIRE_CONFIG

    id: str
    title: str = ""
    blocks: list[FlowBlock] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    explanation: str = ""
    risk_flags: list[str] = Field(default_factory=list)

    def block_ids(self) -> set[str]:
        return {b.id for b in self.blocks}

    def get_block(self, block_id: str) -> FlowBlock | None:
        return next((b for b in self.blocks if b.id == block_id), None)

    def trigger_blocks(self) -> list[FlowBlock]:
        """Blocks of category TRIGGER, in declaration order."""
        return [b for b in self.blocks if b.category is BlockCategory.TRIGGER]

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> FlowGraph:
        return cls.model_validate(data)


class FlowGraphResponse(BaseModel):
    """Synthesis output: a graph plus top-level explanation and risk flags."""

    model_config = _WIRE_CONFIG

    flow_id: str
    graph: FlowGraph
    explanation: str = ""
    risk_flags: list[str] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> FlowGraphResponse:
        return cls.model_validate(data)


# ---------------------------------------------------------------------------
# Synthesis request
# ---------------------------------------------------------------------------


class TimeWindow(BaseModel):
    model_config = _WIRE_CONFIG

    tz: str
    now: str


class IntentContext(BaseModel):
    """Device-side context sent alongside the user's intent."""

    model_config = _WIRE_CONFIG

    location_aliases: list[str] = Field(default_factory=list)
    capabilities: list[str] = Field(default_factory=list)
    time_window: TimeWindow | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class IntentRequest(BaseModel):
    """A free-text automation request from a user."""

    model_config = _WIRE_CONFIG

    user_id: str
    intent_text: str
    context: IntentContext = Field(default_factory=IntentContext)
    session_token: str = ""
