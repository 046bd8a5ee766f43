"""Reference block handlers.

Platform-free handlers evaluate purely against execution metadata and state:
    TriggerHandler, TimeWindowConditionHandler, BatteryGuardHandler,
    BatteryLevelHandler, ContextMatchHandler, PedometerHandler,
    ActivityRecognitionHandler, DelayHandler, VariableHandler,
    BranchSelectorHandler, HttpWebhookHandler (httpx)

Device-bound handlers delegate to a PlatformCapabilities object:
    NotificationHandler, SmsHandler, ToggleWifiHandler, PlaySoundHandler,
    SetAlarmHandler, CameraCaptureHandler, GetLocationHandler

build_default_registry() wires one handler per BlockType.

Conventions: every handler returns exactly one FlowStepResult. A condition
that does not hold is SKIPPED; an action that could not be carried out is
FAILED. Metadata keys read here: local_time, battery_percent, context,
step_count, activity, activity_confidence, location.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, time

import httpx

from automation_agent.flow.models import BlockType, FlowBlock
from automation_agent.runtime.platform import PlatformCapabilities, SimulatedPlatform
from automation_agent.runtime.registry import HandlerRegistry
from automation_agent.runtime.types import (
    FlowExecutionInput,
    FlowExecutionState,
    FlowStepResult,
    FlowStepStatus,
)

logger = logging.getLogger("automation_agent.runtime.handlers")

SUCCESS = FlowStepStatus.SUCCESS
SKIPPED = FlowStepStatus.SKIPPED
FAILED = FlowStepStatus.FAILED


def _int_param(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _optional_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(float(value.strip()))
    except (ValueError, OverflowError):
        return None


def _parse_clock(value: str) -> time:
    """Parse 'HH:MM' or an ISO datetime into a time of day (minute precision)."""
    value = value.strip()
    try:
        parsed = time.fromisoformat(value)
    except ValueError:
        parsed = datetime.fromisoformat(value).time()
    return parsed.replace(second=0, microsecond=0, tzinfo=None)


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


class TriggerHandler:
    """Entry point: always succeeds with a fixed description."""

    def __init__(self, description: str) -> None:
        self.description = description

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        return FlowStepResult(block.id, SUCCESS, self.description)


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class TimeWindowConditionHandler:
    """Passes when metadata local_time falls inside [start, end].

    Windows whose start is after their end wrap past midnight (22:00-06:00).
    """

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        raw_now = input.metadata.get("local_time")
        if not raw_now:
            return FlowStepResult(block.id, SKIPPED, "Missing local time metadata")
        start = block.params.get("start", "00:00")
        end = block.params.get("end", "23:59")
        try:
            now = _parse_clock(raw_now)
            start_t = _parse_clock(start)
            end_t = _parse_clock(end)
        except ValueError as e:
            return FlowStepResult(block.id, FAILED, f"Invalid time: {e}")

        if start_t <= end_t:
            within = start_t <= now <= end_t
        else:
            within = now >= start_t or now <= end_t

        if within:
            return FlowStepResult(block.id, SUCCESS, f"Within {start}-{end} window")
        return FlowStepResult(block.id, SKIPPED, f"Outside window {start}-{end}")


class BatteryGuardHandler:
    """Passes unless battery_percent is known and below minPercent (default 30)."""

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        threshold = _int_param(block.params.get("minPercent"), 30)
        percent = _optional_int(input.metadata.get("battery_percent"))
        if percent is None:
            return FlowStepResult(block.id, SUCCESS, "Battery OK (unknown)")
        if percent >= threshold:
            return FlowStepResult(block.id, SUCCESS, f"Battery OK ({percent}%)")
        return FlowStepResult(block.id, SKIPPED, f"Battery too low ({percent}%)")


class BatteryLevelHandler:
    """Passes when battery_percent lies within [minLevel, maxLevel]."""

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        low = _int_param(block.params.get("minLevel"), 0)
        high = _int_param(block.params.get("maxLevel"), 100)
        percent = _optional_int(input.metadata.get("battery_percent"))
        if percent is not None and low <= percent <= high:
            return FlowStepResult(block.id, SUCCESS, f"Battery within range {low}-{high}")
        return FlowStepResult(block.id, SKIPPED, f"Battery outside range {low}-{high}")


class ContextMatchHandler:
    """Case-insensitive substring match of params.value against metadata context."""

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        target = block.params.get("value")
        if not target:
            return FlowStepResult(block.id, SKIPPED, "No target context")
        target = target.lower()
        actual = input.metadata.get("context")
        if actual is not None and target in actual.lower():
            return FlowStepResult(block.id, SUCCESS, f"Context matched '{target}'")
        return FlowStepResult(block.id, SKIPPED, f"Context '{actual}' != '{target}'")


class PedometerHandler:
    """Passes once metadata step_count reaches params.threshold (default 10)."""

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        threshold = _int_param(block.params.get("threshold"), 10)
        steps = _optional_int(input.metadata.get("step_count"))
        if steps is None:
            return FlowStepResult(block.id, SKIPPED, "Step count unavailable")
        state.variables["last_step_count"] = str(steps)
        if steps >= threshold:
            return FlowStepResult(block.id, SUCCESS, f"Detected {steps} steps (threshold {threshold})")
        return FlowStepResult(block.id, SKIPPED, f"Only {steps} steps (threshold {threshold})")


class ActivityRecognitionHandler:
    """Passes when metadata activity matches params.type with enough confidence."""

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        wanted = block.params.get("type", "").upper()
        min_confidence = _int_param(block.params.get("confidence"), 50)
        activity = input.metadata.get("activity")
        if not activity:
            return FlowStepResult(block.id, SKIPPED, "Activity unavailable")
        confidence = _optional_int(input.metadata.get("activity_confidence"))
        confidence = 100 if confidence is None else confidence
        state.variables["last_activity"] = activity.upper()

        if (not wanted or activity.upper() == wanted) and confidence >= min_confidence:
            return FlowStepResult(block.id, SUCCESS, f"Activity {activity.upper()} ({confidence}%)")
        return FlowStepResult(
            block.id, SKIPPED,
            f"Activity {activity.upper()} ({confidence}%) does not match {wanted or 'any'} >= {min_confidence}%",
        )


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------


class DelayHandler:
    """Suspends the run for params.millis milliseconds."""

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self._sleep = sleep

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        millis = max(_int_param(block.params.get("millis"), 0), 0)
        if millis > 0:
            await self._sleep(millis / 1000)
        return FlowStepResult(block.id, SUCCESS, f"Delayed for {millis} ms")


class VariableHandler:
    """SetVariableAction writes state; GetVariableBlock reports a value."""

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        key = block.params.get("key")
        if block.type is BlockType.SET_VARIABLE_ACTION:
            if not key:
                return FlowStepResult(block.id, FAILED, "Missing key")
            state.variables[key] = block.params.get("value", "")
            return FlowStepResult(block.id, SUCCESS, f"Set {key}")
        if block.type is BlockType.GET_VARIABLE_BLOCK:
            if not key:
                return FlowStepResult(block.id, FAILED, "Missing key")
            value = state.variables.get(key)
            return FlowStepResult(block.id, SUCCESS, f"Value for {key} = {value if value is not None else 'null'}")
        return FlowStepResult(block.id, SKIPPED, "Unsupported variable op")


class BranchSelectorHandler:
    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        return FlowStepResult(block.id, SUCCESS, f"Branch evaluated ({block.params.get('route', 'default')})")


class HttpWebhookHandler:
    """Sends params.body to params.url with params.method (default POST).

    client: shared httpx.AsyncClient; when None a short-lived client is
    opened per call. Non-2xx responses and transport errors are FAILED.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 5.0) -> None:
        self._client = client
        self._timeout = timeout

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        url = block.params.get("url")
        if not url:
            return FlowStepResult(block.id, FAILED, "Missing URL")
        method = block.params.get("method", "POST").upper()
        body = block.params.get("body", "")
        kwargs: dict = {"headers": {"Content-Type": "application/json"}, "timeout": self._timeout}
        if body:
            kwargs["content"] = body.encode()

        try:
            if self._client is not None:
                response = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(method, url, **kwargs)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Webhook %s %s failed: %s", method, url, e)
            return FlowStepResult(block.id, FAILED, str(e) or "Webhook failed")

        status = SUCCESS if response.is_success else FAILED
        return FlowStepResult(block.id, status, f"Webhook {response.status_code}")


# ---------------------------------------------------------------------------
# Device-bound actions
# ---------------------------------------------------------------------------


class _PlatformHandler:
    def __init__(self, platform: PlatformCapabilities) -> None:
        self.platform = platform


class NotificationHandler(_PlatformHandler):
    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        await self.platform.notify(
            block.params.get("title", "Agent Automator"),
            block.params.get("message", "Automation executed."),
        )
        return FlowStepResult(block.id, SUCCESS, "Notification shown")


class SmsHandler(_PlatformHandler):
    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        phone = block.params.get("phone")
        if not phone:
            return FlowStepResult(block.id, SKIPPED, "Missing phone")
        try:
            await self.platform.send_sms(phone, block.params.get("body", "Automation triggered."))
        except PermissionError:
            return FlowStepResult(block.id, SKIPPED, "SMS permission required")
        except OSError as e:
            return FlowStepResult(block.id, FAILED, str(e) or "SMS failed")
        return FlowStepResult(block.id, SUCCESS, "SMS sent")


class ToggleWifiHandler(_PlatformHandler):
    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        enable = block.params.get("enable", "true").strip().lower() == "true"
        if await self.platform.set_wifi(enable):
            return FlowStepResult(block.id, SUCCESS, f"Wi-Fi state set to {str(enable).lower()}")
        return FlowStepResult(block.id, FAILED, "Failed to set Wi-Fi state")


class PlaySoundHandler(_PlatformHandler):
    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        try:
            await self.platform.play_sound(block.params.get("uri"))
        except OSError as e:
            return FlowStepResult(block.id, FAILED, str(e) or "Sound failed")
        return FlowStepResult(block.id, SUCCESS, "Sound played")


class SetAlarmHandler(_PlatformHandler):
    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        hour = _optional_int(block.params.get("hour", "7"))
        minute = _optional_int(block.params.get("minute", "0"))
        if hour is None or minute is None or not (0 <= hour < 24 and 0 <= minute < 60):
            return FlowStepResult(block.id, FAILED, "Invalid alarm time")
        await self.platform.set_alarm(hour, minute, block.params.get("message", "Alarm"))
        return FlowStepResult(block.id, SUCCESS, f"Alarm set for {hour:02d}:{minute:02d}")


class CameraCaptureHandler(_PlatformHandler):
    """Takes a photo and stores its path in the last_photo variable."""

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        lens = block.params.get("lens", "front").lower()
        try:
            path = await self.platform.capture_photo(lens)
        except OSError as e:
            logger.warning("Camera capture failed for %s: %s", block.id, e)
            return FlowStepResult(block.id, FAILED, f"Photo failed: {e}")
        state.variables["last_photo"] = path
        return FlowStepResult(block.id, SUCCESS, f"Photo saved: {path.rsplit('/', 1)[-1]}")


class GetLocationHandler(_PlatformHandler):
    """Resolves the device location (metadata location wins) into last_location."""

    async def handle(self, block: FlowBlock, input: FlowExecutionInput, state: FlowExecutionState) -> FlowStepResult:
        location = input.metadata.get("location") or await self.platform.current_location(
            block.params.get("accuracy", "balanced")
        )
        if not location:
            return FlowStepResult(block.id, FAILED, "Location unavailable")
        state.variables["last_location"] = location
        return FlowStepResult(block.id, SUCCESS, f"Location: {location}")


# ---------------------------------------------------------------------------
# Default wiring
# ---------------------------------------------------------------------------


def build_default_registry(
    *,
    platform: PlatformCapabilities | None = None,
    http_client: httpx.AsyncClient | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    webhook_timeout: float = 5.0,
) -> HandlerRegistry:
    """One handler per BlockType. platform defaults to a SimulatedPlatform."""
    platform = platform if platform is not None else SimulatedPlatform()
    variables = VariableHandler()

    registry = HandlerRegistry()
    registry.register(BlockType.LOCATION_EXIT_TRIGGER, TriggerHandler("Location exit detected"))
    registry.register(BlockType.TIME_SCHEDULE_TRIGGER, TriggerHandler("Scheduled trigger fired"))
    registry.register(BlockType.MANUAL_QUICK_TRIGGER, TriggerHandler("Manual trigger fired"))

    registry.register(BlockType.TIME_WINDOW_CONDITION, TimeWindowConditionHandler())
    registry.register(BlockType.BATTERY_GUARD_CONDITION, BatteryGuardHandler())
    registry.register(BlockType.BATTERY_LEVEL_CONDITION, BatteryLevelHandler())
    registry.register(BlockType.CONTEXT_MATCH_CONDITION, ContextMatchHandler())
    registry.register(BlockType.PEDOMETER, PedometerHandler())
    registry.register(BlockType.ACTIVITY_RECOGNITION, ActivityRecognitionHandler())

    registry.register(BlockType.SEND_NOTIFICATION_ACTION, NotificationHandler(platform))
    registry.register(BlockType.SEND_SMS_ACTION, SmsHandler(platform))
    registry.register(BlockType.HTTP_WEBHOOK_ACTION, HttpWebhookHandler(http_client, webhook_timeout))
    registry.register(BlockType.TOGGLE_WIFI_ACTION, ToggleWifiHandler(platform))
    registry.register(BlockType.PLAY_SOUND_ACTION, PlaySoundHandler(platform))
    registry.register(BlockType.SET_ALARM_ACTION, SetAlarmHandler(platform))
    registry.register(BlockType.CAMERA, CameraCaptureHandler(platform))
    registry.register(BlockType.LOCATION, GetLocationHandler(platform))

    registry.register(BlockType.DELAY_ACTION, DelayHandler(sleep))
    registry.register(BlockType.SET_VARIABLE_ACTION, variables)
    registry.register(BlockType.GET_VARIABLE_BLOCK, variables)
    registry.register(BlockType.BRANCH_SELECTOR, BranchSelectorHandler())
    return registry
