"""Reference block handlers and the simulated platform."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from automation_agent.flow.models import BlockType, FlowBlock, FlowEdge, FlowGraph
from automation_agent.runtime import (
    FlowEngine,
    FlowExecutionInput,
    FlowExecutionState,
    FlowStepStatus,
    HandlerRegistry,
    SimulatedPlatform,
    build_default_registry,
)
from automation_agent.runtime.handlers import (
    ActivityRecognitionHandler,
    BatteryGuardHandler,
    BatteryLevelHandler,
    BranchSelectorHandler,
    CameraCaptureHandler,
    ContextMatchHandler,
    DelayHandler,
    GetLocationHandler,
    HttpWebhookHandler,
    NotificationHandler,
    PedometerHandler,
    PlaySoundHandler,
    SetAlarmHandler,
    SmsHandler,
    TimeWindowConditionHandler,
    ToggleWifiHandler,
    TriggerHandler,
    VariableHandler,
)

SUCCESS = FlowStepStatus.SUCCESS
SKIPPED = FlowStepStatus.SKIPPED
FAILED = FlowStepStatus.FAILED


def _block(block_type: BlockType, block_id: str = "b", **params: str) -> FlowBlock:
    return FlowBlock(id=block_id, type=block_type, params=params)


async def _run(handler, block, metadata=None, state=None):
    state = state if state is not None else FlowExecutionState()
    result = await handler.handle(block, FlowExecutionInput(metadata=metadata or {}), state)
    return result, state


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


class TestTrigger:
    @pytest.mark.asyncio
    async def test_always_succeeds(self):
        result, _ = await _run(TriggerHandler("Location exit detected"), _block(BlockType.LOCATION_EXIT_TRIGGER, "t"))
        assert result.block_id == "t"
        assert result.status is SUCCESS
        assert result.message == "Location exit detected"


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class TestTimeWindow:
    def _window(self, start="09:00", end="17:00") -> FlowBlock:
        return _block(BlockType.TIME_WINDOW_CONDITION, start=start, end=end)

    @pytest.mark.asyncio
    async def test_missing_local_time(self):
        result, _ = await _run(TimeWindowConditionHandler(), self._window())
        assert result.status is SKIPPED
        assert result.message == "Missing local time metadata"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("now", ["2025-01-01T10:30:00", "10:30", "09:00", "17:00", "2025-01-01T12:00:00+02:00"])
    async def test_inside(self, now):
        result, _ = await _run(TimeWindowConditionHandler(), self._window(), {"local_time": now})
        assert result.status is SUCCESS
        assert result.message == "Within 09:00-17:00 window"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("now", ["2025-01-01T08:59:00", "17:01", "23:00"])
    async def test_outside(self, now):
        result, _ = await _run(TimeWindowConditionHandler(), self._window(), {"local_time": now})
        assert result.status is SKIPPED
        assert result.message == "Outside window 09:00-17:00"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("now, status", [("23:30", SUCCESS), ("02:00", SUCCESS), ("12:00", SKIPPED)])
    async def test_window_wrapping_midnight(self, now, status):
        result, _ = await _run(TimeWindowConditionHandler(), self._window("22:00", "06:00"), {"local_time": now})
        assert result.status is status

    @pytest.mark.asyncio
    async def test_defaults_cover_whole_day(self):
        result, _ = await _run(
            TimeWindowConditionHandler(), _block(BlockType.TIME_WINDOW_CONDITION), {"local_time": "03:15"}
        )
        assert result.status is SUCCESS
        assert result.message == "Within 00:00-23:59 window"

    @pytest.mark.asyncio
    async def test_unparseable_time(self):
        result, _ = await _run(TimeWindowConditionHandler(), self._window(), {"local_time": "teatime"})
        assert result.status is FAILED

    @pytest.mark.asyncio
    async def test_unparseable_param(self):
        result, _ = await _run(TimeWindowConditionHandler(), self._window(start="morning"), {"local_time": "10:00"})
        assert result.status is FAILED


class TestBattery:
    @pytest.mark.asyncio
    async def test_guard_below_threshold(self):
        result, _ = await _run(
            BatteryGuardHandler(), _block(BlockType.BATTERY_GUARD_CONDITION, minPercent="30"), {"battery_percent": "20"}
        )
        assert result.status is SKIPPED
        assert result.message == "Battery too low (20%)"

    @pytest.mark.asyncio
    async def test_guard_default_threshold(self):
        result, _ = await _run(BatteryGuardHandler(), _block(BlockType.BATTERY_GUARD_CONDITION), {"battery_percent": "30"})
        assert result.status is SUCCESS
        assert result.message == "Battery OK (30%)"

    @pytest.mark.asyncio
    async def test_guard_unknown_battery_passes(self):
        result, _ = await _run(BatteryGuardHandler(), _block(BlockType.BATTERY_GUARD_CONDITION))
        assert result.status is SUCCESS

    @pytest.mark.asyncio
    @pytest.mark.parametrize("percent, status", [("15", SUCCESS), ("80", SUCCESS), ("50", SUCCESS), ("10", SKIPPED), ("95", SKIPPED)])
    async def test_level_range(self, percent, status):
        block = _block(BlockType.BATTERY_LEVEL_CONDITION, minLevel="15", maxLevel="80")
        result, _ = await _run(BatteryLevelHandler(), block, {"battery_percent": percent})
        assert result.status is status

    @pytest.mark.asyncio
    async def test_level_unknown_battery_skips(self):
        result, _ = await _run(BatteryLevelHandler(), _block(BlockType.BATTERY_LEVEL_CONDITION))
        assert result.status is SKIPPED
        assert result.message == "Battery outside range 0-100"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["inf", "-inf", "1e400", "nan"])
    async def test_non_finite_battery_is_unknown(self, raw):
        guard, _ = await _run(BatteryGuardHandler(), _block(BlockType.BATTERY_GUARD_CONDITION), {"battery_percent": raw})
        assert guard.status is SUCCESS
        assert guard.message == "Battery OK (unknown)"

        level, _ = await _run(BatteryLevelHandler(), _block(BlockType.BATTERY_LEVEL_CONDITION), {"battery_percent": raw})
        assert level.status is SKIPPED


class TestContextMatch:
    @pytest.mark.asyncio
    async def test_case_insensitive_substring(self):
        block = _block(BlockType.CONTEXT_MATCH_CONDITION, value="Driving")
        result, _ = await _run(ContextMatchHandler(), block, {"context": "user is DRIVING to work"})
        assert result.status is SUCCESS

    @pytest.mark.asyncio
    async def test_no_match(self):
        block = _block(BlockType.CONTEXT_MATCH_CONDITION, value="driving")
        result, _ = await _run(ContextMatchHandler(), block, {"context": "walking"})
        assert result.status is SKIPPED

    @pytest.mark.asyncio
    async def test_missing_target(self):
        result, _ = await _run(ContextMatchHandler(), _block(BlockType.CONTEXT_MATCH_CONDITION), {"context": "x"})
        assert result.status is SKIPPED
        assert result.message == "No target context"


class TestSensors:
    @pytest.mark.asyncio
    async def test_pedometer_reached(self):
        result, state = await _run(PedometerHandler(), _block(BlockType.PEDOMETER, threshold="5"), {"step_count": "7"})
        assert result.status is SUCCESS
        assert state.variables["last_step_count"] == "7"

    @pytest.mark.asyncio
    async def test_pedometer_default_threshold(self):
        result, _ = await _run(PedometerHandler(), _block(BlockType.PEDOMETER), {"step_count": "9"})
        assert result.status is SKIPPED

    @pytest.mark.asyncio
    async def test_pedometer_unavailable(self):
        result, _ = await _run(PedometerHandler(), _block(BlockType.PEDOMETER))
        assert result.status is SKIPPED
        assert result.message == "Step count unavailable"

    @pytest.mark.asyncio
    async def test_pedometer_overflowing_count_unavailable(self):
        result, _ = await _run(PedometerHandler(), _block(BlockType.PEDOMETER), {"step_count": "1e400"})
        assert result.status is SKIPPED
        assert result.message == "Step count unavailable"

    @pytest.mark.asyncio
    async def test_activity_match(self):
        block = _block(BlockType.ACTIVITY_RECOGNITION, type="WALKING", confidence="60")
        result, state = await _run(
            ActivityRecognitionHandler(), block, {"activity": "walking", "activity_confidence": "80"}
        )
        assert result.status is SUCCESS
        assert result.message == "Activity WALKING (80%)"
        assert state.variables["last_activity"] == "WALKING"

    @pytest.mark.asyncio
    async def test_activity_low_confidence(self):
        block = _block(BlockType.ACTIVITY_RECOGNITION, type="RUNNING", confidence="90")
        result, _ = await _run(
            ActivityRecognitionHandler(), block, {"activity": "RUNNING", "activity_confidence": "40"}
        )
        assert result.status is SKIPPED

    @pytest.mark.asyncio
    async def test_activity_unavailable(self):
        result, _ = await _run(ActivityRecognitionHandler(), _block(BlockType.ACTIVITY_RECOGNITION, type="STILL"))
        assert result.status is SKIPPED


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------


class TestUtilities:
    @pytest.mark.asyncio
    async def test_delay_awaits_sleep(self):
        sleep = AsyncMock()
        result, _ = await _run(DelayHandler(sleep), _block(BlockType.DELAY_ACTION, millis="1500"))
        sleep.assert_awaited_once_with(1.5)
        assert result.status is SUCCESS

    @pytest.mark.asyncio
    async def test_delay_zero_does_not_sleep(self):
        sleep = AsyncMock()
        await _run(DelayHandler(sleep), _block(BlockType.DELAY_ACTION))
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_set_then_get_variable(self):
        handler = VariableHandler()
        state = FlowExecutionState()
        set_result, _ = await _run(handler, _block(BlockType.SET_VARIABLE_ACTION, key="mode", value="away"), state=state)
        get_result, _ = await _run(handler, _block(BlockType.GET_VARIABLE_BLOCK, key="mode"), state=state)

        assert set_result.message == "Set mode"
        assert state.variables == {"mode": "away"}
        assert get_result.message == "Value for mode = away"

    @pytest.mark.asyncio
    async def test_get_unset_variable(self):
        result, _ = await _run(VariableHandler(), _block(BlockType.GET_VARIABLE_BLOCK, key="ghost"))
        assert result.status is SUCCESS
        assert result.message == "Value for ghost = null"

    @pytest.mark.asyncio
    async def test_set_without_key(self):
        result, _ = await _run(VariableHandler(), _block(BlockType.SET_VARIABLE_ACTION, value="x"))
        assert result.status is FAILED
        assert result.message == "Missing key"

    @pytest.mark.asyncio
    async def test_branch_selector(self):
        result, _ = await _run(BranchSelectorHandler(), _block(BlockType.BRANCH_SELECTOR, route="night"))
        assert result.message == "Branch evaluated (night)"
        result, _ = await _run(BranchSelectorHandler(), _block(BlockType.BRANCH_SELECTOR))
        assert result.message == "Branch evaluated (default)"


# ---------------------------------------------------------------------------
# HTTP webhook
# ---------------------------------------------------------------------------


class TestHttpWebhook:
    def _client(self, handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_success(self):
        seen: list[httpx.Request] = []

        def respond(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        block = _block(BlockType.HTTP_WEBHOOK_ACTION, url="https://hooks.example.com/x", body='{"a": 1}')
        async with self._client(respond) as client:
            result, _ = await _run(HttpWebhookHandler(client), block)

        assert result.status is SUCCESS
        assert result.message == "Webhook 200"
        assert seen[0].method == "POST"
        assert seen[0].headers["content-type"] == "application/json"
        assert json.loads(seen[0].content) == {"a": 1}

    @pytest.mark.asyncio
    async def test_method_param(self):
        seen: list[str] = []

        def respond(request: httpx.Request) -> httpx.Response:
            seen.append(request.method)
            return httpx.Response(204)

        block = _block(BlockType.HTTP_WEBHOOK_ACTION, url="https://hooks.example.com/x", method="put")
        async with self._client(respond) as client:
            result, _ = await _run(HttpWebhookHandler(client), block)
        assert seen == ["PUT"]
        assert result.message == "Webhook 204"

    @pytest.mark.asyncio
    async def test_non_2xx_is_failed(self):
        block = _block(BlockType.HTTP_WEBHOOK_ACTION, url="https://hooks.example.com/x")
        async with self._client(lambda request: httpx.Response(503)) as client:
            result, _ = await _run(HttpWebhookHandler(client), block)
        assert result.status is FAILED
        assert result.message == "Webhook 503"

    @pytest.mark.asyncio
    async def test_transport_error_is_failed(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        block = _block(BlockType.HTTP_WEBHOOK_ACTION, url="https://hooks.example.com/x")
        async with self._client(refuse) as client:
            result, _ = await _run(HttpWebhookHandler(client), block)
        assert result.status is FAILED
        assert result.message == "connection refused"

    @pytest.mark.asyncio
    async def test_missing_url(self):
        result, _ = await _run(HttpWebhookHandler(), _block(BlockType.HTTP_WEBHOOK_ACTION))
        assert result.status is FAILED
        assert result.message == "Missing URL"

    @pytest.mark.asyncio
    async def test_malformed_url_is_failed(self):
        block = _block(BlockType.HTTP_WEBHOOK_ACTION, url="http://[::1")
        async with self._client(lambda request: httpx.Response(200)) as client:
            result, _ = await _run(HttpWebhookHandler(client), block)
        assert result.status is FAILED
        assert result.message


# ---------------------------------------------------------------------------
# Device-bound actions
# ---------------------------------------------------------------------------


class TestPlatformActions:
    @pytest.mark.asyncio
    async def test_notification(self):
        platform = SimulatedPlatform()
        block = _block(BlockType.SEND_NOTIFICATION_ACTION, title="Hi", message="There")
        result, _ = await _run(NotificationHandler(platform), block)

        assert result.message == "Notification shown"
        assert platform.events[0].capability == "notification"
        assert platform.events[0].detail == {"title": "Hi", "message": "There"}

    @pytest.mark.asyncio
    async def test_sms_missing_phone(self):
        platform = SimulatedPlatform()
        result, _ = await _run(SmsHandler(platform), _block(BlockType.SEND_SMS_ACTION, body="hi"))
        assert result.status is SKIPPED
        assert result.message == "Missing phone"
        assert platform.events == []

    @pytest.mark.asyncio
    async def test_sms_sent(self):
        platform = SimulatedPlatform()
        result, _ = await _run(SmsHandler(platform), _block(BlockType.SEND_SMS_ACTION, phone="+15550100", body="hi"))
        assert result.status is SUCCESS
        assert platform.events[0].detail == {"phone": "+15550100", "body": "hi"}

    @pytest.mark.asyncio
    async def test_sms_permission_denied(self):
        platform = MagicMock()
        platform.send_sms = AsyncMock(side_effect=PermissionError("SEND_SMS"))
        result, _ = await _run(SmsHandler(platform), _block(BlockType.SEND_SMS_ACTION, phone="+15550100"))
        assert result.status is SKIPPED
        assert result.message == "SMS permission required"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("enable, expected", [("true", "true"), ("false", "false"), ("FALSE", "false")])
    async def test_wifi(self, enable, expected):
        platform = SimulatedPlatform()
        result, _ = await _run(ToggleWifiHandler(platform), _block(BlockType.TOGGLE_WIFI_ACTION, enable=enable))
        assert result.message == f"Wi-Fi state set to {expected}"

    @pytest.mark.asyncio
    async def test_wifi_refused(self):
        result, _ = await _run(
            ToggleWifiHandler(SimulatedPlatform(wifi_ok=False)), _block(BlockType.TOGGLE_WIFI_ACTION)
        )
        assert result.status is FAILED

    @pytest.mark.asyncio
    async def test_sound(self):
        platform = SimulatedPlatform()
        result, _ = await _run(PlaySoundHandler(platform), _block(BlockType.PLAY_SOUND_ACTION))
        assert result.message == "Sound played"
        assert platform.events[0].detail == {"uri": None}

    @pytest.mark.asyncio
    async def test_alarm(self):
        platform = SimulatedPlatform()
        result, _ = await _run(SetAlarmHandler(platform), _block(BlockType.SET_ALARM_ACTION, hour="7", minute="5"))
        assert result.message == "Alarm set for 07:05"

    @pytest.mark.asyncio
    async def test_alarm_out_of_range(self):
        platform = SimulatedPlatform()
        result, _ = await _run(SetAlarmHandler(platform), _block(BlockType.SET_ALARM_ACTION, hour="25"))
        assert result.status is FAILED
        assert result.message == "Invalid alarm time"
        assert platform.events == []

    @pytest.mark.asyncio
    async def test_alarm_infinite_hour(self):
        platform = SimulatedPlatform()
        result, _ = await _run(SetAlarmHandler(platform), _block(BlockType.SET_ALARM_ACTION, hour="inf"))
        assert result.status is FAILED
        assert result.message == "Invalid alarm time"

    @pytest.mark.asyncio
    async def test_camera_records_last_photo(self):
        result, state = await _run(CameraCaptureHandler(SimulatedPlatform()), _block(BlockType.CAMERA, lens="back"))
        assert state.variables["last_photo"] == "simulated/photo_0001_back.jpg"
        assert result.message == "Photo saved: photo_0001_back.jpg"

    @pytest.mark.asyncio
    async def test_camera_failure(self):
        platform = MagicMock()
        platform.capture_photo = AsyncMock(side_effect=OSError("camera busy"))
        result, state = await _run(CameraCaptureHandler(platform), _block(BlockType.CAMERA))
        assert result.status is FAILED
        assert "last_photo" not in state.variables

    @pytest.mark.asyncio
    async def test_location_metadata_wins(self):
        platform = SimulatedPlatform(location="0,0")
        result, state = await _run(GetLocationHandler(platform), _block(BlockType.LOCATION), {"location": "home"})
        assert state.variables["last_location"] == "home"
        assert platform.events == []

    @pytest.mark.asyncio
    async def test_location_from_platform(self):
        platform = SimulatedPlatform(location="48.85,2.35")
        result, state = await _run(GetLocationHandler(platform), _block(BlockType.LOCATION, accuracy="high"))
        assert result.status is SUCCESS
        assert state.variables["last_location"] == "48.85,2.35"
        assert platform.events[0].detail == {"accuracy": "high"}

    @pytest.mark.asyncio
    async def test_location_unavailable(self):
        result, _ = await _run(GetLocationHandler(SimulatedPlatform(location=None)), _block(BlockType.LOCATION))
        assert result.status is FAILED
        assert result.message == "Location unavailable"


# ---------------------------------------------------------------------------
# Default wiring
# ---------------------------------------------------------------------------


class TestDefaultRegistry:
    def test_covers_every_block_type(self):
        registry = build_default_registry()
        assert isinstance(registry, HandlerRegistry)
        assert set(registry) == set(BlockType)

    def test_platform_is_shared(self):
        platform = SimulatedPlatform()
        registry = build_default_registry(platform=platform)
        assert registry[BlockType.CAMERA].platform is platform
        assert registry[BlockType.SEND_SMS_ACTION].platform is platform

    @pytest.mark.asyncio
    async def test_injected_sleep(self):
        sleep = AsyncMock()
        registry = build_default_registry(sleep=sleep)
        await _run(registry[BlockType.DELAY_ACTION], _block(BlockType.DELAY_ACTION, millis="10"))
        sleep.assert_awaited_once_with(0.01)

    @pytest.mark.asyncio
    async def test_bad_inputs_fail_the_step_not_the_run(self):
        graph = FlowGraph(
            id="g",
            blocks=[
                _block(BlockType.MANUAL_QUICK_TRIGGER, "t"),
                _block(BlockType.BATTERY_GUARD_CONDITION, "bat"),
                _block(BlockType.HTTP_WEBHOOK_ACTION, "hook", url="http://[::1"),
            ],
            edges=[FlowEdge(from_="t", to="bat"), FlowEdge(from_="bat", to="hook")],
        )
        engine = FlowEngine(build_default_registry())
        result = await engine.execute(graph, FlowExecutionInput(metadata={"battery_percent": "inf"}))
        assert [(s.block_id, s.status) for s in result.steps] == [
            ("t", SUCCESS),
            ("bat", SUCCESS),
            ("hook", FAILED),
        ]
