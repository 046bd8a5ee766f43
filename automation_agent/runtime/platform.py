"""Platform capability boundary for device-bound handlers.

Notifications, SMS, Wi-Fi, sound, alarms, camera and location all need an
OS. The handlers in handlers.py talk to a PlatformCapabilities object that
the embedding application supplies; SimulatedPlatform is the in-process
stand-in used by the CLI, the HTTP /flows/execute endpoint and tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger("automation_agent.runtime.platform")


class PlatformCapabilities(Protocol):
    async def notify(self, title: str, message: str) -> None: ...

    async def send_sms(self, phone: str, body: str) -> None: ...

    async def set_wifi(self, enabled: bool) -> bool: ...

    async def play_sound(self, uri: str | None) -> None: ...

    async def set_alarm(self, hour: int, minute: int, message: str) -> None: ...

    async def capture_photo(self, lens: str) -> str: ...

    async def current_location(self, accuracy: str) -> str | None: ...


@dataclass
class PlatformEvent:
    capability: str
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass
class SimulatedPlatform:
    """Records every side effect instead of performing it.

    events:    every capability call, in order
    location:  value returned by current_location()
    wifi_ok:   return value of set_wifi()
    """

    location: str | None = "0.0,0.0"
    wifi_ok: bool = True
    events: list[PlatformEvent] = field(default_factory=list)
    _photo_seq: int = 0

    def _record(self, capability: str, **detail: Any) -> None:
        self.events.append(PlatformEvent(capability, detail))
        logger.debug("simulated %s %s", capability, detail)

    async def notify(self, title: str, message: str) -> None:
        self._record("notification", title=title, message=message)

    async def send_sms(self, phone: str, body: str) -> None:
        self._record("sms", phone=phone, body=body)

    async def set_wifi(self, enabled: bool) -> bool:
        self._record("wifi", enabled=enabled)
        return self.wifi_ok

    async def play_sound(self, uri: str | None) -> None:
        self._record("sound", uri=uri)

    async def set_alarm(self, hour: int, minute: int, message: str) -> None:
        self._record("alarm", hour=hour, minute=minute, message=message)

    async def capture_photo(self, lens: str) -> str:
        self._photo_seq += 1
        path = f"simulated/photo_{self._photo_seq:04d}_{lens}.jpg"
        self._record("camera", lens=lens, path=path)
        return path

    async def current_location(self, accuracy: str) -> str | None:
        self._record("location", accuracy=accuracy)
        return self.location
