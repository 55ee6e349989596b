from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover
    from onvif2mqtt.config import CameraConfig

EVENT_TYPES = ("motion", "line", "people", "vehicle", "animal")


@dataclass
class CanonicalEvent:
    """Normalized camera event in the bridge vocabulary.

    ``state`` is ``None`` when the camera did not report an explicit boolean;
    such events are treated as momentary pulses.
    """

    type: str
    state: Optional[bool] = None

    def summary(self) -> Dict[str, Optional[object]]:
        """Return a compact summary for logging."""
        return {"event_type": self.type, "state": self.state}


EventCallback = Callable[[CanonicalEvent], None]


class SourceHandle(ABC):
    """Handle returned by an event source; stopping it ends event delivery."""

    @abstractmethod
    def stop(self) -> None:
        ...


class EventSource(ABC):
    """A way of receiving ONVIF events for one camera."""

    mode: str = ""

    @abstractmethod
    def start(self, camera: "CameraConfig", on_event: EventCallback) -> SourceHandle:
        """Begin delivering canonical events for ``camera`` to ``on_event``."""
