from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, Optional

from .config import CameraConfig
from .events import CanonicalEvent
from .snapshot import SnapshotError, get_snapshot

if TYPE_CHECKING:  # pragma: no cover
    from .adapters.mqtt_transport import MqttTransport

logger = logging.getLogger(__name__)

ON = "ON"
OFF = "OFF"


def _daemon_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


class Camera:
    """Turns canonical events for one camera into MQTT ON/OFF publishes."""

    def __init__(
        self,
        config: CameraConfig,
        transport: "MqttTransport",
        timer_factory: Callable[[float, Callable[[], None]], threading.Timer] = _daemon_timer,
        snapshot_fetcher: Callable[..., bytes] = get_snapshot,
    ):
        self.config = config
        self._transport = transport
        self._timer_factory = timer_factory
        self._snapshot_fetcher = snapshot_fetcher
        self._stop_event = threading.Event()
        self._snapshot_thread: Optional[threading.Thread] = None

    @property
    def name(self) -> str:
        return self.config.name

    def init(self) -> None:
        """Wire the snapshot command topic and the periodic snapshot loop."""

        self._transport.subscribe(f"{self.name}/command/snapshot", self._on_snapshot_command)
        interval = self.config.snapshot.interval
        if interval and interval > 0:
            self._snapshot_thread = threading.Thread(
                target=self._periodic_snapshots, args=(interval,), name=f"snapshot-{self.name}", daemon=True
            )
            self._snapshot_thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def publish_status(self, status: str) -> None:
        self._transport.publish(f"{self.name}/status", status, retain=True)

    def handle_event(self, event: CanonicalEvent) -> None:
        topic = f"{self.name}/{event.type}"
        duration = self.config.event_durations.get(event.type)

        if duration and duration > 0:
            self._transport.publish(topic, ON)
            # a later event does not cancel this OFF; both may land on the topic
            self._timer_factory(duration, lambda: self._transport.publish(topic, OFF)).start()
        elif event.state is False:
            self._transport.publish(topic, OFF)
        else:
            self._transport.publish(topic, ON)

        logger.debug("Event published", extra={"camera": self.name, "topic": topic, "duration": duration})

        if self.config.snapshot.on_event:
            threading.Thread(target=self.take_snapshot, name=f"snapshot-event-{self.name}", daemon=True).start()

    def take_snapshot(self) -> bool:
        try:
            image = self._snapshot_fetcher(self.config.snapshot)
        except SnapshotError:
            logger.warning("Snapshot failed", extra={"camera": self.name}, exc_info=True)
            return False
        self._transport.publish(f"{self.name}/image", image)
        return True

    def _on_snapshot_command(self, topic: str, payload: bytes) -> None:
        logger.info("Snapshot command received", extra={"camera": self.name})
        self.take_snapshot()

    def _periodic_snapshots(self, interval: float) -> None:
        while not self._stop_event.wait(interval):
            self.take_snapshot()
