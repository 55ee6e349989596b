from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

from onvif2mqtt.classifier import classify
from onvif2mqtt.config import CameraConfig
from onvif2mqtt.events import CanonicalEvent, EventCallback, EventSource, SourceHandle

from .discovery import discover_events_xaddr
from .soap import EVENTS_WSDL, OnvifError, OnvifStartupError, SoapClient, find_path, parse_envelope, text_of

logger = logging.getLogger(__name__)

PULL_INTERVAL_SECONDS = 1.5
PULL_TIMEOUT = "PT2S"
PULL_MESSAGE_LIMIT = 10

CREATE_PULL_POINT = f'<tev:CreatePullPointSubscription xmlns:tev="{EVENTS_WSDL}" />'

PULL_MESSAGES = f"""<tev:PullMessages xmlns:tev="{EVENTS_WSDL}">
      <tev:Timeout>{PULL_TIMEOUT}</tev:Timeout>
      <tev:MessageLimit>{PULL_MESSAGE_LIMIT}</tev:MessageLimit>
    </tev:PullMessages>"""


@dataclass
class PullPointSubscription:
    events_xaddr: str
    subscription_address: str


def create_pull_point_subscription(events_xaddr: str, client: SoapClient) -> Optional[str]:
    """Create a PullPoint subscription and return its reference address."""

    try:
        tree = parse_envelope(client.post(events_xaddr, CREATE_PULL_POINT))
    except OnvifError:
        logger.warning("CreatePullPointSubscription failed", extra={"xaddr": events_xaddr}, exc_info=True)
        return None

    reference = find_path(tree, "Envelope", "Body", "CreatePullPointSubscriptionResponse", "SubscriptionReference")
    return text_of(find_path(reference, "Address"))


class PullPointHandle(SourceHandle):
    """Runs the fixed-rate PullMessages loop for one camera on a daemon thread."""

    def __init__(
        self,
        camera: CameraConfig,
        subscription: PullPointSubscription,
        on_event: EventCallback,
        client: SoapClient,
        interval: float = PULL_INTERVAL_SECONDS,
    ):
        self.camera = camera
        self.subscription = subscription
        self._on_event = on_event
        self._client = client
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"pullpoint-{camera.name}", daemon=True
        )

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> "PullPointHandle":
        self._thread.start()
        return self

    def stop(self) -> None:
        """Ask the loop to exit; an in-flight pull is allowed to finish."""
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def poll_once(self) -> List[CanonicalEvent]:
        xml = self._client.post(self.subscription.subscription_address, PULL_MESSAGES)
        events = classify(parse_envelope(xml))
        for event in events:
            try:
                self._on_event(event)
            except Exception:  # noqa: BLE001
                logger.exception("Event handler failed", extra={"camera": self.camera.name, **event.summary()})
        return events

    def _run(self) -> None:
        logger.info(
            "Starting PullPoint loop",
            extra={"camera": self.camera.name, "address": self.subscription.subscription_address},
        )
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:  # noqa: BLE001
                logger.warning("PullMessages iteration failed", extra={"camera": self.camera.name}, exc_info=True)
            self._stop_event.wait(self._interval)
        logger.info("PullPoint loop stopped", extra={"camera": self.camera.name})


def start_pull(
    camera: CameraConfig,
    on_event: EventCallback,
    client: Optional[SoapClient] = None,
    interval: float = PULL_INTERVAL_SECONDS,
) -> PullPointHandle:
    """
    Discover the events service, subscribe, and start polling in the background.

    Raises OnvifStartupError when discovery or subscription creation does not
    yield an address. Failures after startup are logged and never stop the loop.
    """

    client = client or SoapClient.for_camera(camera)

    events_xaddr = discover_events_xaddr(camera, client)
    if not events_xaddr:
        raise OnvifStartupError(f"no events XAddr found for camera {camera.name}")

    subscription_address = create_pull_point_subscription(events_xaddr, client)
    if not subscription_address:
        raise OnvifStartupError(f"failed to create PullPoint subscription for camera {camera.name}")

    logger.info(
        "PullPoint subscription created",
        extra={"camera": camera.name, "xaddr": events_xaddr, "address": subscription_address},
    )
    subscription = PullPointSubscription(events_xaddr=events_xaddr, subscription_address=subscription_address)
    return PullPointHandle(camera, subscription, on_event, client, interval=interval).start()


class PullEventSource(EventSource):
    mode = "pull"

    def __init__(self, client_factory=SoapClient.for_camera, interval: float = PULL_INTERVAL_SECONDS):
        self._client_factory = client_factory
        self._interval = interval

    def start(self, camera: CameraConfig, on_event: EventCallback) -> PullPointHandle:
        return start_pull(camera, on_event, client=self._client_factory(camera), interval=self._interval)
