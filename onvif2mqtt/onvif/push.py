from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional
from urllib.parse import quote, unquote
from xml.sax.saxutils import escape

from onvif2mqtt.classifier import classify
from onvif2mqtt.config import CameraConfig, NotifyConfig
from onvif2mqtt.events import CanonicalEvent, EventCallback, EventSource, SourceHandle

from .discovery import discover_events_xaddr
from .soap import ADDRESSING, EVENTS_WSDL, OnvifTransportError, SoapClient, SoapParseError, parse_envelope

logger = logging.getLogger(__name__)

INITIAL_TERMINATION_TIME = "PT24H"


def create_subscription_body(notify_url: str) -> str:
    return f"""<tev:CreateSubscription xmlns:tev="{EVENTS_WSDL}">
      <tev:InitialTerminationTime>{INITIAL_TERMINATION_TIME}</tev:InitialTerminationTime>
      <tev:NotifyTo xmlns:wsa="{ADDRESSING}">
        <wsa:EndpointReference>
          <wsa:Address>{escape(notify_url)}</wsa:Address>
        </wsa:EndpointReference>
      </tev:NotifyTo>
    </tev:CreateSubscription>"""


def create_push_subscription(
    events_xaddr: str,
    camera: CameraConfig,
    notify_url: str,
    client: Optional[SoapClient] = None,
) -> bool:
    """
    Ask the camera to POST notifications to ``notify_url`` for the next 24 hours.

    Any HTTP response counts as success; the body is not checked for a SOAP
    fault. Only a transport failure returns False.
    """

    client = client or SoapClient.for_camera(camera)
    try:
        response = client.post(events_xaddr, create_subscription_body(notify_url))
    except OnvifTransportError:
        logger.warning("CreateSubscription failed", extra={"camera": camera.name, "xaddr": events_xaddr}, exc_info=True)
        return False

    logger.debug("CreateSubscription response", extra={"camera": camera.name, "response": response[:200]})
    return True


def parse_notification(text: str) -> List[CanonicalEvent]:
    """Classify a Notify body; unparsable bodies yield no events."""

    try:
        tree = parse_envelope(text)
    except SoapParseError:
        logger.warning("Ignoring unparsable notification body", exc_info=True)
        return []
    return classify(tree)


def notify_path_for(camera: CameraConfig, notify: NotifyConfig) -> str:
    if camera.push.notify_path:
        return camera.push.notify_path
    return f"{notify.base_path.rstrip('/')}/{quote(camera.name, safe='')}"


def notify_url_for(camera: CameraConfig, notify: NotifyConfig) -> Optional[str]:
    """Return the camera-facing callback URL, or None without a configured base URL."""

    if not notify.base_url:
        return None
    return notify.base_url.rstrip("/") + notify_path_for(camera, notify)


class NotifyRegistry:
    """Camera name to event handler mapping used to route inbound notifications."""

    def __init__(self) -> None:
        self._handlers: Dict[str, EventCallback] = {}
        self._lock = threading.Lock()

    def register(self, camera_name: str, handler: EventCallback) -> None:
        with self._lock:
            self._handlers[camera_name] = handler

    def unregister(self, camera_name: str) -> None:
        with self._lock:
            self._handlers.pop(camera_name, None)

    def names(self) -> List[str]:
        return list(self._handlers)

    def resolve(self, path: str) -> Optional[EventCallback]:
        """Find the handler for a path like ``/onvif/notify/front-door``."""

        parts = [part for part in path.split("/") if part]
        if not parts:
            return None
        return self._handlers.get(unquote(parts[-1]))


class PushHandle(SourceHandle):
    def __init__(self, camera: CameraConfig, registry: NotifyRegistry, subscribed: bool):
        self.camera = camera
        self.subscribed = subscribed
        self._registry = registry

    def stop(self) -> None:
        self._registry.unregister(self.camera.name)


class PushEventSource(EventSource):
    """Receive events through the notify server, optionally subscribing the camera."""

    mode = "push"

    def __init__(self, notify: NotifyConfig, registry: NotifyRegistry, client_factory=SoapClient.for_camera):
        self._notify = notify
        self._registry = registry
        self._client_factory = client_factory

    def start(self, camera: CameraConfig, on_event: EventCallback) -> PushHandle:
        self._registry.register(camera.name, on_event)
        logger.info(
            "Camera routed for push notifications",
            extra={"camera": camera.name, "path": notify_path_for(camera, self._notify)},
        )
        return PushHandle(camera, self._registry, subscribed=self._auto_subscribe(camera))

    def _auto_subscribe(self, camera: CameraConfig) -> bool:
        if not camera.push.auto_subscribe:
            return False

        notify_url = notify_url_for(camera, self._notify)
        if not notify_url:
            logger.warning("Push auto-subscribe needs notify.baseUrl", extra={"camera": camera.name})
            return False

        client = self._client_factory(camera)
        events_xaddr = discover_events_xaddr(camera, client)
        if not events_xaddr:
            logger.warning("Could not determine events XAddr for push subscription", extra={"camera": camera.name})
            return False

        ok = create_push_subscription(events_xaddr, camera, notify_url, client)
        if ok:
            logger.info("Push subscription created", extra={"camera": camera.name, "notify_url": notify_url})
        else:
            logger.warning("Push subscription attempt failed", extra={"camera": camera.name})
        return ok
