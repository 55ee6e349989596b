from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from .camera import Camera
from .config import AppConfig, NotifyConfig
from .events import CanonicalEvent, EventCallback, EventSource, SourceHandle
from .onvif.pullpoint import PullEventSource
from .onvif.push import NotifyRegistry, PushEventSource
from .onvif.soap import OnvifError

logger = logging.getLogger(__name__)


class CameraManager:
    """Creates cameras, starts their event sources, and owns the push routing registry.

    Every initialized camera is routable through the registry whatever its event
    mode. Event sources start on one daemon thread per camera so a camera that
    never answers does not hold up the others.
    """

    def __init__(
        self,
        config: AppConfig,
        transport,
        registry: Optional[NotifyRegistry] = None,
        sources: Optional[Dict[str, EventSource]] = None,
        camera_factory: Callable[..., Camera] = Camera,
    ):
        self._config = config
        self._transport = transport
        self.registry = registry or NotifyRegistry()
        self._sources = sources or {
            "pull": PullEventSource(),
            "push": PushEventSource(config.notify or NotifyConfig(), self.registry),
        }
        self._camera_factory = camera_factory
        self.cameras: List[Camera] = []
        self._handles: Dict[str, SourceHandle] = {}
        self._lock = threading.Lock()
        self._stopping = False
        self._startup_threads: List[threading.Thread] = []

    def start(self) -> None:
        for camera_config in self._config.cameras:
            camera = self._camera_factory(camera_config, self._transport)
            try:
                camera.init()
            except Exception:  # noqa: BLE001
                logger.exception("Failed to init camera", extra={"camera": camera_config.name})
                continue
            self.cameras.append(camera)
            self.registry.register(camera.name, self._dispatcher(camera))
            self._spawn_startup(camera)
            logger.info("Camera initialized", extra={"camera": camera.name, "mode": camera_config.event_mode})

    def _spawn_startup(self, camera: Camera) -> None:
        thread = threading.Thread(
            target=self._start_events,
            args=(camera,),
            name=f"onvif-start-{camera.name}",
            daemon=True,
        )
        self._startup_threads.append(thread)
        thread.start()

    def wait_started(self, timeout: Optional[float] = None) -> None:
        """Block until every camera's event source has started or failed."""
        for thread in self._startup_threads:
            thread.join(timeout)

    def _start_events(self, camera: Camera) -> None:
        source = self._sources.get(camera.config.event_mode)
        if source is None:
            logger.error("No event source for mode", extra={"camera": camera.name, "mode": camera.config.event_mode})
            return
        try:
            handle = source.start(camera.config, self._dispatcher(camera))
        except OnvifError:
            logger.exception("Event subscription failed to start", extra={"camera": camera.name})
            return
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error starting event source", extra={"camera": camera.name})
            return

        with self._lock:
            if not self._stopping:
                self._handles[camera.name] = handle
                return
        # stop() already ran; the late handle must not keep polling
        handle.stop()

    @staticmethod
    def _dispatcher(camera: Camera) -> EventCallback:
        def _on_event(event: CanonicalEvent) -> None:
            try:
                camera.handle_event(event)
            except Exception:  # noqa: BLE001
                logger.exception("handle_event failed", extra={"camera": camera.name, **event.summary()})

        return _on_event

    def get_camera_by_name(self, name: str) -> Optional[Camera]:
        for camera in self.cameras:
            if camera.name == name:
                return camera
        return None

    def has_subscription(self, name: str) -> bool:
        with self._lock:
            return name in self._handles

    def publish_status(self, status: str) -> None:
        for camera in self.cameras:
            camera.publish_status(status)

    def stop(self) -> None:
        with self._lock:
            self._stopping = True
            handles = dict(self._handles)
            self._handles.clear()
        for name, handle in handles.items():
            logger.info("Stopping event source", extra={"camera": name})
            handle.stop()
        for camera in self.cameras:
            self.registry.unregister(camera.name)
            camera.stop()
