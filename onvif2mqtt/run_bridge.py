from __future__ import annotations

import argparse
import logging
import os
import shutil
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from onvif2mqtt.adapters import MqttTransport
from onvif2mqtt.camera_manager import CameraManager
from onvif2mqtt.config import ConfigError, load_app_config
from onvif2mqtt.notify_server import NotifyServer

logger = logging.getLogger(__name__)


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handler(signum, _frame):
        logger.info("Received signal %s; shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def _check_ffmpeg() -> None:
    if shutil.which("ffmpeg") is None:
        logger.warning("ffmpeg was not found on PATH; stream-based snapshots will not work")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bridge ONVIF camera events to MQTT")
    parser.add_argument("--config", type=Path, default=None, help="Path to YAML config file")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("ONVIF2MQTT_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    try:
        app_config = load_app_config(args.config)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    _check_ffmpeg()

    transport = MqttTransport(app_config.mqtt)
    transport.connect()
    manager = CameraManager(app_config, transport)

    notify_server = None
    if app_config.notify is not None:
        notify_server = NotifyServer(app_config.notify, manager.registry).start()

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)

    manager.start()
    manager.publish_status("online")
    logger.info("Bridge initialized", extra={"cameras": [c.name for c in manager.cameras]})

    try:
        while not stop_event.is_set():
            stop_event.wait(0.5)
    finally:
        logger.info("Shutting down")
        manager.publish_status("offline")
        manager.stop()
        if notify_server is not None:
            notify_server.stop()
        transport.close()


if __name__ == "__main__":  # pragma: no cover
    main()
