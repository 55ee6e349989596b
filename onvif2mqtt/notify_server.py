from __future__ import annotations

import logging
import threading
from typing import Optional
from urllib.parse import quote

from flask import Flask, Response, request
from werkzeug.serving import BaseWSGIServer, make_server

from .config import NotifyConfig
from .onvif.push import NotifyRegistry, parse_notification

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def _not_found() -> Response:
    return Response("Not Found", 404, mimetype="text/plain")


def _raw_path() -> str:
    # request.path is already percent-decoded; routing decodes the last segment itself
    raw = request.environ.get("RAW_URI") or request.environ.get("REQUEST_URI")
    if not raw:
        return quote(request.path)
    return raw.split("?", 1)[0]


def create_notify_app(notify: NotifyConfig, registry: NotifyRegistry) -> Flask:
    """Flask app that accepts ONVIF Notify POSTs under ``notify.base_path``."""

    app = Flask(__name__)

    def receive(path: str) -> Response:
        logger.debug("notify request", extra={"path": request.path, "method": request.method})
        if request.method != "POST" or not request.path.startswith(notify.base_path):
            return _not_found()

        try:
            body = request.get_data(as_text=True)
            events = parse_notification(body)
            handler = registry.resolve(_raw_path())
            if handler is None:
                logger.warning("No matching camera for notify path", extra={"path": request.path})
            else:
                for event in events:
                    try:
                        handler(event)
                    except Exception:  # noqa: BLE001
                        logger.exception("Notify event handler failed", extra={"path": request.path, **event.summary()})
            return Response("OK", 200, mimetype="text/plain")
        except Exception:  # noqa: BLE001
            logger.exception("Notify request failed", extra={"path": request.path})
            return Response("Error", 500, mimetype="text/plain")

    app.add_url_rule("/", "notify_root", receive, defaults={"path": ""}, methods=ALL_METHODS)
    app.add_url_rule("/<path:path>", "notify", receive, methods=ALL_METHODS)
    return app


class NotifyServer:
    """Serves the notify app on a background thread."""

    def __init__(self, notify: NotifyConfig, registry: NotifyRegistry):
        self._notify = notify
        self.app = create_notify_app(notify, registry)
        self._server: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        if self._server is None:
            return self._notify.port
        return self._server.server_port

    def start(self) -> "NotifyServer":
        self._server = make_server(self._notify.bind, self._notify.port, self.app, threaded=True)
        self._thread = threading.Thread(target=self._server.serve_forever, name="notify-server", daemon=True)
        self._thread.start()
        logger.info(
            "Notify server listening",
            extra={"port": self.port, "base_path": self._notify.base_path},
        )
        return self

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        logger.info("Notify server stopped")
