from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")
EVENT_MODES = ("pull", "push")


class ConfigError(ValueError):
    pass


@dataclass
class MqttConfig:
    host: str = "localhost"
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    base_topic: str = "onvif2mqtt"
    client_id: Optional[str] = None


@dataclass
class SnapshotConfig:
    address: Optional[str] = None
    type: Optional[str] = None
    interval: int = 0
    on_event: bool = False
    username: Optional[str] = None
    password: Optional[str] = None

    def resolved_type(self) -> Optional[str]:
        """Explicit type, else ``stream`` for rtsp/rtmp addresses and ``url`` otherwise."""
        if self.type:
            return self.type
        if not self.address:
            return None
        if self.address.startswith(("rtsp", "rtmp")):
            return "stream"
        return "url"


@dataclass
class PushOptions:
    auto_subscribe: bool = False
    notify_path: Optional[str] = None


@dataclass
class CameraConfig:
    name: str
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    event_durations: Dict[str, float] = field(default_factory=dict)
    event_mode: str = "pull"
    push: PushOptions = field(default_factory=PushOptions)


@dataclass
class NotifyConfig:
    port: int = 8080
    base_path: str = "/onvif/notify"
    base_url: Optional[str] = None
    bind: str = "0.0.0.0"


@dataclass
class AppConfig:
    mqtt: MqttConfig
    cameras: List[CameraConfig] = field(default_factory=list)
    notify: Optional[NotifyConfig] = None


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML (or JSON) config file into a dict."""

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def _first(section: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if section.get(key) is not None:
            return section[key]
    return default


def _read_password_file(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    try:
        return Path(path).read_text().strip()
    except OSError:
        logger.warning("Could not read password_file", extra={"path": path}, exc_info=True)
        return None


def _number(raw: Any, kind: type, key: str) -> Any:
    try:
        return kind(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


def _optional_int(raw: Any, key: str) -> Optional[int]:
    return _number(raw, int, key) if raw not in (None, "") else None


def _normalize_mqtt(section: Any) -> MqttConfig:
    if not isinstance(section, dict):
        return MqttConfig()

    password = section.get("password") or _read_password_file(section.get("password_file"))
    client_id = _first(section, "client", "clientId", "client_id")
    return MqttConfig(
        host=str(_first(section, "server", "host", default="localhost")),
        port=_number(section.get("port") or 1883, int, "mqtt.port"),
        username=section.get("username"),
        password=password,
        base_topic=str(_first(section, "basetopic", "baseTopic", "base_topic", default="onvif2mqtt")),
        client_id=str(client_id) if client_id is not None else None,
    )


def _normalize_snapshot(entry: Dict[str, Any]) -> SnapshotConfig:
    raw = entry.get("snapshot") if isinstance(entry.get("snapshot"), dict) else {}
    address = raw.get("address") or _first(entry, "url", "snapshotUrl")
    password = raw.get("password") or _read_password_file(raw.get("password_file"))
    return SnapshotConfig(
        address=address,
        type=raw.get("type"),
        interval=_number(raw.get("interval") or 0, int, "snapshot.interval"),
        on_event=bool(_first(raw, "onEvent", "on_event", default=False)),
        username=raw.get("username"),
        password=password,
    )


def _normalize_durations(raw: Any) -> Dict[str, float]:
    if not isinstance(raw, dict):
        return {}
    return {
        str(key).lower(): _number(value, float, f"durations.{key}") for key, value in raw.items() if value is not None
    }


def normalize_camera(name: str, entry: Union[str, Dict[str, Any]]) -> CameraConfig:
    """Build a CameraConfig from a config entry; a bare string is a snapshot address."""

    if isinstance(entry, str):
        return CameraConfig(name=name, snapshot=SnapshotConfig(address=entry))
    if not isinstance(entry, dict):
        raise ConfigError(f"camera {name!r} must be a mapping or a snapshot address")

    event = entry.get("event") if isinstance(entry.get("event"), dict) else {}
    mode = str(event.get("mode") or "pull").lower()
    if mode not in EVENT_MODES:
        raise ConfigError(f"camera {name!r} has unknown event mode {mode!r}")
    push_raw = event.get("push") if isinstance(event.get("push"), dict) else {}

    return CameraConfig(
        name=name,
        host=entry.get("host"),
        port=_optional_int(entry.get("port"), f"cameras.{name}.port"),
        username=entry.get("username"),
        password=entry.get("password") or _read_password_file(entry.get("password_file")),
        snapshot=_normalize_snapshot(entry),
        event_durations=_normalize_durations(entry.get("durations")),
        event_mode=mode,
        push=PushOptions(
            auto_subscribe=bool(_first(push_raw, "autoSubscribe", "auto_subscribe", default=False)),
            notify_path=_first(push_raw, "notifyPath", "notify_path"),
        ),
    )


def _normalize_cameras(raw: Any) -> List[CameraConfig]:
    cameras: List[CameraConfig] = []
    if isinstance(raw, list):
        for entry in raw:
            if isinstance(entry, str):
                cameras.append(normalize_camera(entry, entry))
            elif isinstance(entry, dict) and "name" in entry:
                cameras.append(normalize_camera(str(entry["name"]), entry))
            else:
                logger.warning("Skipping camera entry without a name", extra={"entry": entry})
    elif isinstance(raw, dict):
        for name, entry in raw.items():
            cameras.append(normalize_camera(str(name), entry))
    return cameras


def _normalize_notify(section: Any) -> Optional[NotifyConfig]:
    if not isinstance(section, dict):
        return None
    return NotifyConfig(
        port=_number(section.get("port") or 8080, int, "notify.port"),
        base_path=str(_first(section, "basePath", "base_path", default="/onvif/notify")),
        base_url=_first(section, "baseUrl", "base_url"),
        bind=str(section.get("bind") or "0.0.0.0"),
    )


def resolve_config_path(path: Optional[Path] = None) -> Path:
    candidates = [path, os.environ.get("CONFIG_PATH"), DEFAULT_CONFIG_PATH]
    for candidate in candidates:
        if candidate and Path(candidate).exists():
            return Path(candidate)
    raise ConfigError("No configuration file found (looked for --config, CONFIG_PATH, config.yaml)")


def parse_app_config(data: Dict[str, Any]) -> AppConfig:
    return AppConfig(
        mqtt=_normalize_mqtt(_first(data, "mqtt", "MQTT", "Mqtt")),
        cameras=_normalize_cameras(_first(data, "cameras", "Cameras", "onvif", default={})),
        notify=_normalize_notify(_first(data, "notify", "notifications")),
    )


def load_app_config(path: Optional[Path] = None) -> AppConfig:
    config_path = resolve_config_path(path)
    logger.info("Loading config", extra={"path": str(config_path)})
    return parse_app_config(load_yaml(config_path))
