from __future__ import annotations

import logging
import subprocess
from typing import Optional, Tuple
from urllib.parse import unquote, urlparse

import requests
from requests.auth import HTTPBasicAuth

from .config import SnapshotConfig

logger = logging.getLogger(__name__)

FFMPEG_TIMEOUT_SECONDS = 15
HTTP_TIMEOUT_SECONDS = 10


class SnapshotError(Exception):
    pass


def snapshot_credentials(snapshot: SnapshotConfig) -> Tuple[Optional[str], Optional[str]]:
    """Snapshot-specific credentials win; credentials embedded in the address fill the gaps."""

    username, password = snapshot.username, snapshot.password
    if (not username or not password) and snapshot.address:
        parsed = urlparse(snapshot.address)
        if parsed.username or parsed.password:
            username = unquote(parsed.username) if parsed.username else username
            password = unquote(parsed.password) if parsed.password else password
    return username, password


def fetch_url_snapshot(snapshot: SnapshotConfig, session: Optional[requests.Session] = None) -> bytes:
    if not snapshot.address:
        raise SnapshotError("No snapshot address configured for camera")

    username, password = snapshot_credentials(snapshot)
    auth = HTTPBasicAuth(username, password) if username and password else None
    session = session or requests.Session()
    try:
        resp = session.get(snapshot.address, auth=auth, timeout=HTTP_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        raise SnapshotError(f"Snapshot fetch failed: {exc}") from exc
    if not resp.ok:
        raise SnapshotError(f"Snapshot fetch failed {resp.status_code}")
    return resp.content


def grab_stream_frame(address: str) -> bytes:
    """Grab a single JPEG frame from a stream with ffmpeg."""

    cmd = [
        "ffmpeg",
        "-hide_banner",
        "-loglevel", "error",
        "-y",
        "-i", address,
        "-frames:v", "1",
        "-f", "image2",
        "-",
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, timeout=FFMPEG_TIMEOUT_SECONDS)
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise SnapshotError(f"ffmpeg failed: {exc}") from exc
    if result.returncode != 0 or not result.stdout:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise SnapshotError(f"ffmpeg failed: code={result.returncode} {stderr}")
    return result.stdout


def get_snapshot(snapshot: SnapshotConfig, session: Optional[requests.Session] = None) -> bytes:
    snapshot_type = snapshot.resolved_type()
    if snapshot_type == "stream":
        if not snapshot.address:
            raise SnapshotError("No stream address configured for stream snapshot")
        return grab_stream_frame(snapshot.address)
    if snapshot_type == "url":
        return fetch_url_snapshot(snapshot, session)
    raise SnapshotError("No snapshot configuration available (address)")
