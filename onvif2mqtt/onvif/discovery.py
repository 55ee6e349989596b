from __future__ import annotations

import json
import logging
import re
from typing import Optional
from urllib.parse import urlparse

from onvif2mqtt.config import CameraConfig

from .soap import DEVICE_WSDL, OnvifError, SoapClient, find_path, parse_envelope, text_of

logger = logging.getLogger(__name__)

DEVICE_SERVICE_PATH = "/onvif/device_service"

GET_CAPABILITIES = f"""<tds:GetCapabilities xmlns:tds="{DEVICE_WSDL}">
      <tds:Category>All</tds:Category>
    </tds:GetCapabilities>"""

_URL_PATTERN = re.compile(r"https?://[^\"'\s>]+")


def device_service_url(camera: CameraConfig) -> Optional[str]:
    """Return the ONVIF device-service URL for a camera, if a host can be derived."""

    if camera.host:
        scheme = "http"
        host = camera.host
        if "://" in host:
            parsed = urlparse(host)
            scheme, host = parsed.scheme, parsed.netloc
        port = f":{camera.port}" if camera.port and ":" not in host else ""
        return f"{scheme}://{host}{port}{DEVICE_SERVICE_PATH}"

    address = camera.snapshot.address if camera.snapshot else None
    if not address:
        return None
    try:
        parsed = urlparse(address)
        port = parsed.port
    except ValueError:
        return None
    if not parsed.scheme or not parsed.hostname:
        return None

    # rtsp/rtmp snapshot addresses still point at the camera; the device service speaks http
    scheme = parsed.scheme if parsed.scheme in {"http", "https"} else "http"
    base = f"{scheme}://{parsed.hostname}"
    if port and scheme == parsed.scheme:
        base += f":{port}"
    return base + DEVICE_SERVICE_PATH


def extract_events_xaddr(tree: dict) -> Optional[str]:
    capabilities = find_path(tree, "Envelope", "Body", "GetCapabilitiesResponse", "Capabilities")
    xaddr = text_of(find_path(capabilities, "Events", "XAddr"))
    if xaddr:
        return xaddr

    # vendors nest the capability differently; take the first URL anywhere in the response
    found = _URL_PATTERN.search(json.dumps(tree))
    return found.group(0) if found else None


def discover_events_xaddr(camera: CameraConfig, client: Optional[SoapClient] = None) -> Optional[str]:
    """
    Query GetCapabilities and return the events service XAddr.

    Returns None instead of raising when the camera has no derivable host, the
    request fails, or no XAddr can be found.
    """

    url = device_service_url(camera)
    if not url:
        logger.warning("No device address available for GetCapabilities", extra={"camera": camera.name})
        return None

    client = client or SoapClient.for_camera(camera)
    try:
        tree = parse_envelope(client.post(url, GET_CAPABILITIES))
    except OnvifError:
        logger.warning("GetCapabilities failed", extra={"camera": camera.name, "url": url}, exc_info=True)
        return None

    xaddr = extract_events_xaddr(tree)
    if xaddr is None:
        logger.warning("No events XAddr in GetCapabilities response", extra={"camera": camera.name})
    else:
        logger.info("Discovered events XAddr", extra={"camera": camera.name, "xaddr": xaddr})
    return xaddr
