from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

import requests
from requests.auth import HTTPBasicAuth

if TYPE_CHECKING:  # pragma: no cover
    from onvif2mqtt.config import CameraConfig

logger = logging.getLogger(__name__)

SOAP_ENV = "http://www.w3.org/2003/05/soap-envelope"
SOAP_CONTENT_TYPE = "application/soap+xml; charset=utf-8"
DEVICE_WSDL = "http://www.onvif.org/ver10/device/wsdl"
EVENTS_WSDL = "http://www.onvif.org/ver10/events/wsdl"
ADDRESSING = "http://www.w3.org/2005/08/addressing"
DEFAULT_TIMEOUT_SECONDS = 10.0

Tree = Union[str, bool, List[Any], Dict[str, Any]]


class OnvifError(Exception):
    pass


class OnvifTransportError(OnvifError):
    """The HTTP exchange with the camera failed before a response arrived."""


class SoapParseError(OnvifError):
    pass


class OnvifStartupError(OnvifError):
    """An event subscription could not be established."""


def build_envelope(body: str) -> str:
    return f"""<?xml version="1.0" encoding="utf-8"?>
<s:Envelope xmlns:s="{SOAP_ENV}">
  <s:Body>
    {body}
  </s:Body>
</s:Envelope>"""


def _local_name(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag.split(":", 1)[-1]


def _scalar(text: Optional[str]) -> Union[str, bool]:
    value = (text or "").strip()
    if value == "true":
        return True
    if value == "false":
        return False
    return value


def _element_to_tree(elem: ET.Element) -> Tree:
    children = list(elem)
    if not children and not elem.attrib:
        return _scalar(elem.text)

    node: Dict[str, Any] = {}
    for key, value in elem.attrib.items():
        node["@" + _local_name(key)] = value

    for child in children:
        key = _local_name(child.tag)
        value = _element_to_tree(child)
        if key not in node:
            node[key] = value
        elif isinstance(node[key], list):
            node[key].append(value)
        else:
            node[key] = [node[key], value]

    text = (elem.text or "").strip()
    if text:
        node["#text"] = _scalar(text)
    return node


def parse_envelope(text: str) -> Dict[str, Tree]:
    """
    Parse a SOAP/XML document into a nested dict keyed by local element names.

    Attributes are stored under ``@Name`` keys, repeated elements become lists,
    and leaf text ``true``/``false`` becomes a bool. Namespace prefixes are dropped
    because vendors disagree on them.
    """

    if not text or not text.strip():
        raise SoapParseError("empty document")
    try:
        root = ET.fromstring(text.strip())
    except ET.ParseError as exc:
        raise SoapParseError(f"invalid XML: {exc}") from exc
    return {_local_name(root.tag): _element_to_tree(root)}


def find_path(tree: Any, *keys: str) -> Any:
    """Walk ``keys`` through nested dicts, returning None when any step is missing."""

    node = tree
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def text_of(node: Any) -> Optional[str]:
    """Return the text content of a parsed leaf, tolerating attribute-bearing nodes."""

    if isinstance(node, dict):
        node = node.get("#text")
    if isinstance(node, str) and node:
        return node
    return None


class SoapClient:
    """Posts SOAP envelopes to camera endpoints with optional HTTP Basic auth."""

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.username = username
        self.password = password
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def for_camera(cls, camera: "CameraConfig", session: Optional[requests.Session] = None) -> "SoapClient":
        return cls(username=camera.username, password=camera.password, session=session)

    def post(self, url: str, body: str) -> str:
        """POST ``body`` wrapped in an envelope and return the response text.

        HTTP error statuses are returned like any other response; only transport
        failures raise.
        """

        auth = HTTPBasicAuth(self.username, self.password or "") if self.username else None
        try:
            resp = self.session.post(
                url,
                data=build_envelope(body).encode("utf-8"),
                headers={"Content-Type": SOAP_CONTENT_TYPE},
                auth=auth,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise OnvifTransportError(f"request to {url} failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.warning("SOAP endpoint returned an error status", extra={"url": url, "status": resp.status_code})
        return resp.text
