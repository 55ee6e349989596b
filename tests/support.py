"""Canned camera responses and fakes shared by the tests."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple, Union

MOTION_NOTIFY = """<?xml version="1.0"?>
<s:Envelope xmlns:s="http://www.w3.org/2003/05/soap-envelope">
  <s:Body>
    <tev:Notify xmlns:tev="http://www.onvif.org/ver10/events/wsdl">
      <tev:Topic>tns1:RuleEngine/CellMotionDetector/Motion</tev:Topic>
      <tev:Message>
        <tt:Data xmlns:tt="http://www.onvif.org/ver10/schema">
          <tt:SimpleItem Name="IsMotion" Value="true" />
        </tt:Data>
      </tev:Message>
    </tev:Notify>
  </s:Body>
</s:Envelope>"""

CAPABILITIES_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<SOAP-ENV:Envelope xmlns:SOAP-ENV="http://www.w3.org/2003/05/soap-envelope"
    xmlns:tds="http://www.onvif.org/ver10/device/wsdl" xmlns:tt="http://www.onvif.org/ver10/schema">
  <SOAP-ENV:Body>
    <tds:GetCapabilitiesResponse>
      <tds:Capabilities>
        <tt:Device><tt:XAddr>http://192.168.1.20/onvif/device_service</tt:XAddr></tt:Device>
        <tt:Events>
          <tt:XAddr>http://192.168.1.20/onvif/Events</tt:XAddr>
          <tt:WSPullPointSupport>true</tt:WSPullPointSupport>
        </tt:Events>
      </tds:Capabilities>
    </tds:GetCapabilitiesResponse>
  </SOAP-ENV:Body>
</SOAP-ENV:Envelope>"""

PULL_POINT_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<env:Envelope xmlns:env="http://www.w3.org/2003/05/soap-envelope"
    xmlns:tev="http://www.onvif.org/ver10/events/wsdl" xmlns:wsa5="http://www.w3.org/2005/08/addressing">
  <env:Body>
    <tev:CreatePullPointSubscriptionResponse>
      <tev:SubscriptionReference>
        <wsa5:Address>http://192.168.1.20/onvif/Subscription?Idx=0</wsa5:Address>
      </tev:SubscriptionReference>
      <wsnt:CurrentTime xmlns:wsnt="http://docs.oasis-open.org/wsn/b-2">2024-05-01T10:00:00Z</wsnt:CurrentTime>
    </tev:CreatePullPointSubscriptionResponse>
  </env:Body>
</env:Envelope>"""

PULL_MESSAGES_RESPONSE = """<?xml version="1.0" encoding="UTF-8"?>
<env:Envelope xmlns:env="http://www.w3.org/2003/05/soap-envelope"
    xmlns:tev="http://www.onvif.org/ver10/events/wsdl" xmlns:wsnt="http://docs.oasis-open.org/wsn/b-2"
    xmlns:tt="http://www.onvif.org/ver10/schema">
  <env:Body>
    <tev:PullMessagesResponse>
      <wsnt:NotificationMessage>
        <wsnt:Topic Dialect="http://www.onvif.org/ver10/tev/topicExpression/ConcreteSet">tns1:RuleEngine/CellMotionDetector/Motion</wsnt:Topic>
        <wsnt:Message>
          <tt:Message PropertyOperation="Changed">
            <tt:Source><tt:SimpleItem Name="VideoSourceConfigurationToken" Value="00000"/></tt:Source>
            <tt:Data><tt:SimpleItem Name="IsMotion" Value="true"/></tt:Data>
          </tt:Message>
        </wsnt:Message>
      </wsnt:NotificationMessage>
    </tev:PullMessagesResponse>
  </env:Body>
</env:Envelope>"""


class FakeResponse:
    def __init__(self, text: str = "", status_code: int = 200, content: bytes = b""):
        self.text = text
        self.status_code = status_code
        self.content = content or text.encode("utf-8")

    @property
    def ok(self) -> bool:
        return self.status_code < 400


Reply = Union[str, FakeResponse, Exception, Callable[[str, Dict[str, Any]], Any]]


class FakeSession:
    """Stands in for requests.Session; replies are matched by URL substring."""

    def __init__(self, replies: Optional[Dict[str, Reply]] = None):
        self.replies: Dict[str, Reply] = replies or {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def _reply(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        for fragment, reply in self.replies.items():
            if fragment in url:
                if callable(reply) and not isinstance(reply, (str, FakeResponse)):
                    reply = reply(url, kwargs)
                if isinstance(reply, Exception):
                    raise reply
                if isinstance(reply, FakeResponse):
                    return reply
                return FakeResponse(reply)
        return FakeResponse("", status_code=404)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._reply("POST", url, **kwargs)

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._reply("GET", url, **kwargs)

    def bodies(self) -> List[str]:
        return [kwargs["data"].decode("utf-8") for _, _, kwargs in self.calls if "data" in kwargs]


class FakeTransport:
    def __init__(self) -> None:
        self.published: List[Tuple[str, Any, bool]] = []
        self.subscriptions: Dict[str, Callable[[str, bytes], None]] = {}

    def publish(self, topic_suffix: str, payload: Any, retain: bool = False, qos: int = 0) -> None:
        self.published.append((topic_suffix, payload, retain))

    def subscribe(self, topic_suffix: str, handler: Callable[[str, bytes], None]) -> None:
        self.subscriptions[topic_suffix] = handler

    def payloads(self, topic_suffix: str) -> List[Any]:
        return [payload for topic, payload, _ in self.published if topic == topic_suffix]


class FakeTimer:
    def __init__(self, interval: float, function: Callable[[], None]):
        self.interval = interval
        self.function = function
        self.started = False

    def start(self) -> None:
        self.started = True

    def fire(self) -> None:
        self.function()


