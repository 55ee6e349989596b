from .discovery import discover_events_xaddr
from .pullpoint import PullEventSource, PullPointHandle, start_pull
from .push import NotifyRegistry, PushEventSource, create_push_subscription, parse_notification
from .soap import OnvifError, OnvifStartupError, OnvifTransportError, SoapClient, SoapParseError, parse_envelope

__all__ = [
    "NotifyRegistry",
    "OnvifError",
    "OnvifStartupError",
    "OnvifTransportError",
    "PullEventSource",
    "PullPointHandle",
    "PushEventSource",
    "SoapClient",
    "SoapParseError",
    "create_push_subscription",
    "discover_events_xaddr",
    "parse_envelope",
    "parse_notification",
    "start_pull",
]
