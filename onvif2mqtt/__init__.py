"""Bridge ONVIF camera events to MQTT."""

__version__ = "0.1.0"
