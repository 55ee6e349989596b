from .mqtt_transport import MqttTransport

__all__ = ["MqttTransport"]
