"""host2mqtt: bridge a desktop host's controllable state to MQTT for Home Assistant."""

__version__ = "0.4.0"
