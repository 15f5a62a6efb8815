"""MQTT discovery message builders for Home Assistant."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from . import __version__
from .display import Display
from .system import DeviceIdentity
from .utils import sanitize_hostname_for_entity_id


@dataclass(frozen=True)
class SensorDescriptor:
    key: str
    name: str
    topic: str
    unit: str | None = None
    device_class: str | None = None
    state_class: str | None = None
    icon: str | None = None
    enabled_by_default: bool = True


STATUS_SENSORS: tuple[SensorDescriptor, ...] = (
    SensorDescriptor("battery", "Battery", "battery", "%", "battery", enabled_by_default=False),
    SensorDescriptor("disk_total", "Disk Total", "disk/total", "B", "data_size", "measurement", "mdi:harddisk"),
    SensorDescriptor("disk_used", "Disk Used", "disk/used", "B", "data_size", "measurement", "mdi:harddisk"),
    SensorDescriptor("disk_free", "Disk Free", "disk/free", "B", "data_size", "measurement", "mdi:harddisk"),
    SensorDescriptor("disk_used_percent", "Disk Used Percent", "disk/used_percent", "%", None, "measurement", "mdi:chart-pie"),
    SensorDescriptor("disk_free_percent", "Disk Free Percent", "disk/free_percent", "%", None, "measurement", "mdi:chart-pie"),
    SensorDescriptor("cpu_used_percent", "CPU Used Percent", "cpu/used_percent", "%", None, "measurement", "mdi:cpu-64-bit"),
    SensorDescriptor("cpu_free_percent", "CPU Free Percent", "cpu/free_percent", "%", None, "measurement", "mdi:cpu-64-bit"),
    SensorDescriptor("memory_total", "Memory Total", "memory/total", "B", "data_size", "measurement", "mdi:memory"),
    SensorDescriptor("memory_used", "Memory Used", "memory/used", "B", "data_size", "measurement", "mdi:memory"),
    SensorDescriptor("memory_free", "Memory Free", "memory/free", "B", "data_size", "measurement", "mdi:memory"),
    SensorDescriptor("memory_used_percent", "Memory Used Percent", "memory/used_percent", "%", None, "measurement", "mdi:memory"),
    SensorDescriptor("memory_free_percent", "Memory Free Percent", "memory/free_percent", "%", None, "measurement", "mdi:memory"),
    SensorDescriptor("uptime_seconds", "Uptime Seconds", "uptime/seconds", "s", "duration", "total_increasing", "mdi:clock-outline"),
    SensorDescriptor("uptime_human", "Uptime", "uptime/human", icon="mdi:clock-outline"),
    SensorDescriptor("public_ip", "Public IP", "public_ip", icon="mdi:ip-network"),
    SensorDescriptor("idle_time_seconds", "User Idle Time", "idle_time_seconds", "s", "duration", "measurement", "mdi:timer-sand"),
)

LMSTUDIO_SENSORS: tuple[SensorDescriptor, ...] = (
    SensorDescriptor("lmstudio_loaded_models_list", "LM Studio Loaded Models", "lmstudio_loaded_models_list", icon="mdi:brain"),
    SensorDescriptor("lmstudio_available_models_list", "LM Studio Available Models", "lmstudio_available_models_list", icon="mdi:database"),
    SensorDescriptor("lmstudio_loaded_models_count", "LM Studio Loaded Models Count", "lmstudio_loaded_models_count", "models", None, "measurement", "mdi:counter"),
    SensorDescriptor("lmstudio_available_models_count", "LM Studio Available Models Count", "lmstudio_available_models_count", "models", None, "measurement", "mdi:counter"),
)

POWER_BUTTONS: tuple[tuple[str, str, str, bool], ...] = (
    ("sleep", "Sleep", "mdi:sleep", True),
    ("shutdown", "Shutdown", "mdi:power", False),
    ("displaywake", "Display Wake", "mdi:monitor", True),
    ("displaysleep", "Display Sleep", "mdi:monitor-off", True),
    ("screensaver", "Screensaver", "mdi:monitor-star", True),
)


def build_button_entity(
    name: str,
    unique_id: str,
    command_topic: str,
    sanitized_hostname: str,
    payload_press: str = "press",
    icon: str | None = None,
    enabled_by_default: bool = True,
) -> dict[str, Any]:
    """Build a Home Assistant button entity definition.

    Args:
        name: Display name of the button.
        unique_id: Unique identifier for the entity.
        command_topic: MQTT topic to publish commands to.
        sanitized_hostname: Sanitized hostname for entity ID.
        payload_press: Payload to send when button is pressed.
        icon: Optional icon (e.g., "mdi:sleep").
        enabled_by_default: Whether Home Assistant enables the entity on discovery.

    Returns:
        Button entity definition dictionary.
    """
    entity: dict[str, Any] = {
        "platform": "button",
        "name": name,
        "default_entity_id": f"button.{sanitized_hostname}_{payload_press}",
        "cmd_t": command_topic,
        "pl_prs": payload_press,
        "unique_id": unique_id,
    }
    if icon:
        entity["ic"] = icon
    if not enabled_by_default:
        entity["en"] = False
    return entity


def build_number_entity(
    name: str,
    unique_id: str,
    command_topic: str,
    state_topic: str,
    sanitized_hostname: str,
    min_value: int = 0,
    max_value: int = 100,
    step: int = 1,
    unit_of_measurement: str | None = None,
    icon: str | None = None,
) -> dict[str, Any]:
    """Build a Home Assistant slider number entity definition.

    Args:
        name: Display name of the number control.
        unique_id: Unique identifier for the entity.
        command_topic: MQTT topic to publish commands to.
        state_topic: MQTT topic to publish state to.
        sanitized_hostname: Sanitized hostname for entity ID.
        min_value: Minimum value.
        max_value: Maximum value.
        step: Step size.
        unit_of_measurement: Optional unit of measurement (e.g., "%").
        icon: Optional icon (e.g., "mdi:volume-high").

    Returns:
        Number entity definition dictionary.
    """
    entity: dict[str, Any] = {
        "platform": "number",
        "name": name,
        "default_entity_id": f"number.{sanitized_hostname}_{unique_id.removeprefix(sanitized_hostname + '_')}",
        "cmd_t": command_topic,
        "stat_t": state_topic,
        "unique_id": unique_id,
        "min": min_value,
        "max": max_value,
        "step": step,
        "mode": "slider",
    }
    if unit_of_measurement:
        entity["unit_of_meas"] = unit_of_measurement
    if icon:
        entity["ic"] = icon
    return entity


def build_switch_entity(
    name: str,
    unique_id: str,
    command_topic: str,
    state_topic: str,
    payload_on: str = "true",
    payload_off: str = "false",
    state_on: str | None = None,
    state_off: str | None = None,
    icon: str | None = None,
) -> dict[str, Any]:
    entity: dict[str, Any] = {
        "platform": "switch",
        "name": name,
        "unique_id": unique_id,
        "cmd_t": command_topic,
        "stat_t": state_topic,
        "pl_on": payload_on,
        "pl_off": payload_off,
    }
    if state_on is not None:
        entity["stat_on"] = state_on
    if state_off is not None:
        entity["stat_off"] = state_off
    if icon:
        entity["ic"] = icon
    return entity


def build_binary_sensor_entity(
    name: str,
    unique_id: str,
    state_topic: str,
    payload_on: str,
    payload_off: str,
    device_class: str | None = None,
    icon: str | None = None,
) -> dict[str, Any]:
    entity: dict[str, Any] = {
        "platform": "binary_sensor",
        "name": name,
        "unique_id": unique_id,
        "stat_t": state_topic,
        "pl_on": payload_on,
        "pl_off": payload_off,
    }
    if device_class:
        entity["dev_cla"] = device_class
    if icon:
        entity["ic"] = icon
    return entity


def build_text_entity(name: str, unique_id: str, command_topic: str, icon: str | None = None) -> dict[str, Any]:
    entity: dict[str, Any] = {
        "platform": "text",
        "name": name,
        "unique_id": unique_id,
        "cmd_t": command_topic,
        "mode": "text",
    }
    if icon:
        entity["ic"] = icon
    return entity


def build_sensor_entity(
    descriptor: SensorDescriptor,
    unique_id: str,
    state_topic: str,
    sanitized_hostname: str,
    json_attr_topic: str | None = None,
) -> dict[str, Any]:
    """Build a Home Assistant sensor entity definition from a descriptor.

    Args:
        descriptor: Name, unit and class metadata for the sensor.
        unique_id: Unique identifier for the entity.
        state_topic: MQTT topic the sensor reads its state from.
        sanitized_hostname: Sanitized hostname for entity ID.
        json_attr_topic: Optional topic carrying a JSON attributes document.

    Returns:
        Sensor entity definition dictionary.
    """
    entity: dict[str, Any] = {
        "platform": "sensor",
        "name": descriptor.name,
        "default_entity_id": f"sensor.{sanitized_hostname}_{descriptor.key}",
        "stat_t": state_topic,
        "unique_id": unique_id,
    }
    if descriptor.unit:
        entity["unit_of_meas"] = descriptor.unit
    if descriptor.device_class:
        entity["dev_cla"] = descriptor.device_class
    if descriptor.state_class:
        entity["stat_cla"] = descriptor.state_class
    if descriptor.icon:
        entity["ic"] = descriptor.icon
    if not descriptor.enabled_by_default:
        entity["en"] = False
    if json_attr_topic:
        entity["json_attr_t"] = json_attr_topic
    return entity


def build_device_definition(
    hostname: str,
    topic_prefix: str,
    identity: DeviceIdentity,
    displays: Iterable[Display] = (),
    media_available: bool = False,
    lmstudio_available: bool = False,
) -> dict[str, Any]:
    """Build the single device-discovery document for this host.

    Args:
        hostname: Sanitized hostname used in unique ids and the device name.
        topic_prefix: ``<root>/<hostname>`` prefix for command and status topics.
        identity: Hardware serial, model and manufacturer.
        displays: Displays to expose brightness sliders for.
        media_available: Include play/pause and now-playing entities.
        lmstudio_available: Include the model-server entities.

    Returns:
        Discovery document ready to be JSON-encoded and published retained.
    """
    command = f"{topic_prefix}/command"
    status = f"{topic_prefix}/status"
    entity_host = sanitize_hostname_for_entity_id(hostname)
    components: dict[str, dict[str, Any]] = {}

    for key, name, icon, enabled in POWER_BUTTONS:
        components[key] = build_button_entity(
            name,
            f"{hostname}_{key}",
            f"{command}/set",
            entity_host,
            payload_press=key,
            icon=icon,
            enabled_by_default=enabled,
        )
    components["volume"] = build_number_entity(
        "Volume",
        f"{hostname}_volume",
        f"{command}/volume",
        f"{status}/volume",
        entity_host,
        icon="mdi:volume-high",
    )
    components["mute"] = build_switch_entity(
        "Mute", f"{hostname}_mute", f"{command}/mute", f"{status}/mute", icon="mdi:volume-mute"
    )
    components["keepawake"] = build_switch_entity(
        "Keep Awake", f"{hostname}_keepawake", f"{command}/keepawake", f"{status}/caffeinate", icon="mdi:coffee"
    )
    for descriptor in STATUS_SENSORS:
        components[descriptor.key] = build_sensor_entity(
            descriptor, f"{hostname}_{descriptor.key}", f"{status}/{descriptor.topic}", entity_host
        )
    components["microphone"] = build_binary_sensor_entity(
        "Microphone", f"{hostname}_microphone", f"{status}/microphone", "ON", "OFF", "running", "mdi:microphone"
    )
    components["camera"] = build_binary_sensor_entity(
        "Camera", f"{hostname}_camera", f"{status}/camera", "ON", "OFF", "running", "mdi:camera"
    )
    components["user_activity"] = build_binary_sensor_entity(
        "User Activity",
        f"{hostname}_user_activity",
        f"{status}/user_activity",
        "active",
        "inactive",
        "occupancy",
        "mdi:account-check",
    )

    if media_available:
        components["playpause"] = build_button_entity(
            "Play/Pause",
            f"{hostname}_playpause",
            f"{command}/playpause",
            entity_host,
            payload_press="playpause",
            icon="mdi:play-pause",
        )
        components["now_playing"] = build_sensor_entity(
            SensorDescriptor("now_playing", "Now Playing", "now_playing", icon="mdi:music"),
            f"{hostname}_now_playing",
            f"{status}/now_playing",
            entity_host,
            json_attr_topic=f"{status}/now_playing_attr",
        )

    for display in displays:
        key = f"display_{display.display_id}_brightness"
        components[key] = build_number_entity(
            f"{display.name} Brightness",
            f"{hostname}_{key}",
            f"{command}/{key}",
            f"{status}/{key}",
            entity_host,
            icon="mdi:brightness-6",
        )

    if lmstudio_available:
        components["lmstudio_server"] = build_switch_entity(
            "LM Studio Server",
            f"{hostname}_lmstudio_server",
            f"{command}/lmstudio_server",
            f"{status}/lmstudio_server",
            payload_on="start",
            payload_off="stop",
            state_on="online",
            state_off="offline",
            icon="mdi:server",
        )
        for descriptor in LMSTUDIO_SENSORS:
            components[descriptor.key] = build_sensor_entity(
                descriptor, f"{hostname}_{descriptor.key}", f"{status}/{descriptor.topic}", entity_host
            )
        components["lmstudio_load_model"] = build_text_entity(
            "LM Studio Load Model", f"{hostname}_lmstudio_load_model", f"{command}/lmstudio_load_model", "mdi:upload"
        )
        components["lmstudio_unload_model"] = build_text_entity(
            "LM Studio Unload Model",
            f"{hostname}_lmstudio_unload_model",
            f"{command}/lmstudio_unload_model",
            "mdi:download",
        )

    return {
        "dev": {
            "ids": identity.serial,
            "name": hostname,
            "mf": identity.manufacturer,
            "mdl": identity.model,
            "sw": __version__,
        },
        "o": {"name": "host2mqtt", "sw": __version__},
        "avty_t": f"{status}/alive",
        "qos": 1,
        "cmps": components,
    }
