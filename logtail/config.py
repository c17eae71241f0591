"""Configuration loading for logtail."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class ClientConfig:
    name: str = "logtail"


@dataclass
class MQTTConfig:
    broker: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    keepalive: int = 60
    connect_timeout: float = 5.0
    topic_prefix: str = "logtail"


@dataclass
class SubscriptionConfig:
    """Configuration for the log feed subscription."""

    group: str = "MyGroup"
    max_entries: int = 500
    reconnect_max_delay: float = 5.0  # Jitter upper bound in seconds


@dataclass
class DashboardConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class Config:
    client: ClientConfig = field(default_factory=ClientConfig)
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    subscription: SubscriptionConfig = field(default_factory=SubscriptionConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with LOGTAIL_ prefix."""
    return os.environ.get(f"LOGTAIL_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if name := _get_env("CLIENT_NAME"):
        config.client.name = name

    # MQTT overrides
    if broker := _get_env("MQTT_BROKER"):
        config.mqtt.broker = broker
    if port := _get_env("MQTT_PORT"):
        config.mqtt.port = int(port)
    if username := _get_env("MQTT_USERNAME"):
        config.mqtt.username = username
    if password := _get_env("MQTT_PASSWORD"):
        config.mqtt.password = password
    if prefix := _get_env("MQTT_TOPIC_PREFIX"):
        config.mqtt.topic_prefix = prefix

    # Subscription overrides
    if group := _get_env("GROUP"):
        config.subscription.group = group
    if max_entries := _get_env("MAX_ENTRIES"):
        config.subscription.max_entries = int(max_entries)
    if max_delay := _get_env("RECONNECT_MAX_DELAY"):
        config.subscription.reconnect_max_delay = float(max_delay)

    return config


def validate_config(config: Config) -> None:
    """Check configuration values that would break the client.

    Raises:
        ValueError: Describing every invalid value found.
    """
    errors = []

    max_entries = config.subscription.max_entries
    if not isinstance(max_entries, int) or isinstance(max_entries, bool) or max_entries <= 0:
        errors.append(f"subscription.max_entries must be a positive integer, got {max_entries!r}")
    if config.subscription.reconnect_max_delay < 0:
        errors.append("subscription.reconnect_max_delay must not be negative")
    if not config.subscription.group:
        errors.append("subscription.group must not be empty")

    for section, port in (("mqtt", config.mqtt.port), ("dashboard", config.dashboard.port)):
        if not 0 < port < 65536:
            errors.append(f"{section}.port must be between 1 and 65535, got {port}")
    if config.mqtt.connect_timeout <= 0:
        errors.append("mqtt.connect_timeout must be positive")
    if config.mqtt.keepalive <= 0:
        errors.append("mqtt.keepalive must be positive")

    if errors:
        raise ValueError("Invalid configuration:\n" + "\n".join(f"  - {e}" for e in errors))


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.

    Raises:
        ValueError: If the resulting configuration is invalid.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "client" in data:
                config.client = ClientConfig(
                    name=data["client"].get("name", config.client.name)
                )

            if "mqtt" in data:
                mqtt_data = data["mqtt"]
                config.mqtt = MQTTConfig(
                    broker=mqtt_data.get("broker", config.mqtt.broker),
                    port=mqtt_data.get("port", config.mqtt.port),
                    username=mqtt_data.get("username"),
                    password=mqtt_data.get("password"),
                    keepalive=mqtt_data.get("keepalive", config.mqtt.keepalive),
                    connect_timeout=mqtt_data.get(
                        "connect_timeout", config.mqtt.connect_timeout
                    ),
                    topic_prefix=mqtt_data.get("topic_prefix", config.mqtt.topic_prefix),
                )

            if "subscription" in data:
                sub_data = data["subscription"]
                config.subscription = SubscriptionConfig(
                    group=sub_data.get("group", config.subscription.group),
                    max_entries=sub_data.get(
                        "max_entries", config.subscription.max_entries
                    ),
                    reconnect_max_delay=sub_data.get(
                        "reconnect_max_delay", config.subscription.reconnect_max_delay
                    ),
                )

            if "dashboard" in data:
                dash_data = data["dashboard"]
                config.dashboard = DashboardConfig(
                    host=dash_data.get("host", config.dashboard.host),
                    port=dash_data.get("port", config.dashboard.port),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    validate_config(config)
    return config
