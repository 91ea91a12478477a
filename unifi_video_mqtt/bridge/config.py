"""
Bridge Configuration
====================

Configuration dataclass for the UniFi Video MQTT bridge.

Validated in __post_init__; carries a couple of behavior helpers
(topic_root, to_status_dict) so callers don't rebuild them.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from unifi_video_mqtt.bridge.topics import topic_root


class ConfigValidationError(ValueError):
    """Error in configuration validation."""
    pass


@dataclass
class BridgeConfig:
    """Configuration for the NVR <-> MQTT bridge"""

    # NVR connection
    nvr_host: str
    """Base URL of the UniFi Video NVR (e.g. https://nvr.local:7443)"""

    nvr_username: str = ""
    """NVR username"""

    nvr_password: str = ""
    """NVR password"""

    nvr_disable_ssl_check: bool = False
    """Skip TLS certificate verification (self-signed NVR certificates)"""

    nvr_name: str = "default"
    """NVR instance name, used as topic root segment: unifi/video/{nvr_name}"""

    http_timeout: float = 10.0
    """Timeout in seconds for each NVR HTTP request"""

    # Refresh timers
    refresh_interval: float = 60.0
    """Seconds between camera attribute / record mode refreshes"""

    detect_motion_refresh_interval: float = 1.0
    """Seconds between motion detection refreshes"""

    motion_window_seconds: int = 1800
    """Look-back window for in-progress motion recordings"""

    # MQTT configuration
    mqtt_host: str = "localhost"
    """MQTT broker hostname"""

    mqtt_port: int = 1883
    """MQTT broker port"""

    mqtt_username: Optional[str] = None
    """MQTT broker username (optional)"""

    mqtt_password: Optional[str] = None
    """MQTT broker password (optional)"""

    mqtt_qos: int = 1
    """QoS for state publishes and the command subscription"""

    mqtt_keepalive: int = 60
    """MQTT keep-alive in seconds"""

    mqtt_client_id: str = field(default_factory=lambda: f"unifi-video-{uuid.uuid4().hex[:8]}")
    """MQTT client id (default: auto-generated unifi-video-{random})"""

    def __post_init__(self):
        self._validate()

    def _validate(self):
        """
        Raises:
            ConfigValidationError: If any value is out of range
        """
        parsed = urlparse(self.nvr_host)
        if not (parsed.scheme in ("http", "https") and parsed.netloc):
            raise ConfigValidationError(f"Invalid NVR host URL: {self.nvr_host!r}")

        if not self.nvr_name or "/" in self.nvr_name or "+" in self.nvr_name or "#" in self.nvr_name:
            raise ConfigValidationError(
                f"nvr_name must be a single topic level, got {self.nvr_name!r}"
            )

        if self.refresh_interval <= 0:
            raise ConfigValidationError(
                f"refresh_interval must be > 0, got {self.refresh_interval}"
            )

        if self.detect_motion_refresh_interval <= 0:
            raise ConfigValidationError(
                f"detect_motion_refresh_interval must be > 0, got {self.detect_motion_refresh_interval}"
            )

        if self.motion_window_seconds <= 0:
            raise ConfigValidationError(
                f"motion_window_seconds must be > 0, got {self.motion_window_seconds}"
            )

        if self.http_timeout <= 0:
            raise ConfigValidationError(f"http_timeout must be > 0, got {self.http_timeout}")

        if not (1 <= self.mqtt_port <= 65535):
            raise ConfigValidationError(f"Invalid MQTT port: {self.mqtt_port}")

        if self.mqtt_qos not in (0, 1, 2):
            raise ConfigValidationError(f"mqtt_qos must be 0, 1 or 2, got {self.mqtt_qos}")

    @property
    def topic_root(self) -> str:
        """Topic root of this NVR: unifi/video/{nvr_name}"""
        return topic_root(self.nvr_name)

    def to_status_dict(self) -> dict:
        """
        Public config fields for startup logging.

        Passwords are omitted.
        """
        return {
            "nvr_host": self.nvr_host,
            "nvr_name": self.nvr_name,
            "nvr_disable_ssl_check": self.nvr_disable_ssl_check,
            "refresh_interval": self.refresh_interval,
            "detect_motion_refresh_interval": self.detect_motion_refresh_interval,
            "mqtt_host": self.mqtt_host,
            "mqtt_port": self.mqtt_port,
            "mqtt_client_id": self.mqtt_client_id,
            "topic_root": self.topic_root,
        }
