"""
Bridge
======

State reconciliation between a UniFi Video NVR and MQTT.
"""

from unifi_video_mqtt.bridge.camera_store import CameraStateStore
from unifi_video_mqtt.bridge.command_dispatcher import CommandDispatcher
from unifi_video_mqtt.bridge.config import BridgeConfig, ConfigValidationError
from unifi_video_mqtt.bridge.scheduler import PeriodicTask, ReconciliationScheduler
from unifi_video_mqtt.bridge.service import UniFiVideoMqttService

__all__ = [
    "BridgeConfig",
    "ConfigValidationError",
    "CameraStateStore",
    "CommandDispatcher",
    "PeriodicTask",
    "ReconciliationScheduler",
    "UniFiVideoMqttService",
]
