"""
NVR Client Facade
=================

Typed access to the UniFi Video API.
"""

from unifi_video_mqtt.nvr.client import UniFiVideoClient
from unifi_video_mqtt.nvr.schema import (
    Camera,
    MotionState,
    RecordMode,
    Recording,
    RecordingEventType,
    RecordingSettings,
)

__all__ = [
    "UniFiVideoClient",
    "Camera",
    "MotionState",
    "RecordMode",
    "Recording",
    "RecordingEventType",
    "RecordingSettings",
]
