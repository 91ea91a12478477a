"""
UniFi Video MQTT Bridge
=======================

Mirrors UniFi Video camera state (motion, record mode) into MQTT and turns
MQTT commands back into NVR calls.

Usage:
    from unifi_video_mqtt.bridge import BridgeConfig, UniFiVideoMqttService

    config = BridgeConfig(
        nvr_host="https://nvr.local:7443",
        nvr_username="admin",
        nvr_password="secret",
        nvr_name="home",
        mqtt_host="localhost",
    )
    service = UniFiVideoMqttService(config)
    service.start()
    service.join()
"""

from unifi_video_mqtt.nvr.schema import Camera, MotionState, RecordMode, Recording

__version__ = "0.1.0"

__all__ = [
    "Camera",
    "MotionState",
    "RecordMode",
    "Recording",
]
