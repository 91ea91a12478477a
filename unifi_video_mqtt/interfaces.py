"""
Interfaces for Dependency Injection
====================================

Protocols for the two external collaborators of the bridge: the MQTT
transport and the NVR API client.

Concrete implementations:
- MessageBroker: paho.mqtt.client.Client
- NvrClient: unifi_video_mqtt.nvr.client.UniFiVideoClient

Test implementations: FakeMessageBroker / FakeNvrClient (tests/unit/fakes.py)
"""

from datetime import datetime
from typing import Any, Iterable, List, Protocol

from unifi_video_mqtt.nvr.schema import (
    Camera,
    RecordMode,
    Recording,
    RecordingEventType,
)


class MessageBroker(Protocol):
    """
    Minimal MQTT client surface used by the scheduler and the service.

    paho.mqtt.client.Client already satisfies this structurally.
    """

    def publish(
        self, topic: str, payload: str, qos: int = 0, retain: bool = False
    ) -> Any:
        """
        Publish message to topic.

        Returns:
            MQTTMessageInfo or equivalent (result.rc == 0 for success)
        """
        ...

    def subscribe(self, topic: str, qos: int = 0) -> Any:
        """Subscribe to topic (supports + and # wildcards)."""
        ...

    def connect(self, host: str, port: int, keepalive: int = 60) -> Any:
        """Connect to broker."""
        ...

    def disconnect(self) -> Any:
        """Disconnect from broker."""
        ...

    def loop_start(self) -> Any:
        """Start background network loop (threaded)."""
        ...

    def loop_stop(self) -> Any:
        """Stop background network loop."""
        ...


class NvrClient(Protocol):
    """
    Typed operations against the NVR.

    Implementations validate the wire payload into schema models, so callers
    never see raw dicts. Every method may raise NvrError.
    """

    def list_cameras(self) -> List[Camera]:
        """Enumerate all cameras with their recording settings."""
        ...

    def list_recordings(
        self,
        start: datetime,
        end: datetime,
        camera_ids: Iterable[str],
        event_types: Iterable[RecordingEventType],
    ) -> List[Recording]:
        """Enumerate recordings of the given types overlapping [start, end]."""
        ...

    def set_record_mode(self, camera_id: str, mode: RecordMode) -> None:
        """Change a camera's recording policy."""
        ...

    def close(self) -> None:
        """Release transport resources."""
        ...
