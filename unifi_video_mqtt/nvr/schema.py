"""
NVR Schema
==========

Pydantic models for the UniFi Video objects the bridge consumes, plus the
two small state enums it publishes.

Wire payloads are validated here at the client boundary; the reconciliation
core only ever sees these typed models.
"""

from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class RecordMode(str, Enum):
    """Camera recording policy. The value is the MQTT payload."""

    NONE = "none"
    ALWAYS = "always"
    MOTION = "motion"

    @classmethod
    def from_settings(cls, full_time_enabled: bool, motion_enabled: bool) -> "RecordMode":
        """
        Derive the record mode from the two NVR booleans.

        Motion takes precedence over full-time when both are set.

        Examples:
            >>> RecordMode.from_settings(True, True)
            <RecordMode.MOTION: 'motion'>
            >>> RecordMode.from_settings(False, False)
            <RecordMode.NONE: 'none'>
        """
        if motion_enabled:
            return cls.MOTION
        if full_time_enabled:
            return cls.ALWAYS
        return cls.NONE

    @classmethod
    def from_payload(cls, payload: str) -> "RecordMode":
        """
        Map a command payload to a record mode.

        "always" and "motion" are recognized; anything else means NONE.
        """
        text = payload.strip()
        if text == cls.ALWAYS.value:
            return cls.ALWAYS
        if text == cls.MOTION.value:
            return cls.MOTION
        return cls.NONE

    def to_settings(self) -> Tuple[bool, bool]:
        """Return (full_time_enabled, motion_enabled) for this mode."""
        return self is RecordMode.ALWAYS, self is RecordMode.MOTION


class MotionState(str, Enum):
    """Motion state of a camera. The value is the MQTT payload."""

    OPEN = "open"
    CLOSED = "close"


class RecordingEventType(str, Enum):
    """Recording causes understood by the NVR recording endpoint."""

    MOTION = "motionRecording"
    FULL_TIME = "fullTimeRecording"


class RecordingSettings(BaseModel):
    """Recording switches of one camera"""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    full_time_enabled: bool = Field(
        default=False, alias="fullTimeRecordEnabled", description="Record continuously"
    )
    motion_enabled: bool = Field(
        default=False, alias="motionRecordEnabled", description="Record on motion"
    )


class Camera(BaseModel):
    """Camera attributes relevant to the bridge"""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str = Field(alias="_id", description="Stable opaque camera identifier")
    name: str = Field(default="", description="Display name")
    recording_settings: RecordingSettings = Field(
        default_factory=RecordingSettings, alias="recordingSettings"
    )

    @property
    def record_mode(self) -> RecordMode:
        return RecordMode.from_settings(
            self.recording_settings.full_time_enabled,
            self.recording_settings.motion_enabled,
        )


class Recording(BaseModel):
    """One recording (transient, only lives for a motion tick)"""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: Optional[str] = Field(default=None, alias="_id")
    camera_ids: List[str] = Field(default_factory=list, alias="cameras")
    event_type: Optional[str] = Field(default=None, alias="eventType")
    in_progress: bool = Field(default=False, alias="inProgress")
    start_time: Optional[int] = Field(default=None, alias="startTime", description="Epoch ms")
    end_time: Optional[int] = Field(default=None, alias="endTime", description="Epoch ms")

    @property
    def camera_id(self) -> Optional[str]:
        """Primary camera of the recording, None if the NVR listed none."""
        return self.camera_ids[0] if self.camera_ids else None
