"""
UniFi Video API Client
======================

Thin, thread-safe client for the UniFi Video 3.x REST API (api/2.0).

Only the three operations the bridge needs are implemented: list cameras,
list recordings in a time window, and change a camera's record mode.
Transport and validation errors are wrapped into NvrError subclasses.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import requests
from pydantic import ValidationError

from unifi_video_mqtt.errors import NvrAuthenticationError, NvrError, NvrResponseError
from unifi_video_mqtt.logging_utils import get_component_logger
from unifi_video_mqtt.nvr.schema import Camera, RecordMode, Recording, RecordingEventType

logger = get_component_logger(__name__, "nvr_client")

API_PREFIX = "/api/2.0"


def _to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class UniFiVideoClient:
    """
    Session-based UniFi Video client.

    Login is lazy (first request) and repeated once when the NVR answers 401,
    which happens after the NVR expires the session cookie.

    Args:
        host: Base URL of the NVR (e.g. "https://nvr.local:7443")
        username: NVR user
        password: NVR password
        disable_ssl_check: Skip TLS certificate verification
        timeout: Per-request timeout in seconds
        session: Optional pre-built requests.Session (tests)

    Usage:
        >>> with UniFiVideoClient("https://nvr:7443", "admin", "secret") as nvr:
        ...     cameras = nvr.list_cameras()
    """

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        disable_ssl_check: bool = False,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = host.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout

        self.session = session or requests.Session()
        self.session.verify = not disable_ssl_check

        self._lock = threading.RLock()
        self._authenticated = False
        self._closed = False

    # ========================================================================
    # Public API
    # ========================================================================

    def list_cameras(self) -> List[Camera]:
        """Fetch all cameras known to the NVR."""
        data = self._request("GET", "/camera")
        try:
            return [Camera.model_validate(item) for item in data]
        except ValidationError as e:
            raise NvrResponseError(f"Malformed camera payload: {e}") from e

    def list_recordings(
        self,
        start: datetime,
        end: datetime,
        camera_ids: Iterable[str],
        event_types: Iterable[RecordingEventType],
    ) -> List[Recording]:
        """
        Fetch recordings overlapping [start, end].

        Args:
            start: Window start (naive datetimes are taken as UTC)
            end: Window end
            camera_ids: Cameras to include
            event_types: Recording causes to include
        """
        params = {
            "startTime": _to_epoch_ms(start),
            "endTime": _to_epoch_ms(end),
            "cameras[]": list(camera_ids),
            "cause[]": [RecordingEventType(t).value for t in event_types],
            "idsOnly": "false",
            "sortBy": "startTime",
            "sort": "desc",
        }
        data = self._request("GET", "/recording", params=params)
        try:
            return [Recording.model_validate(item) for item in data]
        except ValidationError as e:
            raise NvrResponseError(f"Malformed recording payload: {e}") from e

    def set_record_mode(self, camera_id: str, mode: RecordMode) -> None:
        """
        Change a camera's record mode.

        The NVR only accepts whole camera documents on PUT, so the current
        document is fetched and its recordingSettings patched.
        """
        full_time, motion = RecordMode(mode).to_settings()

        with self._lock:
            data = self._request("GET", f"/camera/{camera_id}")
            if not data:
                raise NvrResponseError(f"Camera {camera_id} not found")

            camera_doc: Dict[str, Any] = dict(data[0])
            settings = dict(camera_doc.get("recordingSettings") or {})
            settings["fullTimeRecordEnabled"] = full_time
            settings["motionRecordEnabled"] = motion
            settings.setdefault("channel", "0")
            camera_doc["recordingSettings"] = settings

            self._request("PUT", f"/camera/{camera_id}", json=camera_doc)

        logger.info(
            f"Record mode of camera {camera_id} set to {RecordMode(mode).value}",
            extra={
                "event": "record_mode_set",
                "camera_id": camera_id,
                "record_mode": RecordMode(mode).value,
            },
        )

    def close(self) -> None:
        """Close the HTTP session. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.session.close()

        logger.debug("NVR session closed", extra={"event": "nvr_session_closed"})

    def __enter__(self) -> "UniFiVideoClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ========================================================================
    # Private
    # ========================================================================

    def _login(self) -> None:
        logger.info(
            f"Logging in to NVR at {self.base_url}",
            extra={"event": "nvr_login", "nvr_host": self.base_url},
        )
        try:
            response = self.session.post(
                f"{self.base_url}{API_PREFIX}/login",
                json={"username": self.username, "password": self.password},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise NvrError(f"NVR login request failed: {e}") from e

        if response.status_code in (401, 403):
            raise NvrAuthenticationError(
                f"NVR rejected credentials for user {self.username!r}"
            )
        if response.status_code != 200:
            raise NvrResponseError(
                f"NVR login failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        self._authenticated = True

    def _request(self, method: str, path: str, **kwargs) -> List[dict]:
        """
        Perform an authenticated request and return the "data" list.

        Raises:
            NvrError: On transport failure, HTTP error or malformed body
        """
        with self._lock:
            if self._closed:
                raise NvrError("NVR client is closed")

            if not self._authenticated:
                self._login()

            response = self._send(method, path, **kwargs)
            if response.status_code == 401:
                logger.info(
                    "NVR session expired, logging in again",
                    extra={"event": "nvr_session_expired"},
                )
                self._authenticated = False
                self._login()
                response = self._send(method, path, **kwargs)

        if response.status_code != 200:
            raise NvrResponseError(
                f"{method} {path} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise NvrResponseError(f"{method} {path} returned invalid JSON") from e

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise NvrResponseError(f"{method} {path} returned no data list")
        return data

    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            return self.session.request(
                method,
                f"{self.base_url}{API_PREFIX}{path}",
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            raise NvrError(f"{method} {path} failed: {e}") from e
