"""
Camera State Store
==================

Thread-safe snapshot of last-known camera attributes and of what has been
published to MQTT, keyed by camera id.

Shared by the two refresh timers and the command dispatcher; every public
method takes the same lock.
"""

from threading import RLock
from typing import Dict, FrozenSet, List, Mapping, Optional

from unifi_video_mqtt.bridge.topics import slugify
from unifi_video_mqtt.errors import StoreClosedError
from unifi_video_mqtt.logging_utils import get_component_logger
from unifi_video_mqtt.nvr.schema import Camera, MotionState, RecordMode

logger = get_component_logger(__name__, "camera_store")


def camera_slug(camera: Camera) -> str:
    """Slug of a camera's display name, falling back to its id."""
    return slugify(camera.name) or slugify(camera.id)


class CameraStateStore:
    """
    Authoritative in-process camera snapshot.

    - Camera attributes are replaced wholesale by replace_cameras().
    - slug <-> id mapping is rebuilt on every replace (renames).
    - Last published motion state / record mode are write-through caches;
      a missing entry means "never announced".

    Slug collisions: a camera that already owned the slug keeps it, otherwise
    the first camera in snapshot order wins. The loser is left out of the
    snapshot and logged.

    Example:
        >>> store = CameraStateStore()
        >>> changed = store.replace_cameras({cam.id: cam for cam in cameras})
        >>> store.resolve_slug("front-door")
        '5a1b...'
    """

    def __init__(self):
        self._lock = RLock()
        self._cameras: Dict[str, Camera] = {}
        self._slugs: Dict[str, str] = {}
        self._ids_by_slug: Dict[str, str] = {}
        self._motion_states: Dict[str, MotionState] = {}
        self._record_modes: Dict[str, RecordMode] = {}
        self._closed = False

    # ========================================================================
    # Attribute snapshot
    # ========================================================================

    def replace_cameras(self, snapshot: Mapping[str, Camera]) -> FrozenSet[str]:
        """
        Swap in a new attribute snapshot.

        Args:
            snapshot: camera id -> Camera, as fetched from the NVR

        Returns:
            Ids that are new or whose recording settings changed. Name-only
            changes are not reported but do update the slug mapping.
        """
        with self._lock:
            self._check_open()

            cameras: Dict[str, Camera] = {}
            slugs: Dict[str, str] = {}
            ids_by_slug: Dict[str, str] = {}

            # Previous owners first so a newly added namesake can't steal a slug
            ordered = sorted(
                snapshot.items(),
                key=lambda item: self._slugs.get(item[0]) != camera_slug(item[1]),
            )
            for camera_id, camera in ordered:
                slug = camera_slug(camera)
                owner = ids_by_slug.get(slug)
                if owner is not None:
                    logger.warning(
                        f"Camera {camera.name!r} ({camera_id}) skipped: slug {slug!r} "
                        f"already used by camera {owner}",
                        extra={
                            "event": "slug_collision",
                            "camera_id": camera_id,
                            "slug": slug,
                            "owner_camera_id": owner,
                        },
                    )
                    continue
                cameras[camera_id] = camera
                slugs[camera_id] = slug
                ids_by_slug[slug] = camera_id

            changed = frozenset(
                camera_id
                for camera_id, camera in cameras.items()
                if camera_id not in self._cameras
                or self._cameras[camera_id].recording_settings != camera.recording_settings
            )

            renamed = [
                camera_id
                for camera_id, slug in slugs.items()
                if camera_id in self._slugs and self._slugs[camera_id] != slug
            ]
            for camera_id in renamed:
                logger.info(
                    f"Camera {camera_id} renamed: {self._slugs[camera_id]!r} -> {slugs[camera_id]!r}",
                    extra={
                        "event": "camera_renamed",
                        "camera_id": camera_id,
                        "old_slug": self._slugs[camera_id],
                        "new_slug": slugs[camera_id],
                    },
                )

            # A camera that comes back is announced again
            for camera_id in set(self._cameras) - set(cameras):
                self._motion_states.pop(camera_id, None)
                self._record_modes.pop(camera_id, None)

            self._cameras = cameras
            self._slugs = slugs
            self._ids_by_slug = ids_by_slug
            return changed

    def resolve_slug(self, slug: str) -> Optional[str]:
        """Camera id for a topic slug, None if unknown."""
        with self._lock:
            self._check_open()
            return self._ids_by_slug.get(slug)

    def slug_for(self, camera_id: str) -> Optional[str]:
        """Current topic slug of a camera, None if unknown."""
        with self._lock:
            self._check_open()
            return self._slugs.get(camera_id)

    def get_camera(self, camera_id: str) -> Optional[Camera]:
        with self._lock:
            self._check_open()
            return self._cameras.get(camera_id)

    def camera_ids(self) -> List[str]:
        """Ids in the current attribute snapshot."""
        with self._lock:
            self._check_open()
            return list(self._cameras)

    def cameras(self) -> List[Camera]:
        with self._lock:
            self._check_open()
            return list(self._cameras.values())

    # ========================================================================
    # Published state (write-through)
    # ========================================================================

    def record_motion_state(self, camera_id: str, state: MotionState) -> Optional[MotionState]:
        """
        Remember the motion state announced for a camera.

        Returns:
            The previously announced state, None if never announced
        """
        with self._lock:
            self._check_open()
            previous = self._motion_states.get(camera_id)
            self._motion_states[camera_id] = state
            return previous

    def record_record_mode(self, camera_id: str, mode: RecordMode) -> Optional[RecordMode]:
        """
        Remember the record mode announced for a camera.

        Returns:
            The previously announced mode, None if never announced
        """
        with self._lock:
            self._check_open()
            previous = self._record_modes.get(camera_id)
            self._record_modes[camera_id] = mode
            return previous

    def forget_motion_state(self, camera_id: str) -> None:
        """Drop the announced motion state so the next tick republishes."""
        with self._lock:
            self._check_open()
            self._motion_states.pop(camera_id, None)

    def forget_record_mode(self, camera_id: str) -> None:
        """Drop the announced record mode so the next tick republishes."""
        with self._lock:
            self._check_open()
            self._record_modes.pop(camera_id, None)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def close(self) -> None:
        """Discard all state. Later calls raise StoreClosedError."""
        with self._lock:
            self._closed = True
            self._cameras.clear()
            self._slugs.clear()
            self._ids_by_slug.clear()
            self._motion_states.clear()
            self._record_modes.clear()

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._cameras)

    def __contains__(self, camera_id: object) -> bool:
        with self._lock:
            return camera_id in self._cameras

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError("Camera state store is closed")
