"""
Reconciliation Scheduler
========================

Polls the NVR on two independent timers and publishes only the deltas:

- attribute refresh: camera list -> {root}/camera/{slug}/recordMode
- motion refresh: in-progress motion recordings -> {root}/camera/{slug}/motion

Each timer runs in its own PeriodicTask thread, so ticks of the same timer
never overlap. A failed tick is logged and abandoned; the next tick retries.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Set

import paho.mqtt.client as mqtt

from unifi_video_mqtt.bridge.camera_store import CameraStateStore
from unifi_video_mqtt.bridge.topics import MOTION_SUBTOPIC, RECORD_MODE_SUBTOPIC, camera_topic
from unifi_video_mqtt.errors import StartupError, StoreClosedError
from unifi_video_mqtt.interfaces import MessageBroker, NvrClient
from unifi_video_mqtt.logging_utils import generate_trace_id, get_component_logger, trace_context
from unifi_video_mqtt.nvr.schema import Camera, MotionState, RecordingEventType

logger = get_component_logger(__name__, "scheduler")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PeriodicTask:
    """
    Background thread calling `action` every `interval` seconds.

    Ticks are serialized: the next wait only starts once the previous tick
    returned, so a slow tick delays (coalesces) the following ones instead
    of stacking up. run_once() may be called from other threads and is
    skipped while a tick is in progress.

    Exceptions raised by `action` are logged and never stop the loop.

    Args:
        name: Thread name, also used in log records
        interval: Seconds between ticks
        action: Zero-argument callable executed on each tick
        trace_prefix: Prefix of the trace id bound during each tick
    """

    def __init__(
        self,
        name: str,
        interval: float,
        action: Callable[[], None],
        trace_prefix: str = "tick",
    ):
        self.name = name
        self.interval = interval
        self.action = action
        self.trace_prefix = trace_prefix

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._busy = threading.Lock()

    def start(self) -> None:
        """Start the background thread. The first tick fires after one interval."""
        if self._thread is not None:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name=self.name)
        self._thread.start()

        logger.info(
            f"Periodic task {self.name} started (interval: {self.interval}s)",
            extra={"event": "task_started", "task": self.name, "interval": self.interval},
        )

    def stop(self, timeout: float = 5.0) -> bool:
        """
        Stop the thread and wait for an in-flight tick.

        Returns:
            False if the thread did not finish within timeout
        """
        self._stop_event.set()
        if self._thread is None:
            return True

        self._thread.join(timeout=timeout)
        finished = not self._thread.is_alive()
        self._thread = None

        logger.info(
            f"Periodic task {self.name} stopped",
            extra={"event": "task_stopped", "task": self.name, "finished": finished},
        )
        return finished

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> bool:
        """
        Execute one tick now in the calling thread.

        Returns:
            False if a tick was already running (skipped), True otherwise
        """
        if not self._busy.acquire(blocking=False):
            logger.debug(
                f"Tick of {self.name} skipped, previous tick still running",
                extra={"event": "tick_skipped", "task": self.name},
            )
            return False

        try:
            with trace_context(generate_trace_id(self.trace_prefix)):
                self.action()
        except Exception as e:
            logger.error(
                f"Tick of {self.name} failed: {e}",
                extra={
                    "event": "tick_failed",
                    "task": self.name,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
        finally:
            self._busy.release()
        return True

    def _loop(self) -> None:
        while not self._stop_event.wait(timeout=self.interval):
            self.run_once()


class ReconciliationScheduler:
    """
    Diff-and-publish engine between the NVR and MQTT.

    Args:
        nvr: NVR client (NvrClient protocol)
        broker: MQTT client (MessageBroker protocol)
        store: Shared CameraStateStore
        topic_root: unifi/video/{nvr_name}
        refresh_interval: Seconds between attribute refreshes
        detect_motion_refresh_interval: Seconds between motion refreshes
        motion_window_seconds: Look-back window for motion recordings
        qos: QoS of state publishes
        clock: Returns "now" as an aware datetime (tests inject a fake)

    Usage:
        >>> scheduler = ReconciliationScheduler(nvr, client, store, "unifi/video/home")
        >>> scheduler.initial_sync()   # blocking, raises StartupError
        >>> scheduler.start()
        >>> ...
        >>> scheduler.stop()
    """

    def __init__(
        self,
        nvr: NvrClient,
        broker: MessageBroker,
        store: CameraStateStore,
        topic_root: str,
        refresh_interval: float = 60.0,
        detect_motion_refresh_interval: float = 1.0,
        motion_window_seconds: int = 1800,
        qos: int = 1,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.nvr = nvr
        self.broker = broker
        self.store = store
        self.topic_root = topic_root
        self.motion_window = timedelta(seconds=motion_window_seconds)
        self.qos = qos
        self.clock = clock

        self.attribute_task = PeriodicTask(
            "attribute-refresh", refresh_interval, self.refresh_attributes, trace_prefix="attr"
        )
        self.motion_task = PeriodicTask(
            "motion-refresh", detect_motion_refresh_interval, self.refresh_motion, trace_prefix="motion"
        )

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def initial_sync(self) -> None:
        """
        Populate the store from a full camera fetch, without publishing.

        The first attribute and motion ticks announce every camera because
        nothing has been recorded as published yet.

        Raises:
            StartupError: If the camera fetch fails
        """
        try:
            cameras = self.nvr.list_cameras()
        except Exception as e:
            raise StartupError(f"Initial camera sync failed: {e}") from e

        self.store.replace_cameras(self._index(cameras))

        logger.info(
            f"Initial sync loaded {len(self.store)} cameras",
            extra={
                "event": "initial_sync_completed",
                "camera_count": len(self.store),
                "fetched_count": len(cameras),
            },
        )

    def start(self) -> None:
        self.attribute_task.start()
        self.motion_task.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop both timers. A timer that does not stop in time is logged."""
        for task in (self.attribute_task, self.motion_task):
            try:
                if not task.stop(timeout=timeout):
                    logger.warning(
                        f"Periodic task {task.name} did not stop within {timeout}s",
                        extra={"event": "task_stop_timeout", "task": task.name},
                    )
            except Exception as e:
                logger.error(
                    f"Failed to stop periodic task {task.name}: {e}",
                    extra={"event": "task_stop_failed", "task": task.name},
                    exc_info=True,
                )

    # ========================================================================
    # Ticks
    # ========================================================================

    def refresh_attributes(self) -> int:
        """
        One attribute tick.

        Returns:
            Number of recordMode messages published
        """
        try:
            cameras = self.nvr.list_cameras()
            changed = self.store.replace_cameras(self._index(cameras))

            published = 0
            for camera in self.store.cameras():
                mode = camera.record_mode
                previous = self.store.record_record_mode(camera.id, mode)
                if camera.id not in changed and previous == mode:
                    continue

                topic = camera_topic(self.topic_root, self.store.slug_for(camera.id), RECORD_MODE_SUBTOPIC)
                if self._publish(topic, mode.value):
                    published += 1
                else:
                    self.store.forget_record_mode(camera.id)
        except StoreClosedError:
            logger.debug(
                "Attribute refresh discarded, store closed",
                extra={"event": "attribute_refresh_discarded"},
            )
            return 0

        logger.debug(
            f"Attribute refresh: {len(cameras)} cameras, {published} published",
            extra={
                "event": "attribute_refresh_completed",
                "camera_count": len(cameras),
                "changed_count": len(changed),
                "published_count": published,
            },
        )
        return published

    def refresh_motion(self) -> int:
        """
        One motion tick.

        Returns:
            Number of motion messages published
        """
        try:
            camera_ids = self.store.camera_ids()
            if not camera_ids:
                return 0

            now = self.clock()
            recordings = self.nvr.list_recordings(
                now - self.motion_window, now, camera_ids, [RecordingEventType.MOTION]
            )

            active: Set[str] = {
                r.camera_id for r in recordings if r.in_progress and r.camera_id is not None
            }

            published = 0
            for camera_id in camera_ids:
                state = MotionState.OPEN if camera_id in active else MotionState.CLOSED
                previous = self.store.record_motion_state(camera_id, state)
                if previous == state:
                    continue

                slug = self.store.slug_for(camera_id)
                if slug is None:
                    # Dropped by a concurrent attribute refresh
                    self.store.forget_motion_state(camera_id)
                    continue

                topic = camera_topic(self.topic_root, slug, MOTION_SUBTOPIC)
                if self._publish(topic, state.value):
                    published += 1
                    logger.info(
                        f"Motion {state.value} on {slug}",
                        extra={"event": "motion_changed", "camera_id": camera_id, "state": state.value},
                    )
                else:
                    self.store.forget_motion_state(camera_id)
        except StoreClosedError:
            logger.debug(
                "Motion refresh discarded, store closed",
                extra={"event": "motion_refresh_discarded"},
            )
            return 0

        return published

    # ========================================================================
    # Private
    # ========================================================================

    def _publish(self, topic: str, payload: str) -> bool:
        """
        Publish retained.

        Returns:
            True if the message was sent or queued by the client, False if it
            was rejected and the caller should publish it again next tick
        """
        try:
            result = self.broker.publish(topic, payload, qos=self.qos, retain=True)
        except Exception as e:
            logger.error(
                f"Failed to publish to {topic}: {e}",
                extra={"event": "publish_failed", "topic": topic, "error_type": type(e).__name__},
                exc_info=True,
            )
            return False

        rc = getattr(result, "rc", mqtt.MQTT_ERR_SUCCESS)
        if rc == mqtt.MQTT_ERR_NO_CONN and self.qos > 0:
            # paho keeps QoS>0 messages and sends them once reconnected
            logger.debug(
                f"Queued {payload!r} to {topic} until the broker reconnects",
                extra={"event": "state_queued", "topic": topic, "payload": payload},
            )
            return True

        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(
                f"Failed to publish to {topic}: {mqtt.error_string(rc)}",
                extra={"event": "publish_failed", "topic": topic, "return_code": rc},
            )
            return False

        logger.debug(
            f"Published {payload!r} to {topic}",
            extra={"event": "state_published", "topic": topic, "payload": payload},
        )
        return True

    @staticmethod
    def _index(cameras) -> Dict[str, Camera]:
        return {camera.id: camera for camera in cameras}
