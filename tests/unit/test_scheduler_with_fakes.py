"""
Unit tests for ReconciliationScheduler using fake NVR and broker
================================================================

Covers the publish invariants:
- first observation always publishes (even "close" / "none")
- no republish while nothing changes
- failed ticks neither publish nor mutate state
"""

import threading
import time
from datetime import timedelta

import paho.mqtt.client as mqtt
import pytest

from unifi_video_mqtt.bridge.camera_store import CameraStateStore
from unifi_video_mqtt.bridge.scheduler import PeriodicTask, ReconciliationScheduler
from unifi_video_mqtt.errors import NvrError, StartupError
from unifi_video_mqtt.nvr.schema import RecordingEventType

from fakes import FakeClock, FakeMessageBroker, FakeNvrClient, make_camera, make_recording

ROOT = "unifi/video/home"
FRONT_MOTION = f"{ROOT}/camera/front-door/motion"
FRONT_MODE = f"{ROOT}/camera/front-door/recordMode"
GARAGE_MOTION = f"{ROOT}/camera/garage/motion"
GARAGE_MODE = f"{ROOT}/camera/garage/recordMode"


@pytest.fixture
def nvr():
    return FakeNvrClient(
        cameras=[
            make_camera("a", "Front Door", full_time=True),
            make_camera("b", "Garage"),
        ]
    )


@pytest.fixture
def broker():
    broker = FakeMessageBroker()
    broker.connect("localhost", 1883)
    return broker


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(nvr, broker, clock):
    return ReconciliationScheduler(
        nvr=nvr,
        broker=broker,
        store=CameraStateStore(),
        topic_root=ROOT,
        clock=clock,
    )


class TestInitialSync:
    def test_populates_store_without_publishing(self, scheduler, broker):
        scheduler.initial_sync()

        assert len(scheduler.store) == 2
        assert scheduler.store.resolve_slug("front-door") == "a"
        assert broker.published == []

    def test_fetch_failure_is_fatal(self, scheduler, nvr):
        nvr.list_cameras_error = NvrError("connection refused")

        with pytest.raises(StartupError, match="Initial camera sync failed"):
            scheduler.initial_sync()

        assert len(scheduler.store) == 0


class TestAttributeRefresh:
    def test_first_tick_announces_every_camera_once(self, scheduler, broker):
        scheduler.initial_sync()

        assert scheduler.refresh_attributes() == 2

        assert broker.payloads_for(FRONT_MODE) == ["always"]
        assert broker.payloads_for(GARAGE_MODE) == ["none"]

    def test_publishes_are_retained_at_least_once(self, scheduler, broker):
        scheduler.initial_sync()
        scheduler.refresh_attributes()

        for _, _, qos, retain in broker.published:
            assert qos == 1
            assert retain is True

    def test_no_redundant_publish(self, scheduler, broker):
        scheduler.initial_sync()
        for _ in range(5):
            scheduler.refresh_attributes()

        assert len(broker.published) == 2

    def test_tick_without_initial_sync_still_announces(self, scheduler, broker):
        scheduler.refresh_attributes()
        scheduler.refresh_attributes()

        assert broker.payloads_for(FRONT_MODE) == ["always"]
        assert broker.payloads_for(GARAGE_MODE) == ["none"]

    def test_setting_change_republishes_only_that_camera(self, scheduler, broker, nvr):
        scheduler.initial_sync()
        scheduler.refresh_attributes()

        nvr.cameras = [
            make_camera("a", "Front Door", full_time=True),
            make_camera("b", "Garage", full_time=True, motion=True),
        ]
        assert scheduler.refresh_attributes() == 1

        assert broker.payloads_for(GARAGE_MODE) == ["none", "motion"]
        assert broker.payloads_for(FRONT_MODE) == ["always"]

    def test_new_camera_is_announced(self, scheduler, broker, nvr):
        scheduler.initial_sync()
        scheduler.refresh_attributes()

        nvr.cameras.append(make_camera("c", "Back Yard", motion=True))
        scheduler.refresh_attributes()

        assert broker.payloads_for(f"{ROOT}/camera/back-yard/recordMode") == ["motion"]
        assert len(broker.published) == 3

    def test_removed_camera_is_not_retracted(self, scheduler, broker, nvr):
        scheduler.initial_sync()
        scheduler.refresh_attributes()

        nvr.cameras = [make_camera("a", "Front Door", full_time=True)]
        scheduler.refresh_attributes()

        assert broker.payloads_for(GARAGE_MODE) == ["none"]
        assert "b" not in scheduler.store

    def test_fetch_failure_publishes_nothing_and_keeps_snapshot(self, scheduler, broker, nvr):
        scheduler.initial_sync()
        nvr.list_cameras_error = NvrError("timeout")

        with pytest.raises(NvrError):
            scheduler.refresh_attributes()

        assert broker.published == []
        assert len(scheduler.store) == 2

        nvr.list_cameras_error = None
        assert scheduler.refresh_attributes() == 2

    def test_rejected_publish_is_retried_next_tick(self, scheduler, broker):
        scheduler.initial_sync()
        broker.reject_rc = mqtt.MQTT_ERR_QUEUE_SIZE
        assert scheduler.refresh_attributes() == 0

        broker.reject_rc = None
        assert scheduler.refresh_attributes() == 2
        assert broker.payloads_for(FRONT_MODE) == ["always"]

    def test_publish_exception_is_retried_next_tick(self, scheduler, broker):
        scheduler.initial_sync()
        broker.publish_error = ValueError("Invalid topic")
        assert scheduler.refresh_attributes() == 0
        assert scheduler.refresh_motion() == 0

        broker.publish_error = None
        assert scheduler.refresh_attributes() == 2
        assert scheduler.refresh_motion() == 2

    def test_tick_after_store_closed_is_discarded(self, scheduler, broker):
        scheduler.initial_sync()
        scheduler.store.close()

        assert scheduler.refresh_attributes() == 0
        assert broker.published == []


class TestMotionRefresh:
    def test_first_tick_announces_closed_cameras(self, scheduler, broker):
        scheduler.initial_sync()

        assert scheduler.refresh_motion() == 2

        assert broker.payloads_for(FRONT_MOTION) == ["close"]
        assert broker.payloads_for(GARAGE_MOTION) == ["close"]

    def test_in_progress_recording_opens_camera(self, scheduler, broker, nvr):
        scheduler.initial_sync()
        nvr.recordings = [make_recording("a", in_progress=True), make_recording("b", in_progress=False)]

        scheduler.refresh_motion()

        assert broker.payloads_for(FRONT_MOTION) == ["open"]
        assert broker.payloads_for(GARAGE_MOTION) == ["close"]

    def test_motion_transition_open_then_close(self, scheduler, broker, nvr, clock):
        scheduler.initial_sync()

        nvr.recordings = [make_recording("a", in_progress=True)]
        scheduler.refresh_motion()

        clock.advance(30 * 60)
        nvr.recordings = []
        scheduler.refresh_motion()
        scheduler.refresh_motion()

        assert broker.payloads_for(FRONT_MOTION) == ["open", "close"]

    def test_no_redundant_publish(self, scheduler, broker, nvr):
        scheduler.initial_sync()
        nvr.recordings = [make_recording("a")]

        for _ in range(5):
            scheduler.refresh_motion()

        assert broker.payloads_for(FRONT_MOTION) == ["open"]
        assert broker.payloads_for(GARAGE_MOTION) == ["close"]

    def test_queries_last_half_hour_of_motion_for_known_cameras(self, scheduler, nvr, clock):
        scheduler.initial_sync()
        scheduler.refresh_motion()

        start, end, camera_ids, event_types = nvr.recording_queries[0]
        assert end == clock.now
        assert end - start == timedelta(seconds=1800)
        assert sorted(camera_ids) == ["a", "b"]
        assert event_types == [RecordingEventType.MOTION]

    def test_recording_for_unknown_camera_ignored(self, scheduler, broker, nvr):
        scheduler.initial_sync()
        nvr.recordings = [make_recording("zzz")]

        scheduler.refresh_motion()

        assert len(broker.published) == 2
        assert all(payload == "close" for _, payload, _, _ in broker.published)

    def test_empty_store_skips_fetch(self, scheduler, nvr):
        assert scheduler.refresh_motion() == 0
        assert nvr.recording_queries == []

    def test_fetch_failure_publishes_nothing(self, scheduler, broker, nvr):
        scheduler.initial_sync()
        nvr.list_recordings_error = NvrError("HTTP 500")

        with pytest.raises(NvrError):
            scheduler.refresh_motion()

        assert broker.published == []
        nvr.list_recordings_error = None
        assert scheduler.refresh_motion() == 2

    def test_motion_uses_current_slug_after_rename(self, scheduler, broker, nvr):
        scheduler.initial_sync()
        scheduler.refresh_motion()

        nvr.cameras = [make_camera("a", "Porch", full_time=True), make_camera("b", "Garage")]
        scheduler.refresh_attributes()
        nvr.recordings = [make_recording("a")]
        scheduler.refresh_motion()

        assert broker.payloads_for(f"{ROOT}/camera/porch/motion") == ["open"]
        assert broker.payloads_for(FRONT_MOTION) == ["close"]

    def test_first_publish_property_across_both_timers(self, scheduler, broker):
        scheduler.initial_sync()
        for _ in range(3):
            scheduler.refresh_attributes()
            scheduler.refresh_motion()

        topics = [topic for topic, _, _, _ in broker.published]
        assert sorted(topics) == sorted([FRONT_MODE, GARAGE_MODE, FRONT_MOTION, GARAGE_MOTION])


class TestPeriodicTask:
    def test_exception_does_not_stop_future_ticks(self):
        calls = []
        ticked_twice = threading.Event()

        def action():
            calls.append(1)
            if len(calls) >= 2:
                ticked_twice.set()
            raise RuntimeError("boom")

        task = PeriodicTask("failing", 0.01, action)
        task.start()
        try:
            assert ticked_twice.wait(timeout=2.0)
        finally:
            assert task.stop(timeout=2.0)

        assert not task.is_running

    def test_run_once_skips_while_busy(self):
        entered = threading.Event()
        release = threading.Event()

        def slow_action():
            entered.set()
            release.wait(timeout=2.0)

        task = PeriodicTask("slow", 60, slow_action)
        worker = threading.Thread(target=task.run_once)
        worker.start()
        try:
            assert entered.wait(timeout=2.0)
            assert task.run_once() is False
        finally:
            release.set()
            worker.join(timeout=2.0)

        assert task.run_once() is True

    def test_stop_before_start_is_noop(self):
        task = PeriodicTask("idle", 1, lambda: None)
        assert task.stop() is True

    def test_scheduler_timers_publish(self, nvr, broker, clock):
        scheduler = ReconciliationScheduler(
            nvr=nvr,
            broker=broker,
            store=CameraStateStore(),
            topic_root=ROOT,
            refresh_interval=0.01,
            detect_motion_refresh_interval=0.01,
            clock=clock,
        )
        scheduler.initial_sync()
        scheduler.start()
        try:
            deadline = time.monotonic() + 2.0
            while len(broker.published) < 4 and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            scheduler.stop()

        assert len(broker.published) == 4


class TestBrokerOutage:
    def test_outage_delivers_each_state_once(self, scheduler, broker, nvr):
        scheduler.initial_sync()
        broker.drop_connection()

        for _ in range(10):
            scheduler.refresh_attributes()
            scheduler.refresh_motion()

        assert broker.published == []
        assert len(broker.queued) == 4

        broker.reconnect()
        for _ in range(3):
            scheduler.refresh_attributes()
            scheduler.refresh_motion()

        topics = [topic for topic, _, _, _ in broker.published]
        assert sorted(topics) == sorted([FRONT_MODE, GARAGE_MODE, FRONT_MOTION, GARAGE_MOTION])

    def test_change_during_outage_is_queued_once(self, scheduler, broker, nvr):
        scheduler.initial_sync()
        scheduler.refresh_motion()
        broker.drop_connection()

        nvr.recordings = [make_recording("a")]
        for _ in range(5):
            scheduler.refresh_motion()
        broker.reconnect()

        assert broker.payloads_for(FRONT_MOTION) == ["close", "open"]

    def test_publish_before_connack_is_not_duplicated(self, nvr, clock):
        broker = FakeMessageBroker()
        scheduler = ReconciliationScheduler(
            nvr=nvr, broker=broker, store=CameraStateStore(), topic_root=ROOT, clock=clock
        )
        scheduler.initial_sync()
        scheduler.refresh_motion()
        scheduler.refresh_motion()

        broker.connect("localhost", 1883)

        assert broker.payloads_for(FRONT_MOTION) == ["close"]
        assert broker.payloads_for(GARAGE_MOTION) == ["close"]

    def test_qos0_publish_while_disconnected_is_retried(self, nvr, broker, clock):
        scheduler = ReconciliationScheduler(
            nvr=nvr, broker=broker, store=CameraStateStore(), topic_root=ROOT, qos=0, clock=clock
        )
        scheduler.initial_sync()
        broker.drop_connection()
        assert scheduler.refresh_attributes() == 0
        assert broker.queued == []

        broker.reconnect()
        assert scheduler.refresh_attributes() == 2
        assert broker.payloads_for(FRONT_MODE) == ["always"]
