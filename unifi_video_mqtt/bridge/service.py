"""
UniFi Video MQTT Service - Main Orchestrator
============================================

Wires the NVR client, the camera state store, the reconciliation scheduler
and the command dispatcher to one MQTT client, and owns their lifecycle.

Start order:
1. NVR client
2. Initial sync (blocking; failure aborts startup)
3. MQTT client + command subscription
4. Refresh timers

Stop order is the reverse. Every step of stop() is attempted even when an
earlier one fails.
"""

import signal
import threading
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from unifi_video_mqtt.bridge.camera_store import CameraStateStore
from unifi_video_mqtt.bridge.command_dispatcher import CommandDispatcher
from unifi_video_mqtt.bridge.config import BridgeConfig
from unifi_video_mqtt.bridge.scheduler import ReconciliationScheduler
from unifi_video_mqtt.bridge.topics import command_subscription
from unifi_video_mqtt.errors import StartupError
from unifi_video_mqtt.interfaces import MessageBroker, NvrClient
from unifi_video_mqtt.logging_utils import get_component_logger
from unifi_video_mqtt.nvr.client import UniFiVideoClient

logger = get_component_logger(__name__, "service")


class UniFiVideoMqttService:
    """
    Bridge service between one UniFi Video NVR and an MQTT broker.

    Args:
        config: BridgeConfig instance
        nvr_client: Optional NVR client; built from config when omitted
        mqtt_client: Optional MQTT client; a paho client is built when omitted
        clock: Optional clock for the motion window (tests)

    Example:
        >>> service = UniFiVideoMqttService(BridgeConfig(nvr_host="https://nvr:7443"))
        >>> service.install_signal_handlers()
        >>> service.start()
        >>> service.join()  # Blocks until SIGINT/SIGTERM or stop()
    """

    def __init__(
        self,
        config: BridgeConfig,
        nvr_client: Optional[NvrClient] = None,
        mqtt_client: Optional[MessageBroker] = None,
        clock: Optional[Callable] = None,
    ):
        self.config = config
        self.nvr: Optional[NvrClient] = nvr_client
        self.mqtt_client: Optional[MessageBroker] = mqtt_client
        self._clock = clock

        self.store: Optional[CameraStateStore] = None
        self.scheduler: Optional[ReconciliationScheduler] = None
        self.dispatcher: Optional[CommandDispatcher] = None

        self.is_running = False
        self._stop_event = threading.Event()
        self._stop_lock = threading.Lock()
        self._stopped = False
        self._connected = threading.Event()

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start(self) -> None:
        """
        Start the bridge. Blocks until the initial camera sync completed.

        Raises:
            StartupError: If the initial sync or the broker connection fails.
                All acquired resources are released before raising. Also
                raised when the service was already stopped; a stopped
                service cannot be restarted.
        """
        with self._stop_lock:
            if self._stopped:
                raise StartupError("Service already stopped, create a new instance")

        logger.info(
            f"Starting UniFi Video MQTT bridge for NVR {self.config.nvr_name!r}",
            extra={"event": "service_start", "config": self.config.to_status_dict()},
        )

        try:
            if self.nvr is None:
                self.nvr = UniFiVideoClient(
                    host=self.config.nvr_host,
                    username=self.config.nvr_username,
                    password=self.config.nvr_password,
                    disable_ssl_check=self.config.nvr_disable_ssl_check,
                    timeout=self.config.http_timeout,
                )

            self.store = CameraStateStore()
            if self.mqtt_client is None:
                self.mqtt_client = self._build_mqtt_client()

            scheduler_kwargs = {}
            if self._clock is not None:
                scheduler_kwargs["clock"] = self._clock
            self.scheduler = ReconciliationScheduler(
                nvr=self.nvr,
                broker=self.mqtt_client,
                store=self.store,
                topic_root=self.config.topic_root,
                refresh_interval=self.config.refresh_interval,
                detect_motion_refresh_interval=self.config.detect_motion_refresh_interval,
                motion_window_seconds=self.config.motion_window_seconds,
                qos=self.config.mqtt_qos,
                **scheduler_kwargs,
            )
            self.dispatcher = CommandDispatcher(
                nvr=self.nvr, store=self.store, topic_root=self.config.topic_root
            )

            self.scheduler.initial_sync()
            self._connect_mqtt()
            self.scheduler.start()

        except Exception as e:
            logger.error(
                f"Bridge startup failed: {e}",
                extra={
                    "event": "service_start_failed",
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            self.stop()
            if isinstance(e, StartupError):
                raise
            raise StartupError(f"Bridge startup failed: {e}") from e

        self.is_running = True
        logger.info(
            "✅ Bridge running",
            extra={
                "event": "service_running",
                "camera_count": len(self.store),
                "command_topic": command_subscription(self.config.topic_root),
            },
        )

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Block until stop() is requested, then shut down.

        Returns:
            True if the service stopped, False on timeout
        """
        if not self._stop_event.wait(timeout=timeout):
            return False
        self.stop()
        return True

    def request_stop(self) -> None:
        """Ask join() to return; safe from signal handlers."""
        self._stop_event.set()

    def stop(self) -> None:
        """
        Stop timers, discard state, disconnect MQTT and release the NVR client.

        Idempotent. Failures are logged and do not prevent later steps.
        """
        with self._stop_lock:
            if self._stopped:
                return
            self._stopped = True

        self._stop_event.set()
        self.is_running = False

        logger.info("Performing shutdown cleanup", extra={"event": "shutdown_cleanup_start"})

        if self.scheduler is not None:
            self._dispose("scheduler", self.scheduler.stop)
        if self.store is not None:
            self._dispose("store", self.store.close)
        if self.mqtt_client is not None:
            self._dispose("mqtt", self._disconnect_mqtt)
        if self.nvr is not None:
            self._dispose("nvr_client", self.nvr.close)

        logger.info("Bridge stopped", extra={"event": "service_stopped"})

    def install_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to request_stop(). Main thread only."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    # ========================================================================
    # MQTT callbacks
    # ========================================================================

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Subscribe on every (re)connect; subscriptions don't survive a clean session."""
        if getattr(reason_code, "is_failure", reason_code != 0):
            logger.error(
                f"MQTT connection refused: {reason_code}",
                extra={"event": "broker_connection_failed", "return_code": str(reason_code)},
            )
            return

        topic = command_subscription(self.config.topic_root)
        client.subscribe(topic, qos=self.config.mqtt_qos)
        self._connected.set()

        logger.info(
            f"Connected to MQTT broker, subscribed to {topic}",
            extra={
                "event": "broker_connected",
                "broker_host": self.config.mqtt_host,
                "broker_port": self.config.mqtt_port,
                "subscription": topic,
            },
        )

    def _on_disconnect(self, client, userdata, flags=None, reason_code=None, properties=None):
        self._connected.clear()
        logger.warning(
            "Disconnected from MQTT broker",
            extra={"event": "broker_disconnected", "return_code": str(reason_code)},
        )

    # ========================================================================
    # Private
    # ========================================================================

    def _build_mqtt_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.config.mqtt_client_id,
        )
        if self.config.mqtt_username:
            client.username_pw_set(self.config.mqtt_username, self.config.mqtt_password)
        return client

    def _connect_mqtt(self) -> None:
        client = self.mqtt_client
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self.dispatcher.on_message

        logger.info(
            f"Connecting to MQTT broker at {self.config.mqtt_host}:{self.config.mqtt_port}",
            extra={
                "event": "mqtt_connection_start",
                "mqtt_host": self.config.mqtt_host,
                "mqtt_port": self.config.mqtt_port,
            },
        )
        try:
            client.connect(self.config.mqtt_host, self.config.mqtt_port, keepalive=self.config.mqtt_keepalive)
        except Exception as e:
            raise StartupError(
                f"Cannot connect to MQTT broker {self.config.mqtt_host}:{self.config.mqtt_port}: {e}"
            ) from e
        client.loop_start()

    def _disconnect_mqtt(self) -> None:
        self.mqtt_client.disconnect()
        self.mqtt_client.loop_stop()

    def _dispose(self, name: str, action: Callable[[], None]) -> None:
        try:
            action()
        except Exception as e:
            logger.error(
                f"Failed to release {name}: {e}",
                extra={"event": "dispose_failed", "resource": name, "error_type": type(e).__name__},
                exc_info=True,
            )

    def _signal_handler(self, signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down...",
            extra={"event": "signal_received", "signal": signum},
        )
        self.request_stop()
