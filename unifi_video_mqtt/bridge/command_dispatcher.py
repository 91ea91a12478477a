"""
Command Dispatcher
==================

Turns inbound MQTT messages on {root}/camera/{slug}/{subtopic}/set into NVR
calls.

Unresolvable messages (foreign topic shape, unknown slug, unknown subtopic,
undecodable payload) are logged and dropped; nothing is raised back into the
MQTT network thread. NVR failures are logged and not retried: the next
attribute refresh publishes whatever state the NVR ended up in.
"""

from typing import Callable, Dict, Union

from unifi_video_mqtt.bridge.camera_store import CameraStateStore
from unifi_video_mqtt.bridge.topics import RECORD_MODE_SUBTOPIC, parse_command_topic
from unifi_video_mqtt.errors import StoreClosedError
from unifi_video_mqtt.interfaces import NvrClient
from unifi_video_mqtt.logging_utils import generate_trace_id, get_component_logger, trace_context
from unifi_video_mqtt.nvr.schema import RecordMode

logger = get_component_logger(__name__, "dispatcher")

CommandHandler = Callable[[str, str], None]
"""Handler signature: (camera_id, payload_text) -> None"""


class CommandNotAvailableError(Exception):
    """Subtopic has no registered handler."""
    pass


class CommandRegistry:
    """
    Registry of command subtopics.

    Usage:
        registry = CommandRegistry()
        registry.register("recordMode", handle_record_mode, "Set record mode")
        registry.execute("recordMode", camera_id, "always")
    """

    def __init__(self):
        self._commands: Dict[str, CommandHandler] = {}
        self._descriptions: Dict[str, str] = {}

    def register(self, subtopic: str, handler: CommandHandler, description: str = ""):
        if subtopic in self._commands:
            logger.warning(
                f"Command '{subtopic}' already registered, overwriting",
                extra={"event": "command_overwritten", "subtopic": subtopic},
            )

        self._commands[subtopic] = handler
        self._descriptions[subtopic] = description

    def execute(self, subtopic: str, camera_id: str, payload: str) -> None:
        if subtopic not in self._commands:
            available = ", ".join(sorted(self._commands))
            raise CommandNotAvailableError(
                f"Command '{subtopic}' not available. Available: {available}"
            )
        self._commands[subtopic](camera_id, payload)

    def get_help(self) -> Dict[str, str]:
        return dict(self._descriptions)


class CommandDispatcher:
    """
    Inbound command handler, usable directly as paho's on_message callback.

    Args:
        nvr: NVR client (NvrClient protocol)
        store: Shared CameraStateStore, used to resolve slugs
        topic_root: unifi/video/{nvr_name}

    Example:
        >>> dispatcher = CommandDispatcher(nvr, store, "unifi/video/home")
        >>> client.on_message = dispatcher.on_message
    """

    def __init__(self, nvr: NvrClient, store: CameraStateStore, topic_root: str):
        self.nvr = nvr
        self.store = store
        self.topic_root = topic_root

        self.registry = CommandRegistry()
        self.registry.register(RECORD_MODE_SUBTOPIC, self.handle_record_mode, "Set camera record mode")

    def on_message(self, client, userdata, msg) -> None:
        """paho on_message callback."""
        try:
            self.handle(msg.topic, msg.payload)
        except Exception as e:
            # Never let an exception reach paho's network loop
            logger.error(
                f"Error processing MQTT message on {msg.topic}: {e}",
                extra={"event": "message_processing_error", "mqtt_topic": msg.topic},
                exc_info=True,
            )

    def handle(self, topic: str, payload: Union[bytes, str]) -> bool:
        """
        Dispatch one command message.

        Returns:
            True if an NVR call was made and succeeded, False if the message
            was dropped or the call failed
        """
        with trace_context(generate_trace_id("cmd")):
            command = parse_command_topic(topic, self.topic_root)
            if command is None:
                logger.debug(
                    f"Ignoring message on non-command topic {topic}",
                    extra={"event": "command_topic_ignored", "mqtt_topic": topic},
                )
                return False

            try:
                camera_id = self.store.resolve_slug(command.slug)
            except StoreClosedError:
                logger.debug(
                    "Command dropped, store closed",
                    extra={"event": "command_discarded", "slug": command.slug},
                )
                return False

            if camera_id is None:
                logger.info(
                    f"Command for unknown camera {command.slug!r} dropped",
                    extra={"event": "command_unknown_camera", "slug": command.slug},
                )
                return False

            try:
                text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            except UnicodeDecodeError:
                logger.info(
                    f"Command payload for {command.slug!r} is not UTF-8, dropped",
                    extra={"event": "command_invalid_payload", "slug": command.slug},
                )
                return False

            logger.info(
                f"Command {command.subtopic}={text!r} for {command.slug}",
                extra={
                    "event": "command_received",
                    "slug": command.slug,
                    "camera_id": camera_id,
                    "subtopic": command.subtopic,
                    "payload": text,
                },
            )

            try:
                self.registry.execute(command.subtopic, camera_id, text)
            except CommandNotAvailableError:
                logger.info(
                    f"Ignoring unknown command subtopic {command.subtopic!r}",
                    extra={
                        "event": "command_unknown_subtopic",
                        "subtopic": command.subtopic,
                        "available_commands": self.registry.get_help(),
                    },
                )
                return False
            except Exception as e:
                logger.error(
                    f"Command {command.subtopic} for {command.slug} failed: {e}",
                    extra={
                        "event": "command_failed",
                        "slug": command.slug,
                        "camera_id": camera_id,
                        "subtopic": command.subtopic,
                        "error_type": type(e).__name__,
                    },
                    exc_info=True,
                )
                return False

            return True

    def handle_record_mode(self, camera_id: str, payload: str) -> None:
        """recordMode/set: always | motion | anything else -> none"""
        mode = RecordMode.from_payload(payload)
        self.nvr.set_record_mode(camera_id, mode)
