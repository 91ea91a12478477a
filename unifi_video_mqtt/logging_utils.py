"""
Structured Logging Utilities
=============================

JSON or human-readable logging for the bridge process.

- trace_context: propagates a trace_id across one tick or one command
- setup_structured_logging: configures the root logger once at startup
- ComponentLogger: LoggerAdapter adding 'component' (and 'trace_id') to records

Call sites log directly: logger.info(msg, extra={"event": ..., ...}).
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# ============================================================================
# Trace Context
# ============================================================================

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)


def get_trace_id() -> Optional[str]:
    """Return the trace_id of the current context, if any."""
    return trace_id_var.get()


def generate_trace_id(prefix: str = "trace") -> str:
    """
    Generate a short unique trace id.

    Args:
        prefix: Trace kind ("cmd", "attr", "motion", ...)

    Returns:
        Trace id formatted as {prefix}-{8 hex chars}
    """
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@contextmanager
def trace_context(trace_id: Optional[str] = None):
    """
    Bind a trace_id for everything logged inside the block.

    Usage:
        with trace_context(generate_trace_id("motion")):
            scheduler.refresh_motion()
    """
    if trace_id is None:
        trace_id = generate_trace_id()

    token = trace_id_var.set(trace_id)
    try:
        yield trace_id
    finally:
        trace_id_var.reset(token)


# ============================================================================
# Logger Setup
# ============================================================================

def setup_structured_logging(
    level: str = "INFO",
    json_format: bool = True,
    indent: Optional[int] = None,
    output_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines (python-json-logger) if True, else human-readable
        indent: JSON indent (None = compact)
        output_file: Log file path (None = stdout). Files are rotated.
        max_bytes: Rotation size per file
        backup_count: Number of rotated files to keep
    """
    if json_format:
        from pythonjsonlogger import jsonlogger

        class BridgeJsonFormatter(jsonlogger.JsonFormatter):
            def add_fields(self, log_record, record, message_dict):
                super().add_fields(log_record, record, message_dict)

                if "levelname" in log_record:
                    log_record["level"] = log_record.pop("levelname")

                if "name" in log_record:
                    log_record["logger"] = log_record.pop("name")

                current_trace_id = get_trace_id()
                if current_trace_id and "trace_id" not in log_record:
                    log_record["trace_id"] = current_trace_id

        formatter = BridgeJsonFormatter(
            "%(timestamp)s %(levelname)s %(name)s %(message)s",
            timestamp=True,
            json_indent=indent,
        )
    else:
        class HumanReadableFormatter(logging.Formatter):
            def __init__(self):
                super().__init__(
                    fmt="%(asctime)s | %(levelname)-8s | %(component)-18s | %(event)-24s | %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )

            def format(self, record: logging.LogRecord) -> str:
                if not hasattr(record, "component"):
                    record.component = record.name.split(".")[-1]
                if not hasattr(record, "event"):
                    record.event = "-"
                return super().format(record)

        formatter = HumanReadableFormatter()

    class AutoFlushStreamHandler(logging.StreamHandler):
        """StreamHandler that flushes after every emit."""

        def emit(self, record):
            super().emit(record)
            self.flush()

    if output_file:
        log_path = Path(output_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            filename=str(log_path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    else:
        handler = AutoFlushStreamHandler(sys.stdout)

    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


# ============================================================================
# ComponentLogger
# ============================================================================

class ComponentLogger(logging.LoggerAdapter):
    """
    Logger adapter that adds 'component' and 'trace_id' to every record.

    Usage:
        >>> logger = ComponentLogger(logging.getLogger(__name__), {"component": "scheduler"})
        >>> logger.info("Tick done", extra={"event": "tick_done", "published": 2})

    Precedence: call-site extra > adapter extra > trace id from context.
    """

    def process(self, msg, kwargs):
        extra = dict(self.extra)

        trace_id = get_trace_id()
        if trace_id:
            extra["trace_id"] = trace_id

        if "extra" in kwargs:
            extra.update(kwargs["extra"])

        kwargs["extra"] = extra
        return msg, kwargs


def get_component_logger(name: str, component: str) -> ComponentLogger:
    """
    Get a logger that tags every record with the given component.

    Args:
        name: Logger name (usually __name__)
        component: Component name ("scheduler", "dispatcher", "nvr_client", ...)
    """
    return ComponentLogger(logging.getLogger(name), {"component": component})


__all__ = [
    "setup_structured_logging",
    "trace_context",
    "get_trace_id",
    "generate_trace_id",
    "ComponentLogger",
    "get_component_logger",
]
