"""Structured logging setup with JSON-lines output and credential redaction."""

from __future__ import annotations

import atexit
import contextvars
import json
import logging
import logging.handlers
import math
import queue
import re
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, cast

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

_REDACTED_VALUE: Final[str] = "***REDACTED***"
_DEFAULT_LOG_FILENAME: Final[str] = "fleetsim.jsonl"
_DEFAULT_LOGGER_NAME: Final[str] = "fleet_simulator"
_DEFAULT_QUEUE_SIZE: Final[int] = 4096

_CORRELATION_KEYS: Final[tuple[str, ...]] = (
    "session_id",
    "scenario_id",
    "command_id",
)

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "password",
    "passwd",
    "secret",
    "token",
    "credential",
)

# ipmitool takes its BMC password inline: ``ipmitool -U admin -P hunter2 ...``.
_IPMI_PASSWORD_PATTERN: Final[re.Pattern[str]] = re.compile(r"(\s-P\s+)(\S+)")
_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(password|passwd|secret|token)\b\s*([:=])\s*([^\s,;]+)"
)

_STANDARD_LOG_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)

_CorrelationState = tuple[tuple[str, str], ...]
_CORRELATION_CONTEXT: contextvars.ContextVar[_CorrelationState] = contextvars.ContextVar(
    "fleet_simulator_correlation", default=()
)

_ACTIVE_HANDLE_LOCK = threading.Lock()
_ACTIVE_HANDLE: StructuredLoggingHandle | None = None
_ATEXIT_REGISTERED = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for queue-backed structured logging.

    ``base_log_dir`` of ``None`` disables the file sink; records then only reach
    stderr (when ``log_to_stderr``) or are discarded.
    """

    session_id: str
    base_log_dir: Path | str | None = None
    logger_name: str = _DEFAULT_LOGGER_NAME
    level: int | str = "INFO"
    queue_size: int = _DEFAULT_QUEUE_SIZE
    log_filename: str = _DEFAULT_LOG_FILENAME
    log_to_stderr: bool = False
    rotating_file: bool = False
    max_bytes: int = 10_000_000
    backup_count: int = 5
    redactor: LogRedactor | None = None


def setup_logging(
    observability_config: Mapping[str, object] | None = None,
    *,
    session_id: str,
    log_dir: Path | str | None = None,
    logger_name: str = _DEFAULT_LOGGER_NAME,
) -> StructuredLoggingHandle:
    """Configure structured logging from an ``[observability]`` config section.

    Parameters
    ----------
    observability_config:
        Mapping compatible with ``[observability]`` settings in ``fleetsim.toml``.
    session_id:
        Correlation identifier used for the per-session log directory and event fields.
    log_dir:
        Optional override for the base log directory.
    logger_name:
        Logger name to configure.
    """

    cfg = dict(observability_config or {})
    raw_level = cfg.get("log_level", "INFO")
    level: int | str = raw_level if isinstance(raw_level, (int, str)) else "INFO"
    raw_dir: object = log_dir if log_dir is not None else cfg.get("log_dir", "")
    base_log_dir: Path | str | None = (
        raw_dir if isinstance(raw_dir, (Path, str)) and str(raw_dir).strip() else None
    )

    return setup_structured_logging(
        LoggingConfig(
            session_id=session_id,
            base_log_dir=base_log_dir,
            logger_name=logger_name,
            level=level,
            log_to_stderr=bool(cfg.get("log_to_stderr", False)),
        )
    )


class _DropCounter:
    """Thread-safe counter for dropped queue records."""

    __slots__ = ("_lock", "_value")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> None:
        with self._lock:
            self._value += 1

    def value(self) -> int:
        with self._lock:
            return self._value


class _NonBlockingQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that drops records when the queue is full."""

    def __init__(self, log_queue: queue.Queue[object], drop_counter: _DropCounter) -> None:
        super().__init__(log_queue)
        self._drop_counter = drop_counter

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Correlation lives in a contextvar, so it must be captured on the caller's thread.
        context = get_correlation_context()
        if context:
            record.correlation = context
        prepared = super().prepare(record)
        return cast("logging.LogRecord", prepared)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self._drop_counter.increment()


class _JsonLineFormatter(logging.Formatter):
    """Formatter that emits canonical JSON objects per log line."""

    def __init__(
        self,
        *,
        redactor: LogRedactor,
        base_context: Mapping[str, str],
    ) -> None:
        super().__init__()
        self._redactor = redactor
        self._base_context = dict(base_context)

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": _coerce_log_message(
                self._redactor(_normalize_json_value(record.getMessage()))
            ),
        }

        correlation = _merge_correlation_context(record, self._base_context)
        for key, value in sorted(correlation.items()):
            event[key] = value

        extras = _extract_extra_fields(record)
        if extras:
            event["fields"] = self._redactor(_normalize_json_value(extras))

        if record.exc_info is not None:
            event["exception"] = _coerce_log_message(
                self._redactor(_normalize_json_value(self.formatException(record.exc_info)))
            )

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StructuredLoggingHandle:
    """Runtime handle for an active structured logging setup."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        session_id: str,
        log_path: Path | None,
        log_queue: queue.Queue[object],
        queue_handler: _NonBlockingQueueHandler,
        sink_handlers: tuple[logging.Handler, ...],
        listener: logging.handlers.QueueListener,
        drop_counter: _DropCounter,
        previous_propagate: bool = True,
    ) -> None:
        self.logger = logger
        self.session_id = session_id
        self.log_path = log_path
        self._queue = log_queue
        self._queue_handler = queue_handler
        self._sink_handlers = sink_handlers
        self._listener = listener
        self._drop_counter = drop_counter
        self._previous_propagate = previous_propagate
        self._shutdown_lock = threading.Lock()
        self._is_shutdown = False

    @property
    def dropped_records(self) -> int:
        return self._drop_counter.value()

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while self._queue.unfinished_tasks > 0 and time.monotonic() < deadline:
            time.sleep(0.01)

        for handler in self._sink_handlers:
            handler.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._shutdown_lock:
            if self._is_shutdown:
                return

            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()

            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            self.logger.propagate = self._previous_propagate

            for handler in self._sink_handlers:
                handler.flush()
                handler.close()

            self._is_shutdown = True


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Configure queue-backed structured logging for one simulator session."""
    _shutdown_previous_active_handle()

    session_id = _validate_identifier(config.session_id, "session_id")
    queue_size = _validate_queue_size(config.queue_size)
    log_filename = _validate_log_filename(config.log_filename)
    logger_name = _validate_identifier(config.logger_name, "logger_name")
    level = _parse_log_level(config.level)

    redactor = config.redactor if config.redactor is not None else default_log_redactor
    formatter = _JsonLineFormatter(redactor=redactor, base_context={"session_id": session_id})

    sink_handlers: list[logging.Handler] = []
    log_path: Path | None = None
    if config.base_log_dir is not None:
        session_log_dir = Path(config.base_log_dir) / session_id
        session_log_dir.mkdir(parents=True, exist_ok=True)
        log_path = session_log_dir / log_filename
        file_handler: logging.Handler
        if config.rotating_file:
            file_handler = logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=max(1, int(config.max_bytes)),
                backupCount=max(1, int(config.backup_count)),
                encoding="utf-8",
            )
        else:
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
        sink_handlers.append(file_handler)

    if config.log_to_stderr:
        sink_handlers.append(logging.StreamHandler())

    if not sink_handlers:
        sink_handlers.append(logging.NullHandler())

    for handler in sink_handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logger = logging.getLogger(logger_name)
    previous_propagate = logger.propagate
    logger.setLevel(level)
    logger.propagate = False

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    log_queue: queue.Queue[object] = queue.Queue(maxsize=queue_size)
    drop_counter = _DropCounter()
    queue_handler = _NonBlockingQueueHandler(log_queue, drop_counter)
    queue_handler.setLevel(level)

    listener = logging.handlers.QueueListener(
        log_queue,
        *sink_handlers,
        respect_handler_level=True,
    )
    listener.start()

    logger.addHandler(queue_handler)

    handle = StructuredLoggingHandle(
        logger=logger,
        session_id=session_id,
        log_path=log_path,
        log_queue=log_queue,
        queue_handler=queue_handler,
        sink_handlers=tuple(sink_handlers),
        listener=listener,
        drop_counter=drop_counter,
        previous_propagate=previous_propagate,
    )

    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        _ACTIVE_HANDLE = handle

    _register_atexit_shutdown()
    return handle


def flush_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Flush queued logs to configured sinks."""
    resolved = _resolve_handle(handle)
    if resolved is not None:
        resolved.flush(timeout_seconds=timeout_seconds)


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Shutdown logging listener and close all sinks."""
    resolved = _resolve_handle(handle)
    if resolved is None:
        return

    resolved.shutdown(timeout_seconds=timeout_seconds)

    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        if _ACTIVE_HANDLE is resolved:
            _ACTIVE_HANDLE = None


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _ACTIVE_HANDLE_LOCK:
        return _ACTIVE_HANDLE


def get_correlation_context() -> dict[str, str]:
    """Return the current correlation context as a plain dictionary."""
    return dict(_CORRELATION_CONTEXT.get())


def set_correlation_fields(**fields: str | None) -> contextvars.Token[_CorrelationState]:
    """Set correlation fields for the active context and return a reset token.

    A ``None`` value removes the field.
    """
    state = get_correlation_context()
    for key, value in fields.items():
        key_name = _validate_identifier(key, "correlation key")
        if value is None:
            state.pop(key_name, None)
            continue
        state[key_name] = _validate_identifier(value, "correlation value")
    return _CORRELATION_CONTEXT.set(tuple(state.items()))


def reset_correlation_fields(token: contextvars.Token[_CorrelationState]) -> None:
    _CORRELATION_CONTEXT.reset(token)


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Temporarily bind correlation fields for log records in scope."""
    token = set_correlation_fields(**fields)
    try:
        yield
    finally:
        reset_correlation_fields(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Deep redaction of credential-like keys and inline BMC passwords."""
    return _redact_value(value, key_context=None)


def redact_command_line(line: str) -> str:
    """Mask credentials that operators type inline, e.g. ``ipmitool -P <password>``."""
    masked = _IPMI_PASSWORD_PATTERN.sub(lambda match: f"{match.group(1)}{_REDACTED_VALUE}", line)
    return _ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED_VALUE}", masked
    )


def _resolve_handle(handle: StructuredLoggingHandle | None) -> StructuredLoggingHandle | None:
    if handle is not None:
        return handle
    return get_active_logging_handle()


def _shutdown_previous_active_handle() -> None:
    existing = get_active_logging_handle()
    if existing is not None:
        existing.shutdown()

    with _ACTIVE_HANDLE_LOCK:
        global _ACTIVE_HANDLE
        _ACTIVE_HANDLE = None


def _register_atexit_shutdown() -> None:
    global _ATEXIT_REGISTERED
    if _ATEXIT_REGISTERED:
        return
    atexit.register(shutdown_logging)
    _ATEXIT_REGISTERED = True


def _validate_identifier(value: str, label: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{label} must be a string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{label} must not be empty")
    return normalized


def _validate_queue_size(queue_size: int) -> int:
    if not isinstance(queue_size, int):
        raise ValueError(f"queue_size must be an integer, got {type(queue_size).__name__}")
    if queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    return queue_size


def _validate_log_filename(log_filename: str) -> str:
    normalized = _validate_identifier(log_filename, "log_filename")
    if Path(normalized).name != normalized:
        raise ValueError("log_filename must not include path separators")
    return normalized


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value

    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")

    parsed = logging.getLevelName(value.strip().upper())
    if isinstance(parsed, int):
        return parsed

    raise ValueError(f"unsupported logging level {value!r}")


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coerce_log_message(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _merge_correlation_context(
    record: logging.LogRecord,
    base_context: Mapping[str, str],
) -> dict[str, str]:
    merged = dict(base_context)

    for key in _CORRELATION_KEYS:
        value = getattr(record, key, None)
        if isinstance(value, str) and value.strip():
            merged[key] = value.strip()

    bound = getattr(record, "correlation", None)
    if isinstance(bound, Mapping):
        for key, value in bound.items():
            if isinstance(key, str) and isinstance(value, str) and value.strip():
                merged[key] = value.strip()

    return merged


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, JSONValue]:
    fields: dict[str, JSONValue] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_LOG_RECORD_FIELDS:
            continue
        if key in _CORRELATION_KEYS or key == "correlation":
            continue
        if key.startswith("_"):
            continue
        fields[key] = _normalize_json_value(value)
    return fields


def _normalize_json_value(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None or value.utcoffset() is None:
            normalized = value.replace(tzinfo=UTC)
        else:
            normalized = value.astimezone(UTC)
        return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _normalize_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted(
            (_normalize_json_value(item) for item in value),
            key=lambda item: json.dumps(item, sort_keys=True, separators=(",", ":")),
        )
    return repr(value)


def _redact_value(value: JSONValue, *, key_context: str | None) -> JSONValue:
    if key_context is not None and _requires_redaction_for_key(key_context):
        return _REDACTED_VALUE

    if isinstance(value, str):
        return redact_command_line(value)

    if isinstance(value, list):
        return [_redact_value(item, key_context=None) for item in value]

    if isinstance(value, dict):
        return {key: _redact_value(item, key_context=key) for key, item in value.items()}

    return value


def _requires_redaction_for_key(key: str) -> bool:
    key_lower = key.lower()
    return any(term in key_lower for term in _SENSITIVE_KEY_TERMS)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "default_log_redactor",
    "flush_logging",
    "get_active_logging_handle",
    "get_correlation_context",
    "redact_command_line",
    "reset_correlation_fields",
    "set_correlation_fields",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
