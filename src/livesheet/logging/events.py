"""Event schema for sheet diagnostics and the process-wide emit helpers.

Timestamps are UTC ISO-8601 with a ``Z`` suffix.  Nothing is recorded
until ``set_log_dir`` points the helpers at a project; ``emit`` never
raises, falling back to a throttled line on stderr when the sink fails.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    sheet_opened = "sheet_opened"
    storage_load_error = "storage_load_error"
    storage_written = "storage_written"

    cell_added = "cell_added"
    cell_renamed = "cell_renamed"
    cell_removed = "cell_removed"

    formula_parse_error = "formula_parse_error"
    formula_eval_error = "formula_eval_error"

    propagation_limit = "propagation_limit"
    dispatch_error = "dispatch_error"


FORMULA_PARSE_FAILED = "formula_parse_failed"
FORMULA_EVAL_FAILED = "formula_eval_failed"
STORAGE_DECODE_FAILED = "storage_decode_failed"
PROPAGATION_LIMIT_EXCEEDED = "propagation_limit_exceeded"
DISPATCH_CALLBACK_FAILED = "dispatch_callback_failed"


_MAX_VALUE_LEN = 256
_TRUNCATED = "...[truncated]"


def _truncate(value: Any) -> Any:
    if isinstance(value, dict):
        return truncate_context(value)
    if isinstance(value, list):
        return [_truncate(item) for item in value]
    if isinstance(value, str) and len(value) > _MAX_VALUE_LEN:
        return value[:_MAX_VALUE_LEN] + _TRUNCATED
    return value


def truncate_context(context: dict[str, Any]) -> dict[str, Any]:
    """Copy of *context* with every string longer than 256 characters cut.

    Formula text and stored payloads are user input of any length.
    """
    return {key: _truncate(value) for key, value in context.items()}


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class LivesheetEvent(BaseModel):
    """One structured log record."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Sink configuration
# ---------------------------------------------------------------------------

_sink: Any = None  # EventSink | None


def set_log_dir(log_dir: str | Path | None, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
    """Send events to ``<log_dir>/logs/events.ndjson``; ``None`` turns logging off."""
    global _sink
    from livesheet.logging.sink import EventSink

    _sink = None if log_dir is None else EventSink(Path(log_dir), fsync=fsync, tail_bytes=tail_bytes)


def get_sink() -> Any:
    return _sink


class _StderrThrottle:
    """Prints at most one line per *interval* seconds."""

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._last: float | None = None

    def warn(self, message: str) -> None:
        now = time.monotonic()
        if self._last is not None and now - self._last < self.interval:
            return
        self._last = now
        try:
            print(f"[livesheet] {message}", file=sys.stderr)
        except OSError:
            pass


_stderr = _StderrThrottle(60.0)


# ---------------------------------------------------------------------------
# Emit helpers
# ---------------------------------------------------------------------------


def emit(event: LivesheetEvent) -> None:
    """Record *event* if a sink is configured.  Never raises."""
    sink = _sink
    if sink is None:
        return
    try:
        sink.write(event.model_copy(update={"context": truncate_context(event.context)}))
    except Exception:
        _stderr.warn(f"event logging failed: {traceback.format_exc()}")


def _emit(
    level: EventLevel,
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None,
    error_code: str | None,
) -> None:
    emit(
        LivesheetEvent(
            level=level,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        )
    )


def emit_info(event_type: EventType, message: str, context: dict[str, Any] | None = None) -> None:
    _emit(EventLevel.info, event_type, message, context, None)


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit(EventLevel.warning, event_type, message, context, error_code)


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
) -> None:
    _emit(EventLevel.error, event_type, message, context, error_code)
