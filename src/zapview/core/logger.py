"""
Structured logging with key=value and JSON output support.

[Logger][zapview.core.logger.Logger] wraps a standard ``logging.Logger`` and
turns keyword arguments into structured fields, rendered either as
human-readable key=value pairs (default) or as one JSON object per line.
Loggers can be bound to fixed context (``Logger("coordinator").bind(
view_id="v1")``) so every line of a view carries its id.

[StructuredFormatter][zapview.core.logger.StructuredFormatter] is installed on
the root handler by [setup_logging()][zapview.core.logger.setup_logging]; it
renders the ``structured_kv`` extra attached by ``Logger`` and passes plain
``logging.getLogger()`` records from the models and utils layers through
with the same ``level name message`` prefix.

Examples:
    ```python
    from zapview.core.logger import Logger

    logger = Logger("coordinator")
    logger.info("view_initialized", view_id="v1", relays=3)
    # Output: info coordinator view_initialized view_id=v1 relays=3

    logger.bind(view_id="v1").warning("stats_unavailable")
    # Output: warning coordinator stats_unavailable view_id=v1
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar


def _truncate(value: Any, max_value_length: int | None) -> str:
    s = str(value)
    if max_value_length and len(s) > max_value_length:
        return s[:max_value_length] + f"...<truncated {len(s) - max_value_length} chars>"
    return s


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values containing whitespace, equals signs or quotes are escaped and
    wrapped in double quotes; empty values render as ``key=""``.

    Args:
        kwargs: Key-value pairs to format.
        max_value_length: Maximum characters per value before truncation.
            Pass None to disable truncation.
        prefix: String prepended to the output (default: single space).

    Returns:
        Formatted string, e.g. ``' view_id=v1 name="two words"'``, or ``""``
        if *kwargs* is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for k, v in kwargs.items():
        s = _truncate(v, max_value_length)
        if not s or " " in s or "=" in s or '"' in s or "'" in s:
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{k}="{escaped}"')
        else:
            parts.append(f"{k}={s}")
    return prefix + " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Formats all log records as ``level name message key=value...``."""

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            base += format_kv_pairs(extra)
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


class JsonFormatter(logging.Formatter):
    """Formats all log records as one JSON object per line.

    Records already rendered by a ``json_output`` [Logger][zapview.core.logger.Logger]
    pass through unchanged.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if message.startswith("{") and not hasattr(record, "structured_kv"):
            return message
        payload: dict[str, Any] = {
            "timestamp": datetime.datetime.fromtimestamp(record.created, datetime.UTC).isoformat(),
            "level": record.levelname.lower(),
            "component": record.name,
            "message": message,
            **getattr(record, "structured_kv", {}),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class Logger:
    """Structured logger that appends keyword arguments as extra fields.

    All public methods mirror the standard logging API with an added
    ``**kwargs`` parameter. Fields given to
    [bind()][zapview.core.logger.Logger.bind] are merged into every call;
    per-call keyword arguments win on conflict.
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize a structured logger.

        Args:
            name: Component name; maps to ``logging.getLogger(name)``.
            json_output: If True, emit JSON objects instead of key=value pairs.
            max_value_length: Maximum character length for individual values
                before truncation. Defaults to 1000.
            context: Fields attached to every record.
        """
        if max_value_length is None:
            max_value_length = self._DEFAULT_MAX_VALUE_LENGTH
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = max_value_length
        self._context: dict[str, Any] = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **context: Any) -> Logger:
        """Return a logger sharing this one's sink with extra fixed fields."""
        return Logger(
            self._logger.name,
            json_output=self._json_output,
            max_value_length=self._max_value_length,
            context={**self._context, **context},
        )

    def is_enabled_for(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def _format_json(self, msg: str, level: str, kwargs: dict[str, Any]) -> str:
        record = {
            "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
            "level": level,
            "component": self._logger.name,
            "message": msg,
            **{k: _truncate(v, self._max_value_length) for k, v in kwargs.items()},
        }
        return json.dumps(record, default=str)

    def _log(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {**self._context, **kwargs}
        if self._json_output:
            text = self._format_json(msg, logging.getLevelName(level).lower(), fields)
            self._logger.log(level, text, exc_info=exc_info)
            return
        extra = (
            {"structured_kv": {k: _truncate(v, self._max_value_length) for k, v in fields.items()}}
            if fields
            else {}
        )
        self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR level with the active exception's traceback."""
        self._log(logging.ERROR, msg, kwargs, exc_info=True)


def setup_logging(level: str = "INFO", *, json_output: bool = False) -> None:
    """Install [StructuredFormatter][zapview.core.logger.StructuredFormatter] on the root logger.

    With *json_output*, [JsonFormatter][zapview.core.logger.JsonFormatter] is
    installed instead. Replaces any handlers already attached to the root logger so repeated
    calls (tests, re-entrant CLI use) do not duplicate output.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter() if json_output else StructuredFormatter())
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())
