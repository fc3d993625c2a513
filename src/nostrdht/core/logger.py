"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module so that pool, registry and
dispatcher events read as a stable event name followed by key=value fields,
for example ``relay_opened url=wss://nos.lol live=3``. A JSON mode is
available for log shippers.

``StructuredFormatter`` reads the ``structured_kv`` extra attached by
[Logger][nostrdht.core.logger.Logger] and renders it after the message. The
CLI installs it on the root handler through
[setup_logging()][nostrdht.core.logger.setup_logging], so plain
``logging.getLogger()`` output from libraries shares the same layout.

Examples:
    ```python
    from nostrdht.core.logger import Logger

    logger = Logger("pool")
    logger.info("relay_opened", url="wss://nos.lol", live=3)
    # Output: relay_opened url=wss://nos.lol live=3
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
import sys
from typing import Any, ClassVar


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values longer than ``max_value_length`` are truncated. Values that are
    empty or contain whitespace, ``=`` or quotes are escaped and wrapped in
    double quotes.

    Args:
        kwargs: Key-value pairs to format.
        max_value_length: Maximum characters per value (``None`` disables).
        prefix: String prepended to non-empty output.

    Returns:
        Formatted string such as ``' url=wss://a topic="two words"'``, or an
        empty string when ``kwargs`` is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for k, v in kwargs.items():
        s = str(v)
        if max_value_length and len(s) > max_value_length:
            s = s[:max_value_length] + f"...<truncated {len(s) - max_value_length} chars>"
        if not s or " " in s or "=" in s or '"' in s or "'" in s:
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{k}="{escaped}"')
        else:
            parts.append(f"{k}={s}")

    return prefix + " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Render ``level name message key=value...`` for every record."""

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            base += format_kv_pairs(extra)
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


class Logger:
    """Structured logger that appends keyword arguments as fields.

    Every public method mirrors the stdlib logging API with an extra
    ``**kwargs`` carrying the structured fields.
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
    ) -> None:
        """Initialize a structured logger.

        Args:
            name: Logger name; ``nostrdht.`` is prefixed so the whole package
                can be tuned through one logger.
            json_output: Emit JSON objects instead of key=value pairs.
            max_value_length: Truncation limit per value (default 1000).
        """
        if max_value_length is None:
            max_value_length = self._DEFAULT_MAX_VALUE_LENGTH
        self._logger = logging.getLogger(f"nostrdht.{name}")
        self._json_output = json_output
        self._max_value_length = max_value_length

    @property
    def name(self) -> str:
        return self._logger.name

    def _truncate(self, value: Any) -> Any:
        s = str(value)
        if self._max_value_length and len(s) > self._max_value_length:
            return s[: self._max_value_length] + (
                f"...<truncated {len(s) - self._max_value_length} chars>"
            )
        return value

    def _format_json(self, msg: str, level: str, kwargs: dict[str, Any]) -> str:
        record = {
            "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
            "level": level,
            "logger": self._logger.name,
            "message": msg,
            **{k: self._truncate(v) for k, v in kwargs.items()},
        }
        return json.dumps(record, default=str)

    def _log(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if self._json_output:
            self._logger.log(
                level,
                self._format_json(msg, logging.getLevelName(level).lower(), kwargs),
                exc_info=exc_info,
            )
            return
        extra = {"structured_kv": {k: self._truncate(v) for k, v in kwargs.items()}}
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


def setup_logging(level: str = "INFO") -> None:
    """Install a ``StructuredFormatter`` stream handler on the root logger.

    Replaces existing root handlers so repeated calls (tests, REPL) do not
    duplicate output.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())
