# ==============================================================================
#                  © 2025 Dedalus Labs, Inc. and affiliates
#                            Licensed under MIT
#               github.com/dedalus-labs/openmcp-python/LICENSE
# ==============================================================================

"""Logging helpers shared by the mount layer, the engine and the transport.

Everything runs on the standard library ``logging`` package.  Host
applications that already configure logging can ignore :func:`setup_logger`;
the library only attaches its own handler when nothing else claimed the root
logger through this module.

Environment overrides:

* ``MCPMOUNT_LOG_LEVEL`` – level name used when ``setup_logger`` gets none.
* ``MCPMOUNT_LOG_JSON`` – emit one JSON object per record.
* ``NO_COLOR`` – disable ANSI colors in plain-text output.
"""

from __future__ import annotations

from collections.abc import Callable
import json
import logging
import os
from typing import Any, ClassVar, Final


RESET: Final[str] = "\033[0m"
LOGGER_COLOR: Final[str] = "\033[94m"

DEFAULT_LOGGER_NAME: Final[str] = "mcpmount"
ENV_LOG_LEVEL: Final[str] = "MCPMOUNT_LOG_LEVEL"
ENV_LOG_JSON: Final[str] = "MCPMOUNT_LOG_JSON"
ENV_NO_COLOR: Final[str] = "NO_COLOR"
DEFAULT_FORMAT: Final[str] = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_DATEFMT: Final[str] = "%Y-%m-%d %H:%M:%S"

JsonSerializer = Callable[[dict[str, Any]], str]
PayloadTransformer = Callable[[dict[str, Any]], dict[str, Any]]

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "context", "taskName"}


def _duration_suffix(record: logging.LogRecord) -> str:
    duration = getattr(record, "duration_ms", None)
    if not isinstance(duration, (int, float)):
        return ""
    return f" [{duration:.2f} ms]"


class PlainFormatter(logging.Formatter):
    """Plain-text formatter that renders ``duration_ms`` as a suffix."""

    def format(self, record: logging.LogRecord) -> str:
        return super().format(record) + _duration_suffix(record)


class ColoredFormatter(PlainFormatter):
    """:class:`PlainFormatter` with ANSI colors on the level and logger name."""

    LEVEL_COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[1;31m",
        "CRITICAL": "\033[1;35m",
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname, name = record.levelname, record.name
        record.levelname = f"{self.LEVEL_COLORS.get(levelname, '')}{levelname}{RESET}"
        record.name = f"{LOGGER_COLOR}{name}{RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname, record.name = levelname, name


class StructuredJSONFormatter(logging.Formatter):
    """Serialize log records into JSON using a caller-provided serializer.

    Values passed through ``extra`` are collected under ``context``.  A
    ``context`` mapping passed explicitly is merged into the same object.
    """

    def __init__(
        self,
        serializer: JsonSerializer,
        *,
        datefmt: str | None = None,
        payload_transformer: PayloadTransformer | None = None,
    ) -> None:
        super().__init__(datefmt=datefmt)
        self._serializer = serializer
        self._transformer = payload_transformer

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        context: dict[str, Any] = {}
        explicit = getattr(record, "context", None)
        if isinstance(explicit, dict):
            context.update(explicit)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                context.setdefault(key, value)
        if context:
            payload["context"] = context

        if self._transformer is not None:
            payload = self._transformer(payload)
        return self._serializer(payload)


class MountLogHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Stream handler marker so :func:`setup_logger` can find its own handler."""


def _json_dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


def _env_flag(key: str) -> bool:
    value = os.getenv(key)
    return value is not None and value.strip().lower() in {"1", "true", "yes", "on"}


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(ENV_LOG_LEVEL) or logging.INFO
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _installed_handlers(root: logging.Logger) -> list[MountLogHandler]:
    return [handler for handler in root.handlers if isinstance(handler, MountLogHandler)]


def setup_logger(
    *,
    level: int | str | None = None,
    use_json: bool | None = None,
    use_color: bool | None = None,
    json_serializer: JsonSerializer | None = None,
    payload_transformer: PayloadTransformer | None = None,
    fmt: str | None = None,
    datefmt: str | None = DEFAULT_DATEFMT,
    force: bool = False,
) -> None:
    """Attach a :class:`MountLogHandler` to the root logger.

    Args:
        level: Log level; falls back to ``MCPMOUNT_LOG_LEVEL`` then INFO.
        use_json: Emit JSON lines; defaults to ``MCPMOUNT_LOG_JSON``.
        use_color: Colorize plain output; defaults to on unless ``NO_COLOR``
            is set or JSON output is active.
        json_serializer: Replacement for ``json.dumps`` (e.g. ``orjson``).
        payload_transformer: Hook applied to the JSON payload before
            serialization.
        fmt: Plain-text format string.
        datefmt: Timestamp format.
        force: Replace a handler installed by an earlier call.
    """
    root = logging.getLogger()
    existing = _installed_handlers(root)
    if existing and not force:
        return
    for handler in existing:
        root.removeHandler(handler)
        handler.close()

    resolved_level = _resolve_level(level)
    root.setLevel(resolved_level)

    json_output = _env_flag(ENV_LOG_JSON) if use_json is None else use_json
    if use_color is None:
        use_color = not json_output and not os.getenv(ENV_NO_COLOR)

    formatter: logging.Formatter
    if json_output:
        formatter = StructuredJSONFormatter(
            json_serializer or _json_dumps, datefmt=datefmt, payload_transformer=payload_transformer
        )
    elif use_color:
        formatter = ColoredFormatter(fmt or DEFAULT_FORMAT, datefmt=datefmt)
    else:
        formatter = PlainFormatter(fmt or DEFAULT_FORMAT, datefmt=datefmt)

    handler = MountLogHandler()
    handler.setLevel(resolved_level)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a library logger, configuring the root logger on first use."""
    if not _installed_handlers(logging.getLogger()):
        setup_logger()
    return logging.getLogger(name or DEFAULT_LOGGER_NAME)


__all__ = [
    "DEFAULT_LOGGER_NAME",
    "ColoredFormatter",
    "MountLogHandler",
    "PlainFormatter",
    "StructuredJSONFormatter",
    "get_logger",
    "setup_logger",
]
