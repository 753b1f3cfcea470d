"""
Logging for divscan: rich console output and JSON Lines log files.

Every record carries the current run_id, phase and symbol, held in context
variables and scoped with log_context(). Each entity is processed in its own
asyncio task, and tasks copy the context at creation, so the symbol set for
one entity never shows up on a sibling's log lines.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.text import Text

# Fields attached to every record, in console prefix order.
_run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
_phase_var: ContextVar[str | None] = ContextVar("phase", default=None)
_symbol_var: ContextVar[str | None] = ContextVar("symbol", default=None)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    "run_id": _run_id_var,
    "phase": _phase_var,
    "symbol": _symbol_var,
}


def get_run_id() -> str | None:
    return _run_id_var.get()


def get_phase() -> str | None:
    return _phase_var.get()


def get_symbol() -> str | None:
    """Symbol of the entity whose task is logging, if any."""
    return _symbol_var.get()


@contextmanager
def log_context(
    run_id: str | None = None,
    phase: str | None = None,
    symbol: str | None = None,
) -> Generator[None, None, None]:
    """Scope run, phase and entity fields to a block.

    Fields left as None keep their enclosing value. Everything set here is
    reset on exit, including on error.
    """
    values = {"run_id": run_id, "phase": phase, "symbol": symbol}
    tokens: list[tuple[ContextVar[str | None], Token[str | None]]] = [
        (_CONTEXT_VARS[key], _CONTEXT_VARS[key].set(value))
        for key, value in values.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def _current_context() -> dict[str, str]:
    values = {key: var.get() for key, var in _CONTEXT_VARS.items()}
    return {key: value for key, value in values.items() if value}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with the context fields at top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_current_context(),
        }
        fields = getattr(record, "extra", None)
        if fields:
            entry["extra"] = fields
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


_PREFIX_STYLES = {"run_id": "dim", "phase": "cyan", "symbol": "magenta"}


class ContextRichHandler(RichHandler):
    """Console handler that prefixes the level with run, phase and symbol."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)
        context = _current_context()
        if not context:
            return level_text

        if "run_id" in context:
            # run_<uuid7>: the tail of the uuid is what varies between runs
            context["run_id"] = context["run_id"][-8:]
        prefix = Text(" ").join(
            Text(value, style=_PREFIX_STYLES[key]) for key, value in context.items()
        )
        return Text.assemble(level_text, " ", prefix)

    def render_message(self, record: logging.LogRecord, message: str) -> Any:
        """Append structured fields to the console message."""
        fields = {
            k: v
            for k, v in (getattr(record, "extra", None) or {}).items()
            if k not in _CONTEXT_VARS
        }
        if fields:
            pairs = " ".join(f"{k}={v}" for k, v in fields.items())
            message = f"{message} [dim]{escape(pairs)}[/dim]"
        return super().render_message(record, message)


class ContextLogger:
    """Wraps a stdlib logger so keyword arguments become structured fields.

    ``logger.info("Fetched", label="dividends:KO", attempts=2)`` logs the
    message with ``label`` and ``attempts`` in the record's ``extra`` dict,
    next to the current run, phase and symbol.
    """

    _PASSTHROUGH = ("stack_info", "stacklevel")

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        passthrough = {key: kwargs.pop(key) for key in self._PASSTHROUGH if key in kwargs}
        fields = {**kwargs.pop("extra", {}), **_current_context(), **kwargs}
        self._logger.log(level, msg, *args, exc_info=exc_info, extra={"extra": fields}, **passthrough)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)


ROOT_LOGGER = "divscan"
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

_console: Console | None = None
_configured = False


def get_console() -> Console:
    """Shared stderr console, so log lines and progress output interleave cleanly."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Configure the ``divscan`` logger tree.

    Args:
        log_level: Console threshold (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: JSON Lines file that receives every record, DEBUG included.
        console_output: Attach the rich console handler.
    """
    global _configured

    level = logging.getLevelName(log_level.upper())
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.propagate = False

    handlers: list[logging.Handler] = []
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)
    if console_output:
        console_handler = ContextRichHandler(
            console=get_console(),
            show_path=False,
            rich_tracebacks=True,
            markup=True,
        )
        console_handler.setLevel(level)
        handlers.append(console_handler)

    for handler in handlers:
        root.addHandler(handler)
    # The logger itself must pass DEBUG through when a file wants it.
    root.setLevel(logging.DEBUG if log_file else level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> ContextLogger:
    """Context-aware logger under the ``divscan`` namespace."""
    if not _configured:
        setup_logging()
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return ContextLogger(logging.getLogger(name))
