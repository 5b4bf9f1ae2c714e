"""Centralized logging configuration for phaseflow using Loguru.

Provides consistent logging across the scheduler with support for:
- Multiple output formats (console, JSON, structured, rich)
- Environment-based defaults
- Correlation IDs that tag every record emitted during one scheduling request
- Idempotent configuration

Examples
--------
Basic usage:

>>> from phaseflow.kernel.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Scheduler started", execution_id="exec_123")

Configure logging globally::

    from phaseflow.kernel.logging import configure_logging
    configure_logging(level="DEBUG", format="json")
"""

import contextvars
import logging
import os
import sys
from contextlib import suppress
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    import types

    from loguru import Logger

from loguru import logger
from rich.logging import RichHandler

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["console", "json", "structured", "rich", "dual"]

_CURRENT_CONFIG: dict | None = None
_HANDLER_IDS: list[int] = []

# Correlation ID context variable for request tracing
correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar("correlation_id", default="-")


def _inject_correlation_id(record: dict) -> None:
    record["extra"].setdefault("cid", correlation_id.get())


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "structured",
    output_file: str | Path | None = None,
    use_color: bool = True,
    include_timestamp: bool = True,
    force_reconfigure: bool = False,
    enable_stdlib_bridge: bool = False,
    backtrace: bool = True,
    diagnose: bool = True,
) -> None:
    """Configure global logging for phaseflow.

    Calling it again with the same configuration is a no-op; handlers are
    never duplicated.

    Parameters
    ----------
    level : LogLevel, default="INFO"
        Minimum log level to output
    format : LogFormat, default="structured"
        Output format:
        - "console": Simple console output (no colors, basic format)
        - "json": JSON records for log aggregation
        - "structured": Loguru format with colors and correlation id
        - "rich": Rich console handler
        - "dual": Rich to stderr plus JSON to stdout
    output_file : str | Path | None, default=None
        Optional file path; file output is always JSON
    use_color : bool, default=True
        Use ANSI color codes in structured format (auto-disabled for non-TTY)
    include_timestamp : bool, default=True
        Include timestamp in log output
    force_reconfigure : bool, default=False
        Reconfigure even if the configuration is unchanged
    enable_stdlib_bridge : bool, default=False
        Route stdlib logging records through Loguru
    backtrace : bool, default=True
        Enable extended tracebacks
    diagnose : bool, default=True
        Show variable values in tracebacks (disable in production)

    Examples
    --------
    Testing setup::

        configure_logging(level="WARNING", format="console")
    """
    global _CURRENT_CONFIG

    current_config = {
        "level": level,
        "format": format,
        "output_file": str(output_file) if output_file else None,
        "use_color": use_color,
        "include_timestamp": include_timestamp,
        "enable_stdlib_bridge": enable_stdlib_bridge,
        "backtrace": backtrace,
        "diagnose": diagnose,
    }

    if not force_reconfigure and current_config == _CURRENT_CONFIG:
        return

    # Remove only our previously added handlers so pytest's capture stays intact
    for handler_id in _HANDLER_IDS:
        with suppress(ValueError):
            logger.remove(handler_id)
    _HANDLER_IDS.clear()

    logger.configure(patcher=_inject_correlation_id)

    if format in ("rich", "dual"):
        rich_handler = RichHandler(
            rich_tracebacks=True,
            markup=False,
            show_time=include_timestamp,
            show_level=True,
            show_path=True,
        )
        _HANDLER_IDS.append(
            logger.add(
                sink=rich_handler,
                level=level,
                format="{message}",
                backtrace=backtrace,
                diagnose=diagnose,
            )
        )
        if format == "dual":
            _HANDLER_IDS.append(
                logger.add(
                    sink=sys.stdout,
                    level=level,
                    serialize=True,
                    backtrace=backtrace,
                    diagnose=diagnose,
                )
            )

    elif format == "json":
        _HANDLER_IDS.append(
            logger.add(
                sink=sys.stderr,
                level=level,
                serialize=True,
                backtrace=backtrace,
                diagnose=diagnose,
            )
        )

    elif format == "structured":
        timestamp_fmt = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> " if include_timestamp else ""
        colorize = use_color and sys.stderr.isatty()
        color_level = "<level>{level: <8}</level>" if colorize else "{level: <8}"
        structured_format = (
            f"{timestamp_fmt}[{color_level}]"
            "<cyan>{name}:{function}:{line}</cyan> cid={extra[cid]} | <level>{message}</level>"
        )
        _HANDLER_IDS.append(
            logger.add(
                sink=sys.stderr,
                level=level,
                format=structured_format,
                colorize=colorize,
                backtrace=backtrace,
                diagnose=diagnose,
            )
        )

    else:  # console
        timestamp_fmt = "{time:YYYY-MM-DD HH:mm:ss} " if include_timestamp else ""
        console_format = f"{timestamp_fmt}{{level: <8}} | {{name}} | {{message}}"
        _HANDLER_IDS.append(
            logger.add(
                sink=sys.stderr,
                level=level,
                format=console_format,
                colorize=False,
                backtrace=backtrace,
                diagnose=diagnose,
            )
        )

    if output_file:
        output_path = Path(output_file)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        _HANDLER_IDS.append(
            logger.add(
                sink=output_path,
                level=level,
                serialize=True,
                rotation="10 MB",
                retention="1 week",
                compression="zip",
                backtrace=backtrace,
                diagnose=diagnose,
            )
        )

    if enable_stdlib_bridge:
        enable_stdlib_logging_bridge()

    _CURRENT_CONFIG = current_config


@lru_cache(maxsize=256)
def get_logger(name: str) -> "Logger":
    """Get a logger bound with the given module name (cached).

    Parameters
    ----------
    name : str
        Logger name, typically __name__ from the calling module

    Returns
    -------
    loguru.Logger
        Logger instance bound with the module name

    Examples
    --------
    >>> from phaseflow.kernel.logging import get_logger, set_correlation_id
    >>> set_correlation_id("exec-123")
    >>> logger = get_logger(__name__)
    >>> logger.info("Planning request")  # record carries cid=exec-123
    """
    _ensure_configured()
    return logger.bind(module=name)


def enable_stdlib_logging_bridge() -> None:
    """Redirect stdlib logging records to Loguru."""

    class InterceptHandler(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            level: str | int
            try:
                level = logger.level(record.levelname).name
            except ValueError:
                level = record.levelno

            frame: types.FrameType | None = sys._getframe(6)
            depth = 6
            while frame and frame.f_code.co_filename == logging.__file__:
                frame = frame.f_back
                depth += 1

            logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


def set_correlation_id(cid: str) -> contextvars.Token[str]:
    """Set correlation ID for the current context.

    Returns the context token so callers can restore the previous value.
    """
    return correlation_id.set(cid)


def get_correlation_id() -> str:
    """Get the current correlation ID.

    Examples
    --------
    >>> from phaseflow.kernel.logging import get_correlation_id, clear_correlation_id
    >>> clear_correlation_id()
    >>> get_correlation_id()
    '-'
    """
    return correlation_id.get()


def reset_correlation_id(token: contextvars.Token[str]) -> None:
    """Restore the correlation ID that was active before ``set_correlation_id``."""
    correlation_id.reset(token)


def clear_correlation_id() -> None:
    """Clear the correlation ID for the current context."""
    correlation_id.set("-")


def _ensure_configured() -> None:
    """Apply a default configuration the first time a logger is requested."""
    if _CURRENT_CONFIG is None:
        level = os.getenv("PHASEFLOW_LOG_LEVEL", "INFO").upper()
        format_type = os.getenv("PHASEFLOW_LOG_FORMAT", "structured").lower()
        configure_logging(level=level, format=format_type)  # type: ignore[arg-type]
