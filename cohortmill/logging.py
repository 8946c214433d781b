"""Logging helpers for femtologging integration.

Cohortmill emits pre-formatted, key=value style log lines. This module keeps
level normalization and percent-style formatting in one place so batch jobs,
the CLI, and the ledger all log the same way.

Example:
>>> from cohortmill.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "Classified %d users", 12)

"""

from __future__ import annotations

import enum
import os
import typing as typ

from femtologging import basicConfig, get_logger

LOG_LEVEL_ENV_VAR = "COHORTMILL_LOG_LEVEL"


class LogLevel(enum.StrEnum):
    """Log levels accepted by femtologging."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Normalize a raw level name.

    Parameters
    ----------
    level : str | None
        Raw log level string, for example from the environment.

    Returns
    -------
    tuple[str, bool]
        The normalized level and ``True`` when the input was unusable and
        ``INFO`` was substituted.

    """
    if not level:
        return (LogLevel.INFO.value, True)

    candidate = level.strip().upper()
    if candidate in LogLevel.__members__:
        return (candidate, False)
    return (LogLevel.INFO.value, True)


def configure_logging(
    level: str | None = None, *, force: bool = False
) -> tuple[str, bool]:
    """Configure femtologging, reading ``COHORTMILL_LOG_LEVEL`` when unset.

    Parameters
    ----------
    level : str | None, optional
        Explicit level; falls back to the environment variable.
    force : bool, optional
        Replace any existing handler configuration.

    Returns
    -------
    tuple[str, bool]
        The applied level and whether the requested level was invalid.

    """
    raw = level if level is not None else os.environ.get(LOG_LEVEL_ENV_VAR)
    normalized, invalid = normalize_log_level(raw)
    basicConfig(level=normalized, force=force)
    return (normalized, invalid)


def format_log_message(template: str, *args: object) -> str:
    """Interpolate ``args`` into ``template`` using percent formatting."""
    return template % args


class _SupportsLog(typ.Protocol):
    """Protocol for femtologging-compatible loggers."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: LogLevel,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None,
) -> None:
    logger.log(
        level.value,
        format_log_message(template, *args),
        exc_info=exc_info,
        stack_info=False,
    )


def log_debug(logger: _SupportsLog, template: str, *args: object) -> None:
    """Log a DEBUG message with percent-style formatting."""
    _emit(logger, LogLevel.DEBUG, template, args, None)


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log an INFO message with percent-style formatting.

    Parameters
    ----------
    logger : _SupportsLog
        Logger that receives the formatted message.
    template : str
        Message template using percent-style placeholders.
    *args : object
        Values to interpolate into the template.
    exc_info : object | None, optional
        Exception information to attach to the log record.

    """
    _emit(logger, LogLevel.INFO, template, args, exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log a WARNING message with percent-style formatting."""
    _emit(logger, LogLevel.WARNING, template, args, exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log an ERROR message with percent-style formatting."""
    _emit(logger, LogLevel.ERROR, template, args, exc_info)


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Log a pre-formatted ERROR message with ``exc`` attached as exc_info."""
    logger.log(LogLevel.ERROR.value, message, exc_info=exc, stack_info=False)


__all__ = [
    "LOG_LEVEL_ENV_VAR",
    "LogLevel",
    "configure_logging",
    "format_log_message",
    "get_logger",
    "log_debug",
    "log_error",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
