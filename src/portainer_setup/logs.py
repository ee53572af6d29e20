"""
Scoped structured loggers built on structlog.

Each logger carries its own context and processor chain and writes to stderr,
leaving stdout to the rich console used for operator-facing output.
"""

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import Processor


def _level_number(level: str) -> int:
    return getattr(logging, level.upper(), logging.INFO)


class ScopedLogger:
    """
    Base class for scoped loggers.

    Subclasses only choose the processor chain; level filtering and context
    binding are shared.
    """

    def __init__(
        self,
        name: str,
        level: str = "INFO",
        context: dict[str, Any] | None = None,
        stream: TextIO | None = None,
    ):
        """
        Initialize a scoped logger.

        Args:
            name: Logger name/scope identifier
            level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            context: Initial context dictionary
            stream: Output stream (default: sys.stderr)
        """
        self.name = name
        self.level = level.upper()
        self.stream = stream or sys.stderr
        self._context = dict(context or {})
        self._context["logger"] = name
        self._logger = self._build()

    def _build(self):
        return structlog.wrap_logger(
            structlog.PrintLogger(file=self.stream),
            processors=self._get_default_processors(),
            wrapper_class=structlog.make_filtering_bound_logger(_level_number(self.level)),
            cache_logger_on_first_use=False,
        ).bind(**self._context)

    def set_level(self, level: str) -> None:
        """Change the minimum level in place."""
        self.level = level.upper()
        self._logger = self._build()

    def _get_default_processors(self) -> list[Processor]:
        return [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    def bind(self, **kwargs: Any) -> "ScopedLogger":
        """
        Bind additional context to the logger.

        Returns a new logger; the original keeps its context.
        """
        return self.__class__(
            name=self.name,
            level=self.level,
            context={**self._context, **kwargs},
            stream=self.stream,
        )

    def debug(self, event: str, **kwargs: Any) -> None:
        self._logger.debug(event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._logger.info(event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._logger.warning(event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._logger.error(event, **kwargs)

    def exception(self, event: str, **kwargs: Any) -> None:
        """Log an exception with traceback."""
        self._logger.exception(event, **kwargs)

    @property
    def context(self) -> dict[str, Any]:
        """Get the current logger context."""
        return self._context.copy()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, context={self._context!r})"


class ConsoleLogger(ScopedLogger):
    """Human-readable, optionally colored output for interactive use."""

    def __init__(
        self,
        name: str,
        level: str = "INFO",
        context: dict[str, Any] | None = None,
        stream: TextIO | None = None,
        colors: bool = True,
    ):
        self.colors = colors
        super().__init__(name=name, level=level, context=context, stream=stream)

    def bind(self, **kwargs: Any) -> "ConsoleLogger":
        return self.__class__(
            name=self.name,
            level=self.level,
            context={**self._context, **kwargs},
            stream=self.stream,
            colors=self.colors,
        )

    def _get_default_processors(self) -> list[Processor]:
        processors: list[Processor] = [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        if self.colors:
            processors.append(
                structlog.dev.ConsoleRenderer(
                    colors=True,
                    exception_formatter=structlog.dev.rich_traceback,
                )
            )
        else:
            processors.append(structlog.dev.ConsoleRenderer(colors=False))

        return processors


class JSONLogger(ScopedLogger):
    """JSON lines output, for running under a log collector (cron, systemd)."""

    def _get_default_processors(self) -> list[Processor]:
        return [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.dict_tracebacks,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ]


_LOGGER_TYPES: dict[str, type[ScopedLogger]] = {
    "console": ConsoleLogger,
    "pretty": ConsoleLogger,
    "json": JSONLogger,
}


def make_logger(
    name: str,
    log_format: str = "console",
    level: str = "INFO",
    context: dict[str, Any] | None = None,
    stream: TextIO | None = None,
) -> ScopedLogger:
    """
    Create a logger of the requested format.

    Raises:
        ValueError: If ``log_format`` is not a known format.
    """
    logger_class = _LOGGER_TYPES.get(log_format.lower())
    if logger_class is None:
        raise ValueError(f"Unknown log format: {log_format}")
    return logger_class(name, level=level, context=context, stream=stream)
