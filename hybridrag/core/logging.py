"""
Structured Logging for HybridRAG.

This module provides the logging infrastructure used by every package:
context binding, an ingestion stage logger, and consistent key=value
formatting on top of rich's console handler.

Architecture Context
--------------------
All modules import get_logger() from here rather than using Python's
logging directly:

    from hybridrag.core.logging import get_logger
    logger = get_logger(__name__)

    logger.info("Search complete", strategy="keyword-heavy", results=6)
    # Search complete | strategy=keyword-heavy | results=6

Logger Types
------------
**StructuredLogger**
    Base logger with context binding. Bound key-value pairs appear in all
    subsequent messages:

        logger = get_logger(__name__).bind(session_id="abc")

**PipelineLogger**
    Times ingestion stages (chunk, embed, index) for one document:

        plog = PipelineLogger("report.md")
        plog.start_stage("chunk")
        plog.finish(success=True, chunks=42)
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from rich.logging import RichHandler


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_path: Optional[Path] = None
    console: bool = True


class StructuredLogger:
    """
    Structured logger with context support.

    Provides consistent logging across the application with
    support for structured fields and context tracking.
    """

    def __init__(self, name: str, config: Optional[LogConfig] = None) -> None:
        self.name = name
        self.logger = logging.getLogger(name)
        self.config = config or _ConfigHolder.get_config()
        self._context: dict[str, Any] = {}
        self._setup_logger()

    def _setup_logger(self) -> None:
        """Configure the logger."""
        level = getattr(logging, self.config.level.upper(), logging.INFO)
        self.logger.setLevel(level)
        self.logger.handlers.clear()
        self.logger.propagate = False

        formatter = logging.Formatter(
            self.config.format,
            datefmt=self.config.date_format,
        )

        if self.config.console:
            console_handler = RichHandler(
                show_time=True,
                show_path=False,
                markup=False,
                rich_tracebacks=True,
            )
            console_handler.setLevel(level)
            self.logger.addHandler(console_handler)

        if self.config.file_path:
            self.config.file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.config.file_path, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """Attach context fields to every subsequent message."""
        self._context.update(kwargs)
        return self

    def unbind(self, *keys: str) -> "StructuredLogger":
        for key in keys:
            self._context.pop(key, None)
        return self

    def _format_message(self, message: str, **kwargs: Any) -> str:
        """Format message with context and extra fields."""
        fields = {**self._context, **kwargs}
        if fields:
            field_str = " | ".join(f"{k}={v}" for k, v in fields.items())
            return f"{message} | {field_str}"
        return message

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message."""
        self.logger.debug(self._format_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message."""
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message."""
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error message."""
        self.logger.error(self._format_message(message, **kwargs))

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self.logger.exception(self._format_message(message, **kwargs))


# Module-level logger factory
_loggers: dict[str, StructuredLogger] = {}


def get_logger(name: str, config: Optional[LogConfig] = None) -> StructuredLogger:
    """
    Get or create a structured logger.

    Args:
        name: Logger name (typically __name__).
        config: Optional logging configuration.

    Returns:
        Configured StructuredLogger instance.
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name, config)
    return _loggers[name]


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    console: bool = True,
) -> None:
    """
    Configure global logging settings.

    Already-created loggers are reconfigured so that CLI flags such as
    ``--verbose`` take effect for modules imported earlier.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional file path for log output.
        console: Whether to log to console.
    """
    config = LogConfig(
        level=level,
        file_path=log_file,
        console=console,
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    _ConfigHolder.set_config(config)

    for structured in _loggers.values():
        structured.config = config
        structured._setup_logger()


class _ConfigHolder:
    """Process-wide default LogConfig for loggers created later."""

    _config: LogConfig = LogConfig()

    @classmethod
    def get_config(cls) -> LogConfig:
        """Get the default config."""
        return cls._config

    @classmethod
    def set_config(cls, config: LogConfig) -> None:
        """Set the default config."""
        cls._config = config


class PipelineLogger:
    """
    Stage timer for a single document ingestion.

    Each ``start_stage`` closes the previous stage and records its duration
    in ``stage_durations``; ``finish`` logs the whole breakdown once.
    """

    def __init__(self, source_document: str) -> None:
        self.source_document = source_document
        self.logger = get_logger("hybridrag.ingest")
        self.stage_durations: Dict[str, float] = {}
        self._stage_start: Optional[float] = None
        self._current_stage: Optional[str] = None

    def start_stage(self, stage: str) -> None:
        self._finish_current_stage()
        self._current_stage = stage
        self._stage_start = time.perf_counter()
        self.logger.debug("Stage started", source=self.source_document, stage=stage)

    def _finish_current_stage(self) -> None:
        if self._current_stage is not None and self._stage_start is not None:
            elapsed = time.perf_counter() - self._stage_start
            self.stage_durations[self._current_stage] = (
                self.stage_durations.get(self._current_stage, 0.0) + elapsed
            )
        self._current_stage = None
        self._stage_start = None

    @property
    def total_seconds(self) -> float:
        return sum(self.stage_durations.values())

    def finish(
        self, success: bool, chunks: int = 0, error: Optional[str] = None
    ) -> None:
        """Close the open stage and log the outcome with stage timings."""
        self._finish_current_stage()
        timings = ",".join(
            f"{stage}:{seconds:.3f}s" for stage, seconds in self.stage_durations.items()
        )
        if success:
            self.logger.info(
                "Document ingested",
                source=self.source_document,
                chunks=chunks,
                stages=timings,
            )
        else:
            self.logger.warning(
                "Document ingested with errors",
                source=self.source_document,
                chunks=chunks,
                error=error,
                stages=timings,
            )

    def log_progress(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(
            message,
            source=self.source_document,
            stage=self._current_stage,
            **kwargs,
        )
