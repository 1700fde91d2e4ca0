"""Structured logging for kgrag using structlog.

Events are snake_case names with keyword fields:

    from kgrag.observability.logging import get_logger

    logger = get_logger(__name__)
    logger.info("ingestion_completed", reference="notes.md", chunk_count=12)

Every logger carries a ``component`` field taken from its module path
(``kgrag.graph.analytics`` -> ``graph``). Pipelines wrap a run in
``bind_context(...)`` so each event of that run carries the same fields.

Console output goes to stderr so command output on stdout stays clean.
"""

import logging
import logging.handlers
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, ContextManager, Optional

import structlog
from structlog.types import EventDict, Processor

if TYPE_CHECKING:
    from kgrag.config.schema import LoggingConfig

LOG_FILE_NAME = "kgrag.log"
PACKAGE_LOGGER = "kgrag"


class RetainingFileHandler(logging.handlers.TimedRotatingFileHandler):
    """Midnight-rotating file handler that deletes rotated files past max_days."""

    def __init__(self, filename: str, max_days: int = 30, **kwargs):
        super().__init__(filename, when="midnight", interval=1, **kwargs)
        self.max_days = max_days

    def doRollover(self) -> None:
        super().doRollover()
        self.prune()

    def prune(self) -> int:
        """Delete rotated siblings older than max_days; returns how many went."""
        current = Path(self.baseFilename)
        cutoff = time.time() - self.max_days * 86400
        removed = 0
        for rotated in current.parent.glob(current.name + ".*"):
            try:
                if rotated.stat().st_mtime < cutoff:
                    rotated.unlink()
                    removed += 1
            except OSError as e:
                logging.getLogger(__name__).debug("log prune skipped %s: %s", rotated, e)
        return removed


def component_of(name: str) -> str:
    """Second segment of a kgrag module path, else the name itself."""
    parts = name.split(".")
    if len(parts) > 1 and parts[0] == "kgrag":
        return parts[1]
    return name


def _drop_empty(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Remove fields bound to None so optional context stays out of the output."""
    return {key: value for key, value in event_dict.items() if value is not None}


def _processors(json_logs: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        _drop_empty,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return processors


def _attach_file_handler(log_dir: Path, log_level: int, max_days: int) -> bool:
    """Route the kgrag logger tree to a rotating file; returns False if that failed.

    The tree stops propagating to the root logger, so events reach the file
    only and never the stderr handler installed by basicConfig.
    """
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = RetainingFileHandler(str(log_dir / LOG_FILE_NAME), max_days=max_days, encoding="utf-8")
    except OSError as e:
        logging.warning("Failed to enable file logging: %s. Using console-only mode.", e)
        return False

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    # reconfiguring must not stack handlers
    for existing in [h for h in package_logger.handlers if isinstance(h, logging.FileHandler)]:
        package_logger.removeHandler(existing)
        existing.close()
    handler.setLevel(log_level)
    package_logger.addHandler(handler)
    package_logger.setLevel(log_level)
    package_logger.propagate = False
    return True


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_dir: Optional[Path] = None,
    max_days: int = 30,
    enable_file: bool = False,
) -> None:
    """Configure structlog for the whole process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render events as JSON instead of the console format
        log_dir: Directory for the log file; file logging needs it and enable_file
        max_days: Days to keep rotated log files
        enable_file: Write kgrag events to ``log_dir/kgrag.log`` instead of stderr
    """
    log_level = logging.getLevelName(level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)

    to_file = bool(enable_file and log_dir) and _attach_file_handler(Path(log_dir), log_level, max_days)
    logger_factory = (
        structlog.stdlib.LoggerFactory() if to_file else structlog.PrintLoggerFactory(file=sys.stderr)
    )

    structlog.configure(
        processors=_processors(json_logs),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )


def configure_from_config(config: "LoggingConfig") -> None:
    configure_logging(
        level=config.level.value,
        json_logs=config.json_logs,
        log_dir=config.log_dir,
        max_days=config.max_days,
        enable_file=config.enable_file,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Lazy logger for a module; configuration applies on first use."""
    return structlog.get_logger(name, component=component_of(name))


def bind_context(**values: Any) -> ContextManager[None]:
    """Attach fields to every event logged inside the ``with`` block."""
    return structlog.contextvars.bound_contextvars(**values)
