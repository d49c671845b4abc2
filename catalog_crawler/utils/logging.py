"""
Structured logging for the catalog crawler.

structlog sits on top of the standard logging module, so module-level
logging.getLogger(__name__) loggers and structlog event loggers end up on the
same stdout handler.
"""

import logging
import sys
from typing import Any, List

import structlog

# Event name suffix -> log method
_EVENT_LEVELS = (
    (("_failed", "_error"), "error"),
    (("_warning", "_exhausted"), "warning"),
)


def _renderer(json_logs: bool) -> List[Any]:
    if json_logs:
        return [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.dev.ConsoleRenderer(),
    ]


def setup_crawler_logger(name: str, level: str = "INFO", json_logs: bool = True) -> structlog.BoundLogger:
    """
    Configure stdlib logging and structlog for a crawler process.

    Args:
        name: Name of the returned logger
        level: Minimum level, e.g. "INFO" or "DEBUG"
        json_logs: JSON lines when True, human-readable console output otherwise

    Returns:
        A structlog logger bound to name
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    logging.getLogger().setLevel(numeric_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            *_renderer(json_logs),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
    return get_crawler_logger(name)


def get_crawler_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def log_crawl_event(logger: structlog.BoundLogger, event_type: str, url: str, **kwargs: Any) -> None:
    """
    Emit one crawl event; failures log at error, exhausted retries at warning.

    Args:
        logger: structlog logger to emit on
        event_type: Event name such as node_completed or retry_failed
        url: Page the event is about
        **kwargs: Extra fields for the event
    """
    method = "info"
    for suffixes, level_method in _EVENT_LEVELS:
        if event_type.endswith(suffixes):
            method = level_method
            break

    getattr(logger, method)(event_type, event_type=event_type, url=url, **kwargs)


class CrawlerLoggerAdapter:
    """Crawl event logger bound to one run id."""

    def __init__(self, logger: structlog.BoundLogger, run_id: str):
        self.logger = logger.bind(run_id=run_id)
        self.run_id = run_id

    def log_node_completed(self, level: str, url: str, **kwargs: Any) -> None:
        log_crawl_event(self.logger, "node_completed", url, entity_level=level, **kwargs)

    def log_node_failed(self, level: str, url: str, error_type: str, error_message: str, **kwargs: Any) -> None:
        log_crawl_event(
            self.logger,
            "node_failed",
            url,
            entity_level=level,
            error_type=error_type,
            error_message=error_message,
            **kwargs,
        )

    def log_retry_outcome(self, level: str, url: str, entry_id: str, recovered: bool, **kwargs: Any) -> None:
        event_type = "retry_recovered" if recovered else "retry_failed"
        log_crawl_event(self.logger, event_type, url, entity_level=level, entry_id=entry_id, **kwargs)
