"""
Structured logging setup for the DeGov background worker.
Provides JSON-formatted logs with consistent fields for production monitoring.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output for production.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_task_context,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("psycopg").setLevel(logging.WARNING)
    logging.getLogger("psycopg.pool").setLevel(logging.WARNING)


def _add_task_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Rename the bound scheduler task to a stable `task` field."""
    task_name = event_dict.pop("scheduler_task", None)
    if task_name and "task" not in event_dict:
        event_dict["task"] = task_name
    return event_dict


def bind_task_context(task_name: str) -> None:
    """Bind the running task name to every log line emitted in this context."""
    structlog.contextvars.bind_contextvars(scheduler_task=task_name)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_job_run(job: str, metrics: dict[str, Any], error: str = None):
    """Log a finished job run with consistent fields."""
    logger = get_logger("jobs")

    log_data = {"job_run": job, **metrics}

    if error:
        log_data["error"] = error
        logger.error("Job run failed", **log_data)
    else:
        logger.info("Job run completed", **log_data)
