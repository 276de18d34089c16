"""structlog setup shared by the API process and the arq worker."""

import logging
import sys
from typing import Any

import structlog

SERVICE_NAME = "clockwork"


def _add_service(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(debug: bool = False, component: str = "api") -> None:
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_service,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(component=component)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def bind_request_id(request_id: str) -> None:
    """Start a fresh context for one HTTP request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(component="api", request_id=request_id)


def bind_actor(user_id: str, role: str) -> None:
    structlog.contextvars.bind_contextvars(actor_id=user_id, actor_role=role)


def bind_job(job_name: str, job_id: str | None, attempt: int | None = None) -> None:
    """Start a fresh context for one arq job run."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(component="worker", job=job_name, job_id=job_id, attempt=attempt)
