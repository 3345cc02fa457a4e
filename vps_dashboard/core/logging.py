"""Structured JSON logging configuration for the API process and its workers."""

import logging
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter as _JsonFormatter

from vps_dashboard.config import settings

# Per-request correlation ID, set by RequestIdMiddleware
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
# Per-job correlation ID, set by the worker running the job
job_id_var: ContextVar[str] = ContextVar("job_id", default="-")


class _ContextFilter(logging.Filter):
    """Injects the current request_id and job_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        if not hasattr(record, "job_id"):
            record.job_id = job_id_var.get()
        return True


class _AppJsonFormatter(_JsonFormatter):
    """Extends the standard JSON formatter with service-level metadata."""

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("service", settings.app_name)
        log_record.setdefault("version", settings.app_version)
        log_record.setdefault("env", settings.env)


def configure_logging() -> None:
    """Set up structured JSON logging for the entire application.

    Log levels:
        DEBUG  — reads, queued jobs, hypervisor task ids (enabled when settings.debug=True)
        INFO   — every dispatch, job start/finish, completed state transitions
        WARNING — rejected actions, transient hypervisor failures being retried
        ERROR  — failed jobs, invariant violations, stale transient servers
        CRITICAL — unrecoverable startup failures
    """
    log_level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(
        _AppJsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s %(request_id)s %(job_id)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
    )
    handler.addFilter(_ContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    # Suppress noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
