"""Root logger setup with per-run correlation fields.

The execution service sets ``ctx_job_id`` / ``ctx_workflow_id`` for the task
driving a run and the scheduler sets ``ctx_node_id`` inside each node task,
so every record emitted while a node runs carries all three.
"""

import contextvars
import logging
import sys

from pythonjsonlogger import jsonlogger

ctx_job_id = contextvars.ContextVar("job_id", default=None)
ctx_workflow_id = contextvars.ContextVar("workflow_id", default=None)
ctx_node_id = contextvars.ContextVar("node_id", default=None)

_CORRELATION = (
    ("job_id", ctx_job_id),
    ("workflow_id", ctx_workflow_id),
    ("node_id", ctx_node_id),
)


def correlation_fields() -> dict[str, str]:
    """Correlation values bound in the current context (unset ones omitted)."""
    fields = {}
    for name, var in _CORRELATION:
        value = var.get()
        if value:
            fields[name] = value
    return fields


class CorrelationJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record.update(correlation_fields())


class CorrelationTextFormatter(logging.Formatter):
    """Plain-text format; appends ``[job_id=... node_id=...]`` when bound."""

    def format(self, record):
        line = super().format(record)
        fields = correlation_fields()
        if fields:
            line += " [" + " ".join(f"{k}={v}" for k, v in fields.items()) + "]"
        return line


def setup_logger(log_format: str = "text", log_level: str = "INFO"):
    """Configure the root logger."""
    root_logger = logging.getLogger()

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if log_format.lower() == "json":
        handler.setFormatter(
            CorrelationJsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s",
                rename_fields={"levelname": "level", "asctime": "timestamp"},
            )
        )
    else:
        handler.setFormatter(CorrelationTextFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Per-request httpx logs duplicate the dispatcher's own lines.
    for noisy in ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger
