"""
Structured logging for the API, the pipeline and the scheduler.

Two pieces of context ride along with every record without being passed to
each log call:
- correlation_id: one per HTTP request (middleware) or scheduled trigger
- job_id / step:  set by the pipeline while a generation step runs

Both live in contextvars and are stamped onto records by JobContextFilter,
so they survive awaits and never leak between concurrent jobs. Production
output is one JSON object per line; development output is a readable line
carrying the same context.
"""
import json
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
job_id_ctx: ContextVar[Optional[str]] = ContextVar("job_id", default=None)
step_ctx: ContextVar[Optional[str]] = ContextVar("step", default=None)

# Record attributes copied into the JSON line when present
_CONTEXT_FIELDS = ("job_id", "step", "topic_id", "model", "error_kind", "outcome")


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def set_correlation_id(cid: str) -> None:
    correlation_id_ctx.set(cid)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


@contextmanager
def job_context(job_id: str, step: Optional[str] = None) -> Iterator[None]:
    """Tag every log record emitted inside the block with the job and step."""
    job_token = job_id_ctx.set(job_id)
    step_token = step_ctx.set(step)
    try:
        yield
    finally:
        step_ctx.reset(step_token)
        job_id_ctx.reset(job_token)


class JobContextFilter(logging.Filter):
    """Stamp correlation_id, job_id and step onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = correlation_id_ctx.get()
        if getattr(record, "job_id", None) is None:
            record.job_id = job_id_ctx.get()
        if getattr(record, "step", None) is None:
            record.step = step_ctx.get()
        return True


class StructuredJsonFormatter(logging.Formatter):
    """
    One JSON object per record:
    {"timestamp": "...", "level": "INFO", "correlation_id": "...", "module": "...",
     "message": "...", "job_id": "...", "step": "..."}
    Context fields are omitted when unset.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
            "module": record.name,
            "message": record.getMessage(),
        }

        for key in _CONTEXT_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class ReadableFormatter(logging.Formatter):
    """Single-line text for local runs: time, level, logger, job/step, message."""

    def format(self, record: logging.LogRecord) -> str:
        context = [
            f"{key}={getattr(record, key)}"
            for key in ("correlation_id", "job_id", "step")
            if getattr(record, key, None)
        ]
        line = "%s %-7s %s%s: %s" % (
            datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
            record.levelname,
            record.name,
            f" [{' '.join(context)}]" if context else "",
            record.getMessage(),
        )
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_structured_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Replace the root handlers with one stream handler carrying the context filter.
    Call once at application startup before any log calls.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.addFilter(JobContextFilter())
    stream_handler.setFormatter(StructuredJsonFormatter() if json_output else ReadableFormatter())
    root_logger.addHandler(stream_handler)

    # Quiet the SDK and transport loggers; our own client logs every attempt
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
