"""Log setup for soulfetch: JSON lines for shipping, compact text for a terminal.

Every record gets the correlation ID of the job attempt that emitted it, so one
download can be followed through search, ranking, transfer and bookkeeping.
"""

import contextvars
import logging
import sys
import traceback
import uuid
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me, the scheduler binds the job id here when an attempt task starts.
# asyncio copies the context into every task, so parallel attempts never see each
# other's id and the dispatcher loop keeps whatever it had before.
_correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "soulfetch_correlation_id", default=""
)

# Third-party loggers that flood DEBUG output while slskd is being polled
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite")

_PACKAGE_DIR = "soulfetch"


def get_correlation_id() -> str:
    """Return the correlation ID bound to the current task ("" when unbound)."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation ID to the current task.

    Args:
        correlation_id: Usually a job id. None binds a fresh random UUID

    Returns:
        The bound ID
    """
    value = correlation_id if correlation_id is not None else str(uuid.uuid4())
    _correlation_id.set(value)
    return value


class JobContextFilter(logging.Filter):
    """Stamp records with the current correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get()
        return True


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield the chain from root cause to the exception that was logged."""
    chain: list[BaseException] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        chain.append(current)
        current = current.__cause__ or current.__context__
    yield from reversed(chain)


def _own_frames(tb: TracebackType | None) -> Iterator[traceback.FrameSummary]:
    for frame in traceback.extract_tb(tb):
        if _PACKAGE_DIR in Path(frame.filename).parts:
            yield frame


class ConsoleFormatter(logging.Formatter):
    """Human formatter that prints exception chains without library noise.

    Only frames inside the soulfetch package are kept, one "╰─►" header per
    exception, root cause first:

        ERROR   │ soulfetch.application.workers.download_scheduler:310 │ download_scheduler.job_crashed
        ╰─► ConnectError: All connection attempts failed
        ╰─► ProviderError: slskd unreachable: All connection attempts failed
            File "slskd_provider.py", line 142, in _request
              response = await self._client.request(method, path, **kwargs)
    """

    def formatException(self, ei: Any) -> str:
        exc = ei[1]
        if exc is None:
            return ""

        out: list[str] = []
        for link in _exception_chain(exc):
            out.append(f"╰─► {type(link).__name__}: {link}")
            for frame in _own_frames(link.__traceback__):
                out.append(f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}')
                if frame.line:
                    out.append(f"      {frame.line.strip()}")
        return "\n".join(out)


class JsonLogFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """One JSON object per line, with the job correlation ID when one is bound."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.fromtimestamp(record.created, tz=UTC).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["source"] = f"{record.module}:{record.lineno}"

        correlation_id = log_record.pop("correlation_id", "") or getattr(
            record, "correlation_id", ""
        )
        if correlation_id:
            log_record["correlation_id"] = correlation_id


# Listen future me, call this ONCE at startup: it throws away whatever handlers the root
# logger had. json_format=True is for log shipping, False for reading in a terminal.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "soulfetch",
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (unknown names fall back to INFO)
        json_format: Emit JSON lines instead of the compact console format
        app_name: Recorded in the startup line
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(JobContextFilter())
    if json_format:
        handler.setFormatter(JsonLogFormatter("%(message)s"))
    else:
        handler.setFormatter(
            ConsoleFormatter(
                fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s",
                datefmt="%H:%M:%S",
            )
        )

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "logging.configured",
        extra={"app_name": app_name, "log_level": logging.getLevelName(level), "json_format": json_format},
    )
