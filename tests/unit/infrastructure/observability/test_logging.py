"""Tests for structured logging and the logger helpers."""

import asyncio
import json
import logging

import pytest
from pytest_mock import MockerFixture

from soulfetch.domain.exceptions import ProviderError
from soulfetch.infrastructure.observability import logger_template
from soulfetch.infrastructure.observability.logger_template import (
    log_operation,
    log_worker_health,
    warn_if_slow,
)
from soulfetch.infrastructure.observability.logging import (
    ConsoleFormatter,
    JobContextFilter,
    JsonLogFormatter,
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)


def _record(message: str = "download_scheduler.attempt_started", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="soulfetch.test", level=logging.INFO, pathname=__file__, lineno=10,
        msg=message, args=(), exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationId:
    """Test correlation ID functionality."""

    def test_set_and_get_correlation_id(self) -> None:
        """Test setting and getting correlation ID."""
        assert set_correlation_id("job-123") == "job-123"
        assert get_correlation_id() == "job-123"

    def test_set_correlation_id_generates_uuid_when_none(self) -> None:
        result = set_correlation_id(None)
        assert len(result) == 36
        assert get_correlation_id() == result

    async def test_each_task_has_its_own_id(self) -> None:
        """Parallel job tasks never see each other's correlation ID."""
        set_correlation_id("outer")

        async def attempt(job_id: str) -> str:
            set_correlation_id(job_id)
            await asyncio.sleep(0)
            return get_correlation_id()

        results = await asyncio.gather(attempt("job-a"), attempt("job-b"))

        assert results == ["job-a", "job-b"]
        assert get_correlation_id() == "outer"

    def test_filter_adds_id_to_record(self) -> None:
        set_correlation_id("job-7")
        record = _record()

        assert JobContextFilter().filter(record)
        assert record.correlation_id == "job-7"


class TestFormatters:
    """Test the JSON and compact console formatters."""

    def test_json_formatter_fields(self) -> None:
        formatter = JsonLogFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        record = _record(correlation_id="job-9", job_id="job-9", state="completed")

        payload = json.loads(formatter.format(record))

        assert payload["message"] == "download_scheduler.attempt_started"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "soulfetch.test"
        assert payload["correlation_id"] == "job-9"
        assert payload["state"] == "completed"

    def test_json_formatter_without_correlation_id(self) -> None:
        formatter = JsonLogFormatter("%(message)s")
        payload = json.loads(formatter.format(_record()))
        assert "correlation_id" not in payload

    def test_compact_exception_chain_root_cause_first(self) -> None:
        try:
            try:
                raise ConnectionError("All connection attempts failed")
            except ConnectionError as e:
                raise ProviderError("slskd unreachable") from e
        except ProviderError as e:
            error = e

        text = ConsoleFormatter().formatException((type(error), error, error.__traceback__))

        lines = [line for line in text.splitlines() if line.startswith("╰─►")]
        assert lines == [
            "╰─► ConnectionError: All connection attempts failed",
            "╰─► ProviderError: slskd unreachable",
        ]

    def test_compact_exception_without_exception(self) -> None:
        assert ConsoleFormatter().formatException((None, None, None)) == ""


class TestLoggingConfiguration:
    """Test configure_logging()."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_configure_logging_debug_level(self) -> None:
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        assert logging.getLogger("soulfetch").getEffectiveLevel() <= logging.DEBUG

    def test_json_format_uses_json_formatter(self) -> None:
        configure_logging(log_level="INFO", json_format=True)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, JsonLogFormatter)

    def test_text_format_uses_compact_formatter(self) -> None:
        configure_logging(log_level="WARNING", json_format=False)

        handler = logging.getLogger().handlers[0]
        assert isinstance(handler.formatter, ConsoleFormatter)
        assert logging.getLogger().level == logging.WARNING

    def test_http_libraries_are_quieted(self) -> None:
        configure_logging(log_level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING


class TestLoggerTemplate:
    """Test log_operation / warn_if_slow / log_worker_health."""

    LOGGER = "soulfetch.test.template"

    async def test_log_operation_success(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger(self.LOGGER)
        with caplog.at_level(logging.INFO, logger=self.LOGGER):
            async with log_operation(logger, "library_reconcile", entries=3) as fields:
                fields["relocated"] = 1

        messages = [record.getMessage() for record in caplog.records]
        assert messages == ["library_reconcile.started", "library_reconcile.completed"]
        completed = caplog.records[1]
        assert (completed.entries, completed.relocated) == (3, 1)
        assert completed.duration_ms >= 0

    async def test_log_operation_failure_reraises(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger(self.LOGGER)
        with caplog.at_level(logging.INFO, logger=self.LOGGER):
            with pytest.raises(ValueError):
                async with log_operation(logger, "library_reconcile"):
                    raise ValueError("broken entry")

        failed = caplog.records[-1]
        assert failed.getMessage() == "library_reconcile.failed"
        assert failed.error_type == "ValueError"
        assert failed.exc_info is not None

    def test_log_worker_health(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger(self.LOGGER)
        with caplog.at_level(logging.INFO, logger=self.LOGGER):
            log_worker_health(
                logger, "download_scheduler", cycles=100, errors=2, uptime_seconds=61.7, active=3
            )

        record = caplog.records[0]
        assert record.getMessage() == "worker.health"
        assert (record.worker, record.cycles_completed, record.errors_total) == (
            "download_scheduler", 100, 2,
        )
        assert (record.uptime_seconds, record.active) == (61, 3)

    @pytest.mark.parametrize(("elapsed", "warned"), [(0.05, False), (2.5, True)])
    def test_warn_if_slow(
        self,
        caplog: pytest.LogCaptureFixture,
        mocker: MockerFixture,
        elapsed: float,
        warned: bool,
    ) -> None:
        clock = mocker.patch.object(logger_template, "time")
        clock.perf_counter.side_effect = [10.0, 10.0 + elapsed]
        logger = logging.getLogger(self.LOGGER)

        with caplog.at_level(logging.WARNING, logger=self.LOGGER):
            with warn_if_slow(logger, "resolver.fuzzy_walk", 100, target="Daft Punk - Aerodynamic"):
                pass

        assert len(caplog.records) == int(warned)
        if warned:
            record = caplog.records[0]
            assert record.getMessage() == "operation.slow"
            assert (record.operation, record.duration_ms) == ("resolver.fuzzy_walk", 2500)
            assert record.target == "Daft Punk - Aerodynamic"
