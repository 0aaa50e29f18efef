"""Telemetry context and package logging setup."""

import logging

import pytest

import prompt_chain
from prompt_chain.telemetry import (
    TELEMETRY_ENV_VAR,
    InMemoryReporter,
    TelemetryContext,
    default_reporter,
)

pytestmark = pytest.mark.unit


class ExplodingReporter:
    def record_timing(self, scope, duration, **metadata):
        raise RuntimeError("reporter down")

    def record_metric(self, scope, value, **metadata):
        raise RuntimeError("reporter down")


def test_disabled_by_default_is_shared_noop() -> None:
    first = TelemetryContext()
    second = TelemetryContext()

    assert first is second
    assert first.enabled is False
    with first("anything", key="value") as scope:
        scope.count("nothing")
        scope.metric("nothing", 1)


def test_environment_flag_enables_default_reporter(monkeypatch) -> None:
    monkeypatch.setenv(TELEMETRY_ENV_VAR, "1")

    telemetry = TelemetryContext()
    with telemetry("env.scope"):
        pass

    assert telemetry.enabled is True
    assert "env.scope" in default_reporter().timings


def test_nested_scopes_record_paths_and_metadata() -> None:
    reporter = InMemoryReporter()
    telemetry = TelemetryContext(reporter)

    with telemetry("outer"):
        with telemetry("inner", step=2):
            telemetry.count("hits")
            telemetry.count("hits", increment=2)
        telemetry.metric("size", 10)

    assert set(reporter.timings) == {"outer", "outer.inner"}
    _, inner_meta = reporter.timings["outer.inner"][0]
    assert inner_meta == {"depth": 1, "parent_scope": "outer", "step": 2}
    _, outer_meta = reporter.timings["outer"][0]
    assert outer_meta["parent_scope"] is None
    assert reporter.total("outer.inner.hits") == 3
    assert reporter.metrics["outer.inner.hits"][0][1] == {"metric_type": "counter"}
    assert reporter.total("outer.size") == 10


def test_scope_is_recorded_when_body_raises() -> None:
    reporter = InMemoryReporter()
    telemetry = TelemetryContext(reporter)

    with pytest.raises(ValueError), telemetry("failing"):
        raise ValueError("boom")

    assert len(reporter.timings["failing"]) == 1


def test_reporter_errors_are_logged_not_raised(caplog) -> None:
    reporter = InMemoryReporter()
    telemetry = TelemetryContext(ExplodingReporter(), reporter)

    with caplog.at_level(logging.ERROR, logger="prompt_chain.telemetry"):
        with telemetry("scope"):
            telemetry.count("events")

    assert "ExplodingReporter" in caplog.text
    assert "scope" in reporter.timings
    assert reporter.total("scope.events") == 1


def test_empty_scope_name_is_rejected() -> None:
    telemetry = TelemetryContext(InMemoryReporter())
    with pytest.raises(ValueError), telemetry(""):
        pass


def test_report_lists_timings_and_metrics() -> None:
    reporter = InMemoryReporter(max_entries_per_scope=2)
    telemetry = TelemetryContext(reporter)
    for _ in range(3):
        with telemetry("loop"):
            telemetry.count("ticks")

    report = reporter.get_report()

    assert len(reporter.timings["loop"]) == 2
    assert "=== Telemetry Report ===" in report
    assert "loop" in report
    assert "loop.ticks" in report


def test_configure_logging_is_idempotent() -> None:
    logger = logging.getLogger("prompt_chain")
    before = list(logger.handlers)
    try:
        prompt_chain.configure_logging("debug")
        prompt_chain.configure_logging(logging.INFO)

        console = [h for h in logger.handlers if h.get_name() == "prompt_chain.console"]
        assert len(console) == 1
        assert logger.level == logging.INFO
    finally:
        logger.handlers[:] = before
        logger.setLevel(logging.NOTSET)


def test_configure_logging_uses_resolved_level(monkeypatch) -> None:
    monkeypatch.setenv("PROMPT_CHAIN_LOG_LEVEL", "error")
    logger = logging.getLogger("prompt_chain")
    before = list(logger.handlers)
    try:
        assert prompt_chain.configure_logging() is logger
        assert logger.level == logging.ERROR
    finally:
        logger.handlers[:] = before
        logger.setLevel(logging.NOTSET)
