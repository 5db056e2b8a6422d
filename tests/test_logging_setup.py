import io
import logging
import sys

from vesting_tracker.logging_setup import configure_logging, get_logger, reset_logging


def test_configure_logging_attaches_one_handler():
    buf = io.StringIO()
    configure_logging("INFO", stream=buf)
    configure_logging("DEBUG", stream=io.StringIO())  # already configured

    log = get_logger("vesting_tracker.retry")
    log.debug("hidden")
    log.info("retry operation=%s attempt=%d/%d", "transaction_fetch", 1, 3)

    out = buf.getvalue()
    assert "vesting_tracker.retry INFO retry operation=transaction_fetch attempt=1/3" in out
    assert "hidden" not in out
    pkg = logging.getLogger("vesting_tracker")
    assert len(pkg.handlers) == 1
    assert pkg.propagate is False


def test_level_comes_from_environment(monkeypatch):
    monkeypatch.setenv("VESTING_TRACKER_LOG_LEVEL", "warning")
    buf = io.StringIO()
    configure_logging(stream=buf)

    log = get_logger("vesting_tracker.pipeline")
    log.info("tracked address=x")
    log.warning("partial_data missing=prices")
    assert buf.getvalue().count("\n") == 1
    assert "partial_data" in buf.getvalue()


def test_default_stream_is_resolved_at_call_time(monkeypatch):
    buf = io.StringIO()
    monkeypatch.setattr(sys, "stderr", buf)
    configure_logging("INFO")
    get_logger("vesting_tracker.cli").info("annotated matched=1")
    assert "annotated matched=1" in buf.getvalue()


def test_reset_restores_silent_library_default():
    configure_logging("INFO", stream=io.StringIO())
    reset_logging()

    pkg = logging.getLogger("vesting_tracker")
    assert pkg.handlers == []
    assert pkg.propagate is True
    get_logger("vesting_tracker.indexer")
    assert [type(h) for h in pkg.handlers] == [logging.NullHandler]
