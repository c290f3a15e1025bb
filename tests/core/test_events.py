"""Tests for analytics event sinks."""
import logging
from typing import Any

import pytest

from core.events import EventName, LoggingEventSink, NullEventSink, emit_event


class ExplodingSink:
    """Sink whose every call fails."""

    def process_event(self, name: EventName, **details: Any) -> None:
        raise RuntimeError("sink is down")


def test__emit_event__swallows_sink_errors(caplog: pytest.LogCaptureFixture) -> None:
    """A failing sink is logged and never reaches the caller."""
    with caplog.at_level(logging.ERROR, logger="core.events"):
        emit_event(ExplodingSink(), EventName.CREATE_COLLECTION, list_id="abc")

    assert "create_collection" in caplog.text


def test__logging_event_sink__logs_when_enabled(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="core.events"):
        LoggingEventSink().process_event(EventName.INSERT_PAGE_COLLECTION, list_id="abc")

    assert "insert_page_collection" in caplog.text


def test__logging_event_sink__silent_when_disabled(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="core.events"):
        LoggingEventSink(enabled=False).process_event(EventName.REMOVE_COLLECTION)

    assert caplog.text == ""


def test__null_event_sink__accepts_events() -> None:
    emit_event(NullEventSink(), EventName.REMOVE_PAGE_COLLECTION, list_id="abc")
