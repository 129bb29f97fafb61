"""Tests for structured logging.

**Feature: hlspipe, Property 12: Correlated Structured Logs**
"""

import json
import logging

from hlspipe.core.logging import (
    StructuredFormatter,
    clear_correlation_id,
    get_correlation_id,
    log_error,
    set_correlation_id,
)


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("hlspipe.test", logging.INFO, __file__, 10, "Job %s", ("done",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """**Feature: hlspipe, Property 12: Correlated Structured Logs**"""

    def test_record_is_json_with_correlation_id(self) -> None:
        set_correlation_id("delivery-7")
        try:
            output = json.loads(StructuredFormatter().format(make_record(video_id="clip1")))
        finally:
            clear_correlation_id()

        assert output["message"] == "Job done"
        assert output["level"] == "INFO"
        assert output["correlation_id"] == "delivery-7"
        assert output["extra"]["video_id"] == "clip1"

    def test_unserializable_extra_is_stringified(self) -> None:
        output = json.loads(StructuredFormatter().format(make_record(path=object())))

        assert output["extra"]["path"].startswith("<object object")

    def test_correlation_id_is_generated_when_missing(self) -> None:
        clear_correlation_id()

        first = get_correlation_id()

        assert first
        assert get_correlation_id() == first
        clear_correlation_id()

    def test_exception_and_context_fields_are_rendered(self) -> None:
        logger = logging.getLogger("hlspipe.test.errors")
        records = []
        handler = logging.Handler()
        handler.emit = records.append
        logger.addHandler(handler)
        try:
            try:
                raise RuntimeError("ffmpeg died")
            except RuntimeError as e:
                log_error(logger, "Encode failed", e, video_id="clip1")
        finally:
            logger.removeHandler(handler)

        output = json.loads(StructuredFormatter().format(records[0]))

        assert output["level"] == "ERROR"
        assert output["exception"]["type"] == "RuntimeError"
        assert output["exception"]["message"] == "ffmpeg died"
        assert output["extra"] == {"video_id": "clip1"}
