"""Tests for correlation-aware log formatting."""

from __future__ import annotations

import json
import logging

from actionflow.utils.logger import (
    CorrelationJsonFormatter,
    CorrelationTextFormatter,
    correlation_fields,
    ctx_job_id,
    ctx_node_id,
)


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("actionflow.test", logging.INFO, __file__, 1, msg, None, None)


class TestCorrelation:
    def test_nothing_bound(self):
        assert correlation_fields() == {}
        assert CorrelationTextFormatter("%(message)s").format(_record()) == "hello"

    def test_text_formatter_appends_bound_fields(self):
        job = ctx_job_id.set("job-1")
        node = ctx_node_id.set("n1")
        try:
            line = CorrelationTextFormatter("%(message)s").format(_record())
        finally:
            ctx_node_id.reset(node)
            ctx_job_id.reset(job)
        assert line == "hello [job_id=job-1 node_id=n1]"

    def test_json_formatter_adds_fields(self):
        job = ctx_job_id.set("job-2")
        try:
            payload = json.loads(CorrelationJsonFormatter("%(message)s").format(_record()))
        finally:
            ctx_job_id.reset(job)
        assert payload["job_id"] == "job-2"
        assert payload["message"] == "hello"
        assert "node_id" not in payload
