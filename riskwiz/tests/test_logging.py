# riskwiz/tests/test_logging.py
import io
import json
import logging

import pytest

from riskwiz.logging import (
    JSONFormatter,
    bind,
    configure_json_logging,
    context,
    log_dashboard_complete,
    reset,
    resolve_level,
    scrub_dict,
    unbind,
)


@pytest.fixture(autouse=True)
def clean_context():
    reset()
    yield
    reset()


def _record(msg="hello", **extra):
    rec = logging.LogRecord("riskwiz.test", logging.INFO, __file__, 1, msg, None, None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def test_formatter_envelope():
    doc = json.loads(JSONFormatter().format(_record(node_count=7)))
    for key in ("schema", "service", "ts", "lvl", "logger", "msg"):
        assert key in doc
    assert doc["msg"] == "hello"
    assert doc["meta"] == {"node_count": 7}


def test_bound_context_lands_in_envelope():
    bind(req_id="wizard:geo_1", mode="mock")
    doc = json.loads(JSONFormatter().format(_record()))
    assert doc["req_id"] == "wizard:geo_1"
    assert doc["mode"] == "mock"


def test_record_fields_win_over_context():
    bind(req_id="from-context")
    doc = json.loads(JSONFormatter().format(_record(req_id="from-record")))
    assert doc["req_id"] == "from-record"


def test_bind_unbind():
    bind(a=1, b=None)
    assert context() == {"a": 1}
    unbind("a")
    assert context() == {}


def test_resolve_level():
    assert resolve_level("verbose") == logging.DEBUG
    assert resolve_level("normal") == logging.INFO
    assert resolve_level("silent") > logging.CRITICAL
    assert resolve_level("WARNING") == logging.WARNING


def test_silent_suppresses_output_but_events_still_flow(caplog):
    stream = io.StringIO()
    root = configure_json_logging("silent", include_uvicorn=False, stream=stream)
    try:
        caplog.set_level(logging.INFO, logger="riskwiz.orchestrator")
        log_dashboard_complete(
            logging.getLogger("riskwiz.orchestrator"),
            fingerprint="wizard:x",
            as_of_timestamp="2024-01-01T00:00:00Z",
            dataset_versions=[{"source_id": "NOAA", "version": "v5.1", "as_of": "2024-01-15"}],
            node_count=7,
            cached=False,
        )
        assert stream.getvalue() == ""
        assert any(r.getMessage() == "dashboard.complete" for r in caplog.records)
    finally:
        for h in list(root.handlers):
            if getattr(h, "_riskwiz_json", False):
                root.removeHandler(h)


def test_normal_level_writes_json_lines():
    stream = io.StringIO()
    root = configure_json_logging("normal", include_uvicorn=False, stream=stream)
    try:
        logging.getLogger("riskwiz.test").info("dashboard.request", extra={"req_id": "wizard:y"})
        line = stream.getvalue().strip().splitlines()[-1]
        doc = json.loads(line)
        assert doc["msg"] == "dashboard.request"
        assert doc["req_id"] == "wizard:y"
    finally:
        for h in list(root.handlers):
            if getattr(h, "_riskwiz_json", False):
                root.removeHandler(h)


def test_scrub_dict():
    out = scrub_dict({"Authorization": "Bearer x", "accept": "json", "nested": {"cookie": "c"}})
    assert out == {"Authorization": "***", "accept": "json", "nested": {"cookie": "***"}}
