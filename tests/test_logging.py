import json
import logging

from app.core import context
from app.core.logging import JsonFormatter, RequestContextFilter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("app.ops", logging.WARNING, __file__, 1, "breach on %s", ("c-1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_carries_context_and_extras():
    record = _record(alert="covenant_breach_unrouted")
    with context.job_context("covenant-due-sweep", "acme", "run-1"):
        RequestContextFilter().filter(record)

    payload = json.loads(JsonFormatter("ops").format(record))

    assert payload["message"] == "breach on c-1"
    assert payload["stream"] == "ops"
    assert payload["tenant_id"] == "acme"
    assert payload["request_id"] == "run-1"
    assert payload["job"] == "covenant-due-sweep"
    assert payload["alert"] == "covenant_breach_unrouted"


def test_job_context_restores_previous_values():
    context.set_tenant_id("outer")
    with context.job_context("job", "inner", "r"):
        assert context.get_tenant_id() == "inner"
    assert context.get_tenant_id() == "outer"
    context.clear_context()
