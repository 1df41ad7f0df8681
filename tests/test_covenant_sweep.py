from contextlib import asynccontextmanager
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from app.core import context
from app.jobs import covenant_sweep
from app.models.org import Org
from app.schemas.covenants import CheckSummary, CovenantCheckResponse

from conftest import FakeAsyncSession, FakeResult, entity_handler


def _factory(*sessions):
    pool = list(sessions)

    @asynccontextmanager
    async def _session():
        yield pool.pop(0)

    return _session


@pytest.fixture
def recorded_runs(monkeypatch):
    runs = {}

    async def _record(org_id, summary, **kwargs):
        runs[org_id] = summary

    monkeypatch.setattr(covenant_sweep.monitor_runs, "record_run", _record)
    return runs


@pytest.mark.asyncio
async def test_sweep_visits_every_active_org(monkeypatch, recorded_runs):
    lookup = FakeAsyncSession().on_execute(entity_handler(Org, FakeResult(items=["acme", "globex"])))
    seen = []

    async def _check(db, auth, *, as_of=None):
        seen.append((auth.org_id, auth.is_system, as_of, context.get_job_name(), context.get_tenant_id()))
        return CovenantCheckResponse(results=[], summary=CheckSummary(checked=2, new_breaches=1))

    monkeypatch.setattr(covenant_sweep.covenant_monitoring, "check_all_due_covenants", _check)

    report = await covenant_sweep.run_due_sweep(
        _factory(lookup, FakeAsyncSession(), FakeAsyncSession()), as_of=date(2026, 3, 31)
    )

    assert set(report.summaries) == {"acme", "globex"}
    assert report.failed_org_ids == []
    assert report.exit_code == 0
    assert [s[0] for s in seen] == ["acme", "globex"]
    assert all(s[1] for s in seen)
    assert seen[0][2] == date(2026, 3, 31)
    assert seen[0][3] == covenant_sweep.JOB_NAME
    assert seen[1][4] == "globex"
    assert recorded_runs["acme"].new_breaches == 1
    assert context.get_job_name() == "-"


@pytest.mark.asyncio
async def test_one_failing_org_does_not_stop_the_rest(monkeypatch, recorded_runs):
    async def _check(db, auth, *, as_of=None):
        if auth.org_id == "acme":
            raise OperationalError("select", {}, Exception("connection reset"))
        return CovenantCheckResponse(results=[], summary=CheckSummary(checked=1))

    monkeypatch.setattr(covenant_sweep.covenant_monitoring, "check_all_due_covenants", _check)

    report = await covenant_sweep.run_due_sweep(
        _factory(FakeAsyncSession(), FakeAsyncSession()), org_ids=["acme", "globex"]
    )

    assert list(report.summaries) == ["globex"]
    assert report.failed_org_ids == ["acme"]
    assert report.exit_code == 1
    assert "acme" not in recorded_runs


def test_failed_covenant_items_fail_the_run():
    report = covenant_sweep.SweepReport(summaries={"acme": CheckSummary(checked=3, failed=1)})

    assert report.exit_code == 1
