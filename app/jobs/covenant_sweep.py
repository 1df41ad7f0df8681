"""Scheduled due-covenant sweep across organizations.

Run from cron (see ``scripts/check_due_covenants.py``). Each org gets its own
session and a system ``AuthContext``; a failure in one org is logged and the
sweep moves on to the next.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Sequence
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import job_context
from app.models.org import Org
from app.schemas.covenants import CheckSummary
from app.services import covenant_monitoring, monitor_runs
from app.services.authz import AuthContext

logger = logging.getLogger(__name__)

JOB_NAME = "covenant-due-sweep"


@dataclass
class SweepReport:
    summaries: dict[str, CheckSummary] = field(default_factory=dict)
    failed_org_ids: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        if self.failed_org_ids or any(summary.failed for summary in self.summaries.values()):
            return 1
        return 0


async def active_org_ids(db: AsyncSession) -> list[str]:
    result = await db.execute(select(Org.id).where(Org.status == "ACTIVE").order_by(Org.id))
    return list(result.scalars().all())


async def run_due_sweep(
    session_factory: Callable[[], AsyncSession],
    *,
    as_of: date | None = None,
    org_ids: Sequence[str] | None = None,
) -> SweepReport:
    if org_ids is None:
        async with session_factory() as db:
            org_ids = await active_org_ids(db)

    report = SweepReport()
    run_id = str(uuid4())
    for org_id in org_ids:
        with job_context(JOB_NAME, org_id, run_id):
            try:
                async with session_factory() as db:
                    response = await covenant_monitoring.check_all_due_covenants(
                        db, AuthContext.system(org_id), as_of=as_of
                    )
            except SQLAlchemyError:
                logger.exception("Covenant sweep failed for org %s", org_id)
                report.failed_org_ids.append(org_id)
                continue
            report.summaries[org_id] = response.summary
            await monitor_runs.record_run(org_id, response.summary)
    logger.info(
        "Covenant sweep finished for %d of %d orgs",
        len(report.summaries),
        len(org_ids),
        extra={"failed_orgs": report.failed_org_ids},
    )
    return report
