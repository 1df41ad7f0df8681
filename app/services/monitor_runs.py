"""Bookkeeping for the scheduled covenant sweep, kept in redis for health reporting."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from redis.exceptions import RedisError

from app.schemas.covenants import CheckSummary
from app.utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)

LAST_RUN_KEY = "covenant-monitor:last-run"


async def record_run(org_id: str, summary: CheckSummary, *, finished_at: datetime | None = None) -> None:
    payload = {
        "org_id": org_id,
        "finished_at": (finished_at or datetime.now(timezone.utc)).isoformat(),
        **summary.model_dump(),
    }
    try:
        await get_redis_client().hset(LAST_RUN_KEY, org_id, json.dumps(payload))
    except RedisError as exc:
        # The sweep itself succeeded; only the health breadcrumb is lost
        logger.warning("Could not record covenant sweep for org %s: %s", org_id, exc)


async def last_runs() -> dict[str, Any]:
    raw = await get_redis_client().hgetall(LAST_RUN_KEY)
    return {org_id: json.loads(value) for org_id, value in raw.items()}
