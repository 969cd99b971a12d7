"""Persistent worker state — last run per periodic sweep, kept across restarts.

Stored in the lightweight `worker_state` collection so a freshly started
process does not rescan everything that an earlier process just handled.
"""

from datetime import datetime, timedelta

import app.database as _db
from app.utils import ensure_utc, utcnow


async def get_last_run(worker_id: str) -> datetime | None:
    doc = await _db.db.worker_state.find_one({"_id": worker_id})
    return doc["last_run_at"] if doc else None


async def mark_run(worker_id: str, **stats) -> None:
    """Record a completed sweep (plus optional counters for the admin view)."""
    await _db.db.worker_state.update_one(
        {"_id": worker_id},
        {"$set": {"last_run_at": utcnow(), "stats": stats}},
        upsert=True,
    )


async def ran_within(worker_id: str, max_age: timedelta) -> bool:
    last = await get_last_run(worker_id)
    if not last:
        return False
    return (utcnow() - ensure_utc(last)) < max_age
