"""Resolve locked rounds whose fixtures all have results.

Safety net for ``apply_result``: if the inline resolution after the last
result failed (process restart, database blip), the next sweep picks the
round up. Resolution is idempotent, so overlapping runs are harmless.
"""

import logging
from datetime import timedelta

import app.database as _db
from app.config import settings
from app.errors import LmsError
from app.services.result_service import resolve_round
from app.services.round_gate import is_open
from app.utils import utcnow
from app.workers._state import mark_run, ran_within

logger = logging.getLogger("lastpick.round_resolver")

STATE_KEY = "round_resolver"


async def _has_locked_candidate(now) -> bool:
    """An unresolved round past its lock_time, without one, or with a fixture
    that has kicked off but not been processed."""
    if await _db.db.rounds.find_one({
        "resolved_at": None,
        "$or": [{"lock_time": {"$lte": now}}, {"lock_time": None}],
    }):
        return True
    kicked_off = await _db.db.fixtures.find_one({"kickoff_time": {"$lte": now}, "processed_at": None})
    return kicked_off is not None


async def resolve_locked_rounds() -> int:
    """Returns the number of rounds resolved in this sweep.

    Smart sleep: skips if the sweep ran recently and no unresolved round
    can be locked yet.
    """
    now = utcnow()
    if await ran_within(STATE_KEY, timedelta(hours=settings.ROUND_RESOLVER_IDLE_HOURS)):
        if not await _has_locked_candidate(now):
            logger.debug("Smart sleep: no locked unresolved rounds")
            return 0

    rounds = await _db.db.rounds.find({"resolved_at": None}).to_list(length=1000)
    resolved = 0
    for round_doc in rounds:
        fixtures = await _db.db.fixtures.find({"round_id": round_doc["_id"]}).to_list(length=200)
        if not fixtures or not all(f.get("result") for f in fixtures):
            continue
        if is_open(round_doc, now, fixtures):
            continue
        try:
            summary = await resolve_round(str(round_doc["_id"]))
        except LmsError as exc:
            logger.warning("Round %s not resolvable: %s", round_doc["_id"], exc.message)
            continue
        if summary.complete and not summary.already_resolved:
            resolved += 1

    if resolved:
        logger.info("Resolved %d rounds", resolved)
    await mark_run(STATE_KEY, resolved=resolved)
    return resolved
