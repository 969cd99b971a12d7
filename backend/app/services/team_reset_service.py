"""Auto-reset coordinator — repopulate an exhausted eligible set exactly once.

The re-check and the reset are the same write: a conditional
``find_one_and_update`` that only matches while every active team id is
still marked used. Concurrent callers (duplicate retries, a pick racing the
reset) can therefore never produce two resets, and a caller that loses the
race just reads back the current set.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from bson import ObjectId

import app.database as _db
from app.models.audit import AuditAction
from app.services.audit_service import SYSTEM_ACTOR, log_audit
from app.services.eligibility_service import eligible_from
from app.utils import utcnow

logger = logging.getLogger("lastpick.team_reset_service")

RESET_MESSAGE = "You have used every team — all teams are available again."


@dataclass
class ResetOutcome:
    reset_occurred: bool
    teams: list[dict] = field(default_factory=list)
    message: Optional[str] = None


async def maybe_reset(player_id: ObjectId, competition: dict, active_teams: list[dict]) -> ResetOutcome:
    """Reset the player's used markers if the eligible set is still empty.

    No-op (and no audit entry) when the competition does not track used
    teams, the team list is empty, or another request already changed the
    set since the caller looked.
    """
    if not competition.get("no_team_twice", True) or not active_teams:
        return ResetOutcome(reset_occurred=False, teams=list(active_teams))

    now = utcnow()
    active_ids = [t["_id"] for t in active_teams]
    player = await _db.db.competition_players.find_one_and_update(
        {"_id": player_id, "used_teams.team_id": {"$all": active_ids}},
        {
            "$set": {"used_teams": [], "last_reset_at": now, "updated_at": now},
            "$inc": {"reset_count": 1},
        },
        return_document=True,
    )

    if player is None:
        # Lost the double-check: someone else reset or restored a team.
        current = await _db.db.competition_players.find_one({"_id": player_id})
        logger.info("Team reset skipped, set no longer empty: player=%s", player_id)
        return ResetOutcome(reset_occurred=False, teams=eligible_from(current or {}, active_teams))

    logger.info(
        "Teams auto-reset: player=%s competition=%s teams=%d resets=%d",
        player_id, competition["_id"], len(active_teams), player.get("reset_count", 0),
    )
    await log_audit(
        actor_id=SYSTEM_ACTOR,
        target_id=str(player_id),
        action=AuditAction.TEAMS_AUTO_RESET,
        competition_id=str(competition["_id"]),
        metadata={
            "reason": "Player ran out of available teams",
            "team_count": len(active_teams),
            "reset_count": player.get("reset_count", 0),
        },
    )
    return ResetOutcome(reset_occurred=True, teams=list(active_teams), message=RESET_MESSAGE)
