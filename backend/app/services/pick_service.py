"""Pick ledger — one live pick per player per round.

Every write runs in one MongoDB transaction that starts by bumping the
player's ``write_seq``. Two requests for the same player therefore always
write-conflict and the driver retries the loser against the committed
state: pick submissions for a player are linearizable. Eligibility side
effects (consume/restore) happen inside the same transaction, so a round
never has zero or two consumed teams for one player.

Replacing a pick withdraws the old row (``replaced=True``) and inserts a new
one; rows are never reanimated or deleted.
"""

import logging
from typing import Optional

from bson import ObjectId

import app.database as _db
from app.errors import ErrorCode, LmsError
from app.models.audit import AuditAction
from app.models.competition import PlayerStatus
from app.models.pick import (
    PickResponse,
    PickSide,
    PickStatus,
    TeamPickCount,
    WithdrawResponse,
)
from app.services import competition_service, eligibility_service
from app.services.audit_service import log_audit
from app.services.round_gate import assert_open
from app.utils import to_object_id, utcnow

logger = logging.getLogger("lastpick.pick_service")


async def _lock_player(player_id: ObjectId, session) -> dict:
    """Bump write_seq so concurrent transactions on this player conflict."""
    player = await _db.db.competition_players.find_one_and_update(
        {"_id": player_id},
        {"$inc": {"write_seq": 1}, "$set": {"updated_at": utcnow()}},
        session=session,
        return_document=True,
    )
    if not player:
        raise LmsError(ErrorCode.PLAYER_NOT_FOUND, "Player not found.")
    return player


async def _find_pending_pick(player_id: ObjectId, round_id: ObjectId, session=None) -> Optional[dict]:
    return await _db.db.picks.find_one(
        {"player_id": player_id, "round_id": round_id, "status": PickStatus.pending.value},
        session=session,
    )


async def _find_live_pick(player_id: ObjectId, round_id: ObjectId, session=None) -> Optional[dict]:
    return await _db.db.picks.find_one(
        {"player_id": player_id, "round_id": round_id, "status": {"$in": _db.LIVE_PICK_STATUSES}},
        session=session,
    )


def pick_response(pick: dict) -> PickResponse:
    return PickResponse(
        id=str(pick["_id"]),
        round_id=str(pick["round_id"]),
        fixture_id=str(pick["fixture_id"]) if pick.get("fixture_id") else None,
        side=pick.get("side"),
        team_id=str(pick["team_id"]) if pick.get("team_id") else None,
        team_name=pick.get("team_name"),
        team_short=pick.get("team_short"),
        status=pick["status"],
        created_at=pick["created_at"],
        resolved_at=pick.get("resolved_at"),
    )


async def set_pick(
    player_id: str,
    fixture_id: str,
    side: PickSide,
    round_id: Optional[str] = None,
    *,
    actor_id: Optional[str] = None,
    enforce_lock: bool = True,
) -> dict:
    """Create or replace the player's pick for the fixture's round.

    Validates inside the transaction:
    - Round is open (unless an organiser overrides the lock)
    - Fixture belongs to the requested round and the player's competition
    - Player is active
    - Team is in the team list, active, and eligible (or already the
      current pick, which makes resubmission a no-op)
    """
    side = PickSide(side)
    player_oid = to_object_id(player_id)
    if player_oid is None:
        raise LmsError(ErrorCode.PLAYER_NOT_FOUND, "Player not found.")

    async def _txn(session) -> tuple[dict, Optional[dict], bool]:
        player = await _lock_player(player_oid, session)
        fixture = await competition_service.get_fixture(fixture_id, session=session)
        if round_id is not None and fixture["round_id"] != to_object_id(round_id):
            raise LmsError(ErrorCode.FIXTURE_NOT_IN_ROUND, "Fixture is not part of this round.")
        if fixture["competition_id"] != player["competition_id"]:
            raise LmsError(ErrorCode.FIXTURE_NOT_IN_ROUND, "Fixture is not part of this competition.")

        round_doc = await competition_service.get_round(fixture["round_id"], session=session)
        if enforce_lock:
            round_fixtures = await competition_service.get_round_fixtures(round_doc["_id"], session=session)
            assert_open(round_doc, utcnow(), round_fixtures)

        if player.get("status") == PlayerStatus.eliminated.value:
            raise LmsError(ErrorCode.PLAYER_ELIMINATED, "You have been eliminated.")

        competition = await competition_service.get_competition(player["competition_id"], session=session)
        team = await competition_service.get_team(fixture[f"{side.value}_team_id"], session=session)
        eligibility_service.check_team(team, competition)
        team_id = team["_id"]

        existing = await _find_live_pick(player_oid, round_doc["_id"], session)
        if existing and existing["status"] != PickStatus.pending.value:
            raise LmsError(
                ErrorCode.FIXTURE_ALREADY_RESOLVED,
                f"The pick for this round is already resolved ({existing['status']}).",
            )
        if existing and existing.get("team_id") == team_id:
            return existing, existing, False

        no_team_twice = competition["no_team_twice"]
        if no_team_twice and team_id in eligibility_service.used_team_ids(player):
            raise LmsError(
                ErrorCode.TEAM_NOT_ELIGIBLE,
                f"'{team['name']}' has already been used. Choose a different team.",
            )

        now = utcnow()
        if existing:
            await _db.db.picks.update_one(
                {"_id": existing["_id"], "status": PickStatus.pending.value},
                {"$set": {
                    "status": PickStatus.withdrawn.value,
                    "replaced": True,
                    "withdrawn_at": now,
                    "updated_at": now,
                }},
                session=session,
            )
            if no_team_twice and existing.get("team_id"):
                await eligibility_service.restore(
                    player_oid, existing["team_id"], round_doc["_id"], session=session,
                )
        if no_team_twice:
            await eligibility_service.consume(player_oid, round_doc["_id"], team_id, session=session)

        pick = {
            "competition_id": player["competition_id"],
            "round_id": round_doc["_id"],
            "player_id": player_oid,
            "user_id": player["user_id"],
            "fixture_id": fixture["_id"],
            "side": side.value,
            "team_id": team_id,
            "team_name": team["name"],
            "team_short": team["short_name"],
            "status": PickStatus.pending.value,
            "replaced": False,
            "created_at": now,
            "updated_at": now,
            "withdrawn_at": None,
            "resolved_at": None,
        }
        result = await _db.db.picks.insert_one(pick, session=session)
        pick["_id"] = result.inserted_id
        return pick, existing, True

    pick, previous, changed = await _db.run_in_transaction(_txn)

    if not changed:
        logger.debug("Pick resubmitted unchanged: player=%s pick=%s", player_id, pick["_id"])
        return pick

    logger.info(
        "Pick saved: player=%s round=%s team=%s previous=%s",
        player_id, pick["round_id"], pick["team_short"],
        previous.get("team_short") if previous else None,
    )
    await log_audit(
        actor_id=actor_id or pick["user_id"],
        target_id=str(player_oid),
        action=AuditAction.PICK_CHANGED if previous else AuditAction.PICK_MADE,
        competition_id=str(pick["competition_id"]),
        metadata={
            "round_id": str(pick["round_id"]),
            "team": pick["team_short"],
            "previous_team": previous.get("team_short") if previous else None,
            "lock_override": not enforce_lock,
        },
    )
    return pick


def _withdraw_warning(player: dict, eligible_count: Optional[int]) -> Optional[str]:
    """Advisory text for the client; never blocks the withdrawal."""
    if eligible_count == 1:
        return "This is now your only remaining team - choose it or you will run out of teams."
    lives = player.get("lives_remaining")
    if lives is None:
        return None
    if lives == 1:
        return "You only have 1 life remaining - choose your next pick wisely!"
    if lives == 2:
        return "You have 2 lives remaining - pick carefully!"
    return None


async def withdraw_pick(
    player_id: str,
    round_id: str,
    *,
    actor_id: Optional[str] = None,
) -> WithdrawResponse:
    """Withdraw the player's pending pick while the round is open and give
    its team back."""
    player_oid = to_object_id(player_id)
    round_oid = to_object_id(round_id)
    if player_oid is None:
        raise LmsError(ErrorCode.PLAYER_NOT_FOUND, "Player not found.")

    async def _txn(session) -> tuple[dict, dict, dict]:
        player = await _lock_player(player_oid, session)
        round_doc = await competition_service.get_round(round_oid, session=session)
        round_fixtures = await competition_service.get_round_fixtures(round_doc["_id"], session=session)
        assert_open(round_doc, utcnow(), round_fixtures)

        existing = await _find_pending_pick(player_oid, round_doc["_id"], session)
        if not existing:
            raise LmsError(ErrorCode.NO_PICK_TO_WITHDRAW, "No pick found for this round.")

        now = utcnow()
        await _db.db.picks.update_one(
            {"_id": existing["_id"], "status": PickStatus.pending.value},
            {"$set": {
                "status": PickStatus.withdrawn.value,
                "withdrawn_at": now,
                "updated_at": now,
            }},
            session=session,
        )
        existing.update(status=PickStatus.withdrawn.value, withdrawn_at=now, updated_at=now)

        competition = await competition_service.get_competition(player["competition_id"], session=session)
        if competition["no_team_twice"] and existing.get("team_id"):
            await eligibility_service.restore(
                player_oid, existing["team_id"], round_doc["_id"], session=session,
            )
        player = await _db.db.competition_players.find_one({"_id": player_oid}, session=session)
        return existing, player, competition

    withdrawn, player, competition = await _db.run_in_transaction(_txn)

    eligible_count = None
    if competition["no_team_twice"]:
        active_teams = await eligibility_service.get_active_teams(competition["team_list_id"])
        eligible_count = len(eligibility_service.eligible_from(player, active_teams))

    logger.info(
        "Pick withdrawn: player=%s round=%s team=%s",
        player_id, round_id, withdrawn.get("team_short"),
    )
    await log_audit(
        actor_id=actor_id or withdrawn["user_id"],
        target_id=str(player_oid),
        action=AuditAction.PICK_WITHDRAWN,
        competition_id=str(withdrawn["competition_id"]),
        metadata={"round_id": str(withdrawn["round_id"]), "team": withdrawn.get("team_short")},
    )
    return WithdrawResponse(
        withdrawn_pick=pick_response(withdrawn),
        warning=_withdraw_warning(player, eligible_count),
    )


async def get_current_pick(player_id: str, round_id: str) -> Optional[dict]:
    """Latest non-withdrawn pick for the round, regardless of lock state."""
    player_oid = to_object_id(player_id)
    round_oid = to_object_id(round_id)
    if player_oid is None or round_oid is None:
        return None
    return await _db.db.picks.find_one(
        {
            "player_id": player_oid,
            "round_id": round_oid,
            "status": {"$in": _db.LIVE_PICK_STATUSES},
        },
        sort=[("created_at", -1)],
    )


async def get_pick_history(player_id: str) -> list[dict]:
    """Every non-withdrawn pick of a player, oldest round first."""
    player_oid = to_object_id(player_id)
    picks = await _db.db.picks.find({
        "player_id": player_oid,
        "status": {"$in": _db.LIVE_PICK_STATUSES},
    }).to_list(length=500)
    if not picks:
        return []

    rounds = await _db.db.rounds.find(
        {"_id": {"$in": list({p["round_id"] for p in picks})}},
    ).to_list(length=500)
    round_numbers = {r["_id"]: r.get("round_number", 0) for r in rounds}
    history = []
    for pick in sorted(picks, key=lambda p: round_numbers.get(p["round_id"], 0)):
        history.append({
            **pick_response(pick).model_dump(),
            "round_number": round_numbers.get(pick["round_id"]),
        })
    return history


async def get_pick_counts(round_id: str) -> list[TeamPickCount]:
    """Live pick count per team for a round, most picked first."""
    picks = await _db.db.picks.find({
        "round_id": to_object_id(round_id),
        "status": {"$in": [s for s in _db.LIVE_PICK_STATUSES if s != PickStatus.no_pick.value]},
    }).to_list(length=10000)

    counts: dict[ObjectId, TeamPickCount] = {}
    for pick in picks:
        entry = counts.get(pick["team_id"])
        if entry is None:
            entry = TeamPickCount(
                team_id=str(pick["team_id"]),
                team_short=pick.get("team_short") or "",
                team_name=pick.get("team_name") or "",
                pick_count=0,
            )
            counts[pick["team_id"]] = entry
        entry.pick_count += 1
    return sorted(counts.values(), key=lambda c: (-c.pick_count, c.team_short))
