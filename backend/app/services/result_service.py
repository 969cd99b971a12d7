"""Result resolver — turn fixture results into survive/lose outcomes.

Resolution is per player: each player's outcome depends only on their own
pick and that fixture's result, so players are resolved independently (in
chunks, concurrently) and each in its own transaction. The only guard
needed against double-counting is the conditional ``pending -> outcome``
pick update (or the unique live-pick index for synthesized no-pick rows):
whoever wins that write applies the life change, everyone else skips.
"""

import asyncio
import logging
from typing import Optional

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

import app.database as _db
from app.config import settings
from app.errors import ErrorCode, LmsError
from app.models.audit import AuditAction
from app.models.competition import FixtureResult, LivesMode, PlayerStatus, StandingEntry
from app.models.pick import PickStatus, ResolutionSummary
from app.services import competition_service
from app.services.audit_service import SYSTEM_ACTOR, log_audit
from app.services.round_gate import is_open
from app.utils import utcnow

logger = logging.getLogger("lastpick.result_service")


def pick_outcome(pick: dict, fixture: dict) -> Optional[PickStatus]:
    """won / drawn / lost for the picked team, None while unresolved."""
    result = fixture.get("result")
    if not result:
        return None
    if result == FixtureResult.draw.value:
        return PickStatus.drawn
    if pick.get("team_id") == fixture["home_team_id"]:
        return PickStatus.won if result == FixtureResult.home_win.value else PickStatus.lost
    if pick.get("team_id") == fixture["away_team_id"]:
        return PickStatus.won if result == FixtureResult.away_win.value else PickStatus.lost
    logger.error("Picked team %s not found in fixture %s", pick.get("team_id"), fixture["_id"])
    return None


def costs_life(outcome: PickStatus, competition: dict) -> bool:
    if outcome in (PickStatus.lost, PickStatus.no_pick):
        return True
    if outcome == PickStatus.drawn:
        return not competition.get("draw_survives", False)
    return False


def apply_loss(player: dict, competition: dict) -> dict:
    """The ``$set``/``$inc`` fields for one lost life. Pure."""
    mode = LivesMode(competition.get("lives_mode", LivesMode.limited.value))
    update: dict = {"$inc": {"losses": 1}, "$set": {}}
    if mode == LivesMode.unlimited:
        return update

    if mode == LivesMode.knockout:
        lives_after = 0
    else:
        lives_after = max(0, int(player.get("lives_remaining") or 0) - 1)
    update["$set"]["lives_remaining"] = lives_after
    if lives_after == 0:
        update["$set"]["status"] = PlayerStatus.eliminated.value
    return update


async def apply_result(
    fixture_id: str,
    result: FixtureResult,
    *,
    actor_id: str = SYSTEM_ACTOR,
) -> dict:
    """Store a fixture result; resolve the round once all results are in.

    Re-submitting the same result is acknowledged without side effects.
    Changing the result of a fixture whose picks were already processed is
    rejected, since resolved picks are immutable.
    """
    result = FixtureResult(result)
    fixture = await competition_service.get_fixture(fixture_id)
    round_doc = await competition_service.get_round(fixture["round_id"])
    round_fixtures = await competition_service.get_round_fixtures(round_doc["_id"])
    if is_open(round_doc, utcnow(), round_fixtures):
        raise LmsError(
            ErrorCode.ROUND_NOT_LOCKED,
            "Cannot set fixture results for a round that is still open.",
        )

    if fixture.get("processed_at") and fixture.get("result") != result.value:
        raise LmsError(
            ErrorCode.FIXTURE_ALREADY_RESOLVED,
            "Picks for this fixture were already resolved; the result can no longer change.",
        )

    now = utcnow()
    updated = await _db.db.fixtures.find_one_and_update(
        {"_id": fixture["_id"], "processed_at": None},
        {"$set": {"result": result.value, "result_set_at": now}},
        return_document=True,
    )
    changed = updated is not None and fixture.get("result") != result.value
    if updated is None:
        updated = await competition_service.get_fixture(fixture["_id"])
        if updated.get("result") != result.value:
            raise LmsError(
                ErrorCode.FIXTURE_ALREADY_RESOLVED,
                "Picks for this fixture were already resolved; the result can no longer change.",
            )

    if changed:
        logger.info(
            "Fixture result set: fixture=%s round=%s result=%s",
            fixture["_id"], round_doc["_id"], result.value,
        )
        await log_audit(
            actor_id=actor_id,
            target_id=str(fixture["_id"]),
            action=AuditAction.FIXTURE_RESULT_SET,
            competition_id=str(fixture["competition_id"]),
            metadata={
                "round_id": str(round_doc["_id"]),
                "fixture": f"{fixture['home_team']} v {fixture['away_team']}",
                "previous": fixture.get("result"),
                "result": result.value,
            },
        )

    resolution = None
    round_fixtures = await competition_service.get_round_fixtures(round_doc["_id"])
    if round_fixtures and all(f.get("result") for f in round_fixtures):
        resolution = await resolve_round(str(round_doc["_id"]), actor_id=actor_id)

    return {"fixture": updated, "changed": changed, "resolution": resolution}


async def _resolve_player(
    player_id: ObjectId,
    round_doc: dict,
    competition: dict,
    fixtures_by_id: dict[ObjectId, dict],
    process_no_pick: bool,
) -> tuple[Optional[PickStatus], bool, bool]:
    """Resolve one player's round. Returns (outcome, life_lost, eliminated);
    outcome is None when there was nothing (left) to do."""

    async def _txn(session):
        player = await _db.db.competition_players.find_one_and_update(
            {"_id": player_id},
            {"$inc": {"write_seq": 1}},
            session=session,
            return_document=True,
        )
        if not player:
            return None, False, False

        now = utcnow()
        pick = await _db.db.picks.find_one(
            {
                "player_id": player_id,
                "round_id": round_doc["_id"],
                "status": {"$in": _db.LIVE_PICK_STATUSES},
            },
            session=session,
        )

        if pick is None:
            if not process_no_pick or player.get("status") != PlayerStatus.active.value:
                return None, False, False
            await _db.db.picks.insert_one(
                {
                    "competition_id": round_doc["competition_id"],
                    "round_id": round_doc["_id"],
                    "player_id": player_id,
                    "user_id": player["user_id"],
                    "fixture_id": None,
                    "side": None,
                    "team_id": None,
                    "team_name": None,
                    "team_short": None,
                    "status": PickStatus.no_pick.value,
                    "replaced": False,
                    "created_at": now,
                    "updated_at": now,
                    "withdrawn_at": None,
                    "resolved_at": now,
                },
                session=session,
            )
            outcome = PickStatus.no_pick
        elif pick["status"] != PickStatus.pending.value:
            return None, False, False
        else:
            fixture = fixtures_by_id.get(pick["fixture_id"])
            outcome = pick_outcome(pick, fixture) if fixture else None
            if outcome is None:
                return None, False, False
            claimed = await _db.db.picks.update_one(
                {"_id": pick["_id"], "status": PickStatus.pending.value},
                {"$set": {"status": outcome.value, "resolved_at": now, "updated_at": now}},
                session=session,
            )
            if not claimed.modified_count:
                return None, False, False

        if player.get("status") != PlayerStatus.active.value:
            return outcome, False, False

        if costs_life(outcome, competition):
            update = apply_loss(player, competition)
            eliminated = update["$set"].get("status") == PlayerStatus.eliminated.value
            if eliminated:
                update["$set"]["eliminated_at"] = now
                update["$set"]["eliminated_round_id"] = round_doc["_id"]
            update["$set"]["updated_at"] = now
            await _db.db.competition_players.update_one(
                {"_id": player_id, "status": PlayerStatus.active.value},
                update,
                session=session,
            )
            return outcome, True, eliminated

        await _db.db.competition_players.update_one(
            {"_id": player_id},
            {"$inc": {"rounds_survived": 1}, "$set": {"updated_at": now}},
            session=session,
        )
        return outcome, False, False

    try:
        return await _db.run_in_transaction(_txn)
    except DuplicateKeyError:
        # A concurrent resolution inserted this player's no-pick row first.
        logger.debug("No-pick already recorded: player=%s round=%s", player_id, round_doc["_id"])
        return None, False, False


async def resolve_round(
    round_id: str,
    *,
    force: bool = False,
    actor_id: str = SYSTEM_ACTOR,
) -> ResolutionSummary:
    """Resolve every pending pick of a locked round and apply life changes.

    Players without a pick lose a life like a lost pick once all fixtures
    have results (or when ``force`` is set). A round without fixtures is
    left untouched. A round that is already resolved is a no-op; a
    partially resolved round only processes what is still pending.
    """
    round_doc = await competition_service.get_round(round_id)
    summary = ResolutionSummary(round_id=str(round_doc["_id"]))
    if round_doc.get("resolved_at"):
        summary.already_resolved = True
        summary.complete = True
        return summary

    fixtures = await competition_service.get_round_fixtures(round_doc["_id"])
    if is_open(round_doc, utcnow(), fixtures):
        raise LmsError(ErrorCode.ROUND_NOT_LOCKED, "Cannot resolve a round that is still open.")

    competition = await competition_service.get_competition(round_doc["competition_id"])
    fixtures_by_id = {f["_id"]: f for f in fixtures}
    unresolved = [f for f in fixtures if not f.get("result")]
    summary.unresolved_fixtures = len(unresolved)
    # A round without fixtures has nothing to resolve, forced or not.
    all_resulted = bool(fixtures) and not unresolved
    process_no_pick = bool(fixtures) and (all_resulted or force)

    pending = await _db.db.picks.find(
        {"round_id": round_doc["_id"], "status": PickStatus.pending.value},
    ).to_list(length=None)
    active = await _db.db.competition_players.find(
        {"competition_id": round_doc["competition_id"], "status": PlayerStatus.active.value},
    ).to_list(length=None)

    player_ids: list[ObjectId] = []
    seen: set[ObjectId] = set()
    for pid in [p["player_id"] for p in pending] + [p["_id"] for p in active]:
        if pid not in seen:
            seen.add(pid)
            player_ids.append(pid)

    batch = max(1, settings.RESOLVE_BATCH_SIZE)
    for start in range(0, len(player_ids), batch):
        chunk = player_ids[start:start + batch]
        results = await asyncio.gather(*[
            _resolve_player(pid, round_doc, competition, fixtures_by_id, process_no_pick)
            for pid in chunk
        ])
        for outcome, life_lost, eliminated in results:
            if outcome is None:
                continue
            setattr(summary, outcome.value, getattr(summary, outcome.value) + 1)
            summary.lives_deducted += int(life_lost)
            summary.eliminated += int(eliminated)

    now = utcnow()
    resulted_ids = [f["_id"] for f in fixtures if f.get("result")]
    if resulted_ids:
        await _db.db.fixtures.update_many(
            {"_id": {"$in": resulted_ids}, "processed_at": None},
            {"$set": {"processed_at": now}},
        )
    if all_resulted:
        await _db.db.rounds.update_one(
            {"_id": round_doc["_id"], "resolved_at": None},
            {"$set": {"resolved_at": now}},
        )
        summary.complete = True

    logger.info(
        "Round resolved: round=%s won=%d lost=%d drawn=%d no_pick=%d eliminated=%d complete=%s",
        round_doc["_id"], summary.won, summary.lost, summary.drawn,
        summary.no_pick, summary.eliminated, summary.complete,
    )
    await log_audit(
        actor_id=actor_id,
        target_id=str(round_doc["_id"]),
        action=AuditAction.ROUND_RESOLVED,
        competition_id=str(round_doc["competition_id"]),
        metadata={**summary.model_dump(exclude={"round_id"}), "force": force},
    )
    return summary


async def get_standings(competition_id: str) -> list[StandingEntry]:
    """Players ordered active first, then by lives and rounds survived."""
    competition = await competition_service.get_competition(competition_id)
    players = await _db.db.competition_players.find(
        {"competition_id": competition["_id"]},
    ).to_list(length=5000)

    def _key(p: dict):
        return (
            p.get("status") != PlayerStatus.active.value,
            -(p.get("lives_remaining") or 0),
            -p.get("rounds_survived", 0),
            p.get("display_name") or "",
        )

    return [
        StandingEntry(
            player_id=str(p["_id"]),
            user_id=p["user_id"],
            display_name=p.get("display_name") or "",
            status=p.get("status", PlayerStatus.active.value),
            lives_remaining=p.get("lives_remaining"),
            losses=p.get("losses", 0),
            rounds_survived=p.get("rounds_survived", 0),
            eliminated_at=p.get("eliminated_at"),
        )
        for p in sorted(players, key=_key)
    ]
