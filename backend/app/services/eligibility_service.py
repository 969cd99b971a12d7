"""Team eligibility store — which teams a player may still pick.

Eligibility is stored as its complement: ``competition_players.used_teams``
holds one ``{team_id, round_id}`` marker per consumed team. The eligible set
is every active team of the competition's team list without a marker.
Markers live on the player document so every consume/restore/reset is a
single-document atomic update.
"""

import logging
from typing import Optional

from bson import ObjectId

import app.database as _db
from app.errors import ErrorCode, LmsError
from app.models.pick import EligibleTeam, EligibleTeamsResponse
from app.services import competition_service
from app.utils import to_object_id, utcnow

logger = logging.getLogger("lastpick.eligibility_service")


async def get_active_teams(team_list_id, session=None) -> list[dict]:
    """Active teams of a team list, sorted by name."""
    return await _db.db.teams.find(
        {"team_list_id": team_list_id, "is_active": True},
        session=session,
    ).sort("name", 1).to_list(length=500)


def used_team_ids(player: dict) -> set[ObjectId]:
    return {m["team_id"] for m in player.get("used_teams", [])}


def eligible_from(player: dict, active_teams: list[dict]) -> list[dict]:
    used = used_team_ids(player)
    return [t for t in active_teams if t["_id"] not in used]


def check_team(team: Optional[dict], competition: dict) -> dict:
    """Fail with TEAM_NOT_IN_LIST / TEAM_INACTIVE for unusable teams."""
    if not team or team.get("team_list_id") != competition.get("team_list_id"):
        raise LmsError(
            ErrorCode.TEAM_NOT_IN_LIST,
            "This team is not part of the competition's team list.",
        )
    if not team.get("is_active", True):
        raise LmsError(ErrorCode.TEAM_INACTIVE, "This team is no longer active.")
    return team


def to_eligible_team(team: dict) -> EligibleTeam:
    return EligibleTeam(
        team_id=str(team["_id"]),
        name=team["name"],
        short_name=team["short_name"],
    )


async def get_eligible_teams(
    player_id: str,
    competition_id: str,
    round_id: Optional[str] = None,
) -> EligibleTeamsResponse:
    """Teams the player may still pick.

    When the set is exhausted and the competition resets on exhaustion, the
    auto-reset coordinator repopulates it first. With ``round_id`` the result
    is narrowed to teams that play in that round; exhaustion is still judged
    on the full team list.
    """
    from app.services.team_reset_service import maybe_reset

    competition = await competition_service.get_competition(competition_id)
    player = await competition_service.get_player(player_id, competition["_id"])
    active_teams = await get_active_teams(competition["team_list_id"])

    reset_occurred = False
    reset_message = None
    if not competition["no_team_twice"]:
        eligible = active_teams
    else:
        eligible = eligible_from(player, active_teams)
        if not eligible and active_teams and competition["reset_on_exhaustion"]:
            outcome = await maybe_reset(player["_id"], competition, active_teams)
            eligible = outcome.teams
            reset_occurred = outcome.reset_occurred
            reset_message = outcome.message

    if round_id is not None:
        fixtures = await competition_service.get_round_fixtures(round_id)
        playing = set()
        for fixture in fixtures:
            playing.add(fixture["home_team_id"])
            playing.add(fixture["away_team_id"])
        eligible = [t for t in eligible if t["_id"] in playing]

    return EligibleTeamsResponse(
        teams=[to_eligible_team(t) for t in eligible],
        reset_occurred=reset_occurred,
        reset_message=reset_message,
        no_team_twice=competition["no_team_twice"],
    )


async def consume(player_id: ObjectId, round_id: ObjectId, team_id: ObjectId, session=None) -> bool:
    """Mark ``team_id`` as used by the player's pick in ``round_id``.

    Returns True when a marker was written, False when the same round
    already holds it (resubmission). A marker from a different round raises
    TEAM_ALREADY_USED.
    """
    result = await _db.db.competition_players.update_one(
        {"_id": player_id, "used_teams.team_id": {"$ne": team_id}},
        {
            "$push": {"used_teams": {"team_id": team_id, "round_id": round_id}},
            "$set": {"updated_at": utcnow()},
        },
        session=session,
    )
    if result.modified_count:
        return True

    player = await _db.db.competition_players.find_one({"_id": player_id}, session=session)
    marker = next(
        (m for m in (player or {}).get("used_teams", []) if m["team_id"] == team_id),
        None,
    )
    if marker is not None and marker["round_id"] == round_id:
        return False
    raise LmsError(
        ErrorCode.TEAM_ALREADY_USED,
        "You have already used this team in a previous round.",
    )


async def restore(player_id: ObjectId, team_id: ObjectId, round_id: ObjectId, session=None) -> bool:
    """Return ``team_id`` to the eligible set. Only the marker written for
    ``round_id`` is removed; a no-op when it is already gone (e.g. after a
    reset)."""
    result = await _db.db.competition_players.update_one(
        {
            "_id": to_object_id(player_id),
            "used_teams": {"$elemMatch": {"team_id": team_id, "round_id": round_id}},
        },
        {
            "$pull": {"used_teams": {"team_id": team_id, "round_id": round_id}},
            "$set": {"updated_at": utcnow()},
        },
        session=session,
    )
    return bool(result.modified_count)
