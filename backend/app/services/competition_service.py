"""Read-side lookups for competitions, rounds, fixtures, teams and players.

These documents are owned by the admin workflows; the pick engine only
reads them (players are the exception: lives/status/used teams are written
by the engine services).
"""

import logging
from typing import Optional

import app.database as _db
from app.errors import ErrorCode, LmsError
from app.models.competition import LivesMode
from app.utils import to_object_id

logger = logging.getLogger("lastpick.competition_service")

COMPETITION_DEFAULTS: dict = {
    "lives_mode": LivesMode.limited.value,
    "lives_per_player": 1,
    "no_team_twice": True,
    "reset_on_exhaustion": True,
    "draw_survives": False,
}


def _oid_or_raise(value, code: ErrorCode, label: str):
    oid = to_object_id(value)
    if oid is None:
        raise LmsError(code, f"{label} not found.")
    return oid


async def get_competition(competition_id, session=None) -> dict:
    oid = _oid_or_raise(competition_id, ErrorCode.COMPETITION_NOT_FOUND, "Competition")
    doc = await _db.db.competitions.find_one({"_id": oid}, session=session)
    if not doc:
        raise LmsError(ErrorCode.COMPETITION_NOT_FOUND, "Competition not found.")
    return {**COMPETITION_DEFAULTS, **doc}


async def get_round(round_id, session=None) -> dict:
    oid = _oid_or_raise(round_id, ErrorCode.ROUND_NOT_FOUND, "Round")
    doc = await _db.db.rounds.find_one({"_id": oid}, session=session)
    if not doc:
        raise LmsError(ErrorCode.ROUND_NOT_FOUND, "Round not found.")
    return doc


async def get_fixture(fixture_id, session=None) -> dict:
    oid = _oid_or_raise(fixture_id, ErrorCode.FIXTURE_NOT_FOUND, "Fixture")
    doc = await _db.db.fixtures.find_one({"_id": oid}, session=session)
    if not doc:
        raise LmsError(ErrorCode.FIXTURE_NOT_FOUND, "Fixture not found.")
    return doc


async def get_round_fixtures(round_id, session=None) -> list[dict]:
    return await _db.db.fixtures.find(
        {"round_id": to_object_id(round_id)}, session=session,
    ).to_list(length=200)


async def get_player(player_id, competition_id=None, session=None) -> dict:
    """Load a competition player; optionally assert the competition."""
    oid = _oid_or_raise(player_id, ErrorCode.PLAYER_NOT_FOUND, "Player")
    doc = await _db.db.competition_players.find_one({"_id": oid}, session=session)
    if not doc:
        raise LmsError(ErrorCode.PLAYER_NOT_FOUND, "Player not found.")
    if competition_id is not None and doc["competition_id"] != to_object_id(competition_id):
        raise LmsError(ErrorCode.PLAYER_NOT_FOUND, "Player is not part of this competition.")
    return doc


async def get_player_for_user(competition_id, user_id: str) -> dict:
    oid = _oid_or_raise(competition_id, ErrorCode.COMPETITION_NOT_FOUND, "Competition")
    doc = await _db.db.competition_players.find_one({
        "competition_id": oid,
        "user_id": str(user_id),
    })
    if not doc:
        raise LmsError(ErrorCode.PLAYER_NOT_FOUND, "You are not part of this competition.")
    return doc


async def get_team(team_id, session=None) -> Optional[dict]:
    oid = to_object_id(team_id)
    if oid is None:
        return None
    return await _db.db.teams.find_one({"_id": oid}, session=session)


def is_organiser(competition: dict, user: dict) -> bool:
    """Platform admins and the competition organiser may run admin actions."""
    if user.get("is_admin"):
        return True
    return str(competition.get("organiser_id")) == str(user.get("_id"))


def require_organiser(competition: dict, user: dict) -> None:
    if not is_organiser(competition, user):
        raise LmsError(
            ErrorCode.FORBIDDEN,
            "Only the competition organiser can do this.",
        )
