"""Organiser endpoints — fixture results, round resolution, pick overrides."""

from typing import Optional

from fastapi import APIRouter, Depends

from app.errors import ErrorCode, LmsError
from app.models.pick import FixtureResultUpdate, PickCreate, ResolveRoundRequest
from app.services import competition_service, pick_service, result_service
from app.services.auth_service import get_current_user

router = APIRouter(prefix="/api/lms/admin", tags=["lms-admin"])


@router.post("/fixtures/{fixture_id}/result")
async def set_fixture_result(
    fixture_id: str,
    body: FixtureResultUpdate,
    user=Depends(get_current_user),
):
    """Store a fixture result; resolves the round once every result is in."""
    fixture = await competition_service.get_fixture(fixture_id)
    competition = await competition_service.get_competition(fixture["competition_id"])
    competition_service.require_organiser(competition, user)

    outcome = await result_service.apply_result(fixture_id, body.result, actor_id=str(user["_id"]))
    resolution = outcome["resolution"]
    return {
        "fixture_id": fixture_id,
        "result": outcome["fixture"].get("result"),
        "changed": outcome["changed"],
        "resolution": resolution.model_dump() if resolution else None,
    }


@router.post("/rounds/{round_id}/resolve")
async def resolve_round(
    round_id: str,
    body: Optional[ResolveRoundRequest] = None,
    user=Depends(get_current_user),
):
    """Explicit (optionally forced) resolution. Safe to call repeatedly."""
    round_doc = await competition_service.get_round(round_id)
    competition = await competition_service.get_competition(round_doc["competition_id"])
    competition_service.require_organiser(competition, user)

    summary = await result_service.resolve_round(round_id, force=bool(body and body.force), actor_id=str(user["_id"]))
    return summary.model_dump()


@router.post("/competitions/{competition_id}/players/{player_id}/pick")
async def override_pick(
    competition_id: str,
    player_id: str,
    body: PickCreate,
    user=Depends(get_current_user),
):
    """Set a pick on behalf of a player, also after the round locked.

    Eligibility rules still apply.
    """
    competition = await competition_service.get_competition(competition_id)
    competition_service.require_organiser(competition, user)
    player = await competition_service.get_player(player_id)
    if player["competition_id"] != competition["_id"]:
        raise LmsError(ErrorCode.PLAYER_NOT_FOUND, "Player is not part of this competition.")

    pick = await pick_service.set_pick(
        player_id,
        body.fixture_id,
        body.side,
        round_id=body.round_id,
        actor_id=str(user["_id"]),
        enforce_lock=False,
    )
    return {"pick": pick_service.pick_response(pick).model_dump()}
