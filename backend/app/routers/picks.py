"""Player pick endpoints — eligible teams, make/withdraw picks, history."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.errors import ErrorCode, LmsError
from app.models.pick import EligibleTeamsResponse, PickCreate, WithdrawResponse
from app.services import competition_service, eligibility_service, pick_service, result_service
from app.services.auth_service import get_current_user
from app.services.round_gate import round_status
from app.utils import utcnow

router = APIRouter(prefix="/api/lms/competitions", tags=["picks"])


@router.get("/{competition_id}/eligible-teams", response_model=EligibleTeamsResponse)
async def get_eligible_teams(
    competition_id: str,
    round_id: Optional[str] = Query(None),
    user=Depends(get_current_user),
):
    """Teams the signed-in player may still pick (auto-resets when exhausted)."""
    player = await competition_service.get_player_for_user(competition_id, str(user["_id"]))
    return await eligibility_service.get_eligible_teams(
        str(player["_id"]), competition_id, round_id=round_id,
    )


@router.post("/{competition_id}/picks", status_code=status.HTTP_201_CREATED)
async def set_pick(
    competition_id: str,
    body: PickCreate,
    user=Depends(get_current_user),
):
    """Make or change the pick for the fixture's round."""
    player = await competition_service.get_player_for_user(competition_id, str(user["_id"]))
    pick = await pick_service.set_pick(
        str(player["_id"]),
        body.fixture_id,
        body.side,
        round_id=body.round_id,
        actor_id=str(user["_id"]),
    )
    return {"pick": pick_service.pick_response(pick).model_dump()}


@router.delete("/{competition_id}/rounds/{round_id}/pick", response_model=WithdrawResponse)
async def withdraw_pick(
    competition_id: str,
    round_id: str,
    user=Depends(get_current_user),
):
    player = await competition_service.get_player_for_user(competition_id, str(user["_id"]))
    return await pick_service.withdraw_pick(
        str(player["_id"]), round_id, actor_id=str(user["_id"]),
    )


@router.get("/{competition_id}/rounds/{round_id}/pick")
async def get_current_pick(
    competition_id: str,
    round_id: str,
    user=Depends(get_current_user),
):
    """Current pick plus whether the round still accepts changes."""
    player = await competition_service.get_player_for_user(competition_id, str(user["_id"]))
    round_doc = await competition_service.get_round(round_id)
    fixtures = await competition_service.get_round_fixtures(round_doc["_id"])
    pick = await pick_service.get_current_pick(str(player["_id"]), round_id)
    return {
        "pick": pick_service.pick_response(pick).model_dump() if pick else None,
        "round_status": round_status(round_doc, utcnow(), fixtures).value,
    }


@router.get("/{competition_id}/history")
async def get_history(
    competition_id: str,
    user=Depends(get_current_user),
):
    player = await competition_service.get_player_for_user(competition_id, str(user["_id"]))
    return {
        "status": player.get("status"),
        "lives_remaining": player.get("lives_remaining"),
        "picks": await pick_service.get_pick_history(str(player["_id"])),
    }


@router.get("/{competition_id}/standings")
async def get_standings(
    competition_id: str,
    user=Depends(get_current_user),
):
    await competition_service.get_player_for_user(competition_id, str(user["_id"]))
    return [s.model_dump() for s in await result_service.get_standings(competition_id)]


@router.get("/{competition_id}/rounds/{round_id}/pick-counts")
async def get_pick_counts(
    competition_id: str,
    round_id: str,
    user=Depends(get_current_user),
):
    """Organiser view: how many players picked each team this round."""
    competition = await competition_service.get_competition(competition_id)
    competition_service.require_organiser(competition, user)
    round_doc = await competition_service.get_round(round_id)
    if round_doc["competition_id"] != competition["_id"]:
        raise LmsError(ErrorCode.ROUND_NOT_FOUND, "Round not found.")
    counts = await pick_service.get_pick_counts(round_id)
    return [c.model_dump() for c in counts]
