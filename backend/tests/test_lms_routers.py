"""
backend/tests/test_lms_routers.py

Purpose:
    HTTP contract for the /api/lms endpoints: status codes, the
    {"code", "message"} error payload, and organiser-only guards.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.errors import ErrorCode, LmsError
from app.routers import picks as picks_router
from app.routers import results as results_router
from app.services import pick_service, result_service
from app.services.auth_service import get_current_user


def _build_test_client(user: dict) -> TestClient:
    app = FastAPI()
    app.include_router(picks_router.router)
    app.include_router(results_router.router)

    async def _fake_user():
        return user

    app.dependency_overrides[get_current_user] = _fake_user
    return TestClient(app)


@pytest.fixture
def setup(world):
    comp = world.competition(lives_per_player=2)
    for short in ("ARS", "CHE"):
        world.team(comp, short)
    r1 = world.round(comp, 1)
    f1 = world.fixture(r1, "ARS", "CHE")
    alice = world.player(comp, "alice")
    return comp, r1, f1, alice


def test_pick_flow_over_http(world, setup):
    comp, r1, f1, _alice = setup
    client = _build_test_client({"_id": "alice"})
    base = f"/api/lms/competitions/{comp['_id']}"

    eligible = client.get(f"{base}/eligible-teams", params={"round_id": str(r1["_id"])})
    assert eligible.status_code == 200
    assert [t["short_name"] for t in eligible.json()["teams"]] == ["ARS", "CHE"]

    created = client.post(f"{base}/picks", json={"fixture_id": str(f1["_id"]), "side": "away"})
    assert created.status_code == 201
    assert created.json()["pick"]["team_short"] == "CHE"
    assert created.json()["pick"]["status"] == "pending"

    current = client.get(f"{base}/rounds/{r1['_id']}/pick")
    assert current.json()["pick"]["id"] == created.json()["pick"]["id"]
    assert current.json()["round_status"] == "open"

    history = client.get(f"{base}/history")
    assert history.json()["lives_remaining"] == 2
    assert [p["team_short"] for p in history.json()["picks"]] == ["CHE"]

    withdrawn = client.delete(f"{base}/rounds/{r1['_id']}/pick")
    assert withdrawn.status_code == 200
    assert withdrawn.json()["withdrawn_pick"]["status"] == "withdrawn"
    assert withdrawn.json()["warning"] == "You have 2 lives remaining - pick carefully!"

    again = client.delete(f"{base}/rounds/{r1['_id']}/pick")
    assert again.status_code == 404
    assert again.json()["detail"]["code"] == "NO_PICK_TO_WITHDRAW"


def test_locked_round_returns_conflict_payload(world, setup):
    comp, r1, f1, _alice = setup
    world.lock(r1)
    client = _build_test_client({"_id": "alice"})

    response = client.post(
        f"/api/lms/competitions/{comp['_id']}/picks",
        json={"fixture_id": str(f1["_id"]), "side": "home"},
    )

    assert response.status_code == 409
    assert response.json()["detail"] == {
        "code": "ROUND_LOCKED",
        "message": "This round is locked and picks cannot be changed.",
    }


def test_invalid_side_is_rejected_by_validation(world, setup):
    comp, _r1, f1, _alice = setup
    client = _build_test_client({"_id": "alice"})

    response = client.post(
        f"/api/lms/competitions/{comp['_id']}/picks",
        json={"fixture_id": str(f1["_id"]), "side": "middle"},
    )

    assert response.status_code == 422
    assert world.db.picks.docs == []


def test_non_member_gets_player_not_found(world, setup):
    comp, _r1, _f1, _alice = setup
    client = _build_test_client({"_id": "mallory"})

    response = client.get(f"/api/lms/competitions/{comp['_id']}/eligible-teams")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "PLAYER_NOT_FOUND"


def test_organiser_only_endpoints_are_guarded(world, setup):
    comp, r1, f1, _alice = setup
    world.lock(r1)
    player_client = _build_test_client({"_id": "alice"})

    counts = player_client.get(f"/api/lms/competitions/{comp['_id']}/rounds/{r1['_id']}/pick-counts")
    result = player_client.post(f"/api/lms/admin/fixtures/{f1['_id']}/result", json={"result": "draw"})
    resolve = player_client.post(f"/api/lms/admin/rounds/{r1['_id']}/resolve")

    for response in (counts, result, resolve):
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "FORBIDDEN"
    assert world.get("fixtures", f1["_id"])["result"] is None


def test_organiser_sets_result_and_round_resolves(world, setup):
    comp, r1, f1, alice = setup
    world.lock(r1)
    client = _build_test_client({"_id": "organiser"})

    response = client.post(f"/api/lms/admin/fixtures/{f1['_id']}/result", json={"result": "home_win"})

    assert response.status_code == 200
    body = response.json()
    assert body["changed"] is True
    assert body["resolution"]["no_pick"] == 1
    assert body["resolution"]["complete"] is True
    assert world.get("competition_players", alice["_id"])["lives_remaining"] == 1

    repeat = client.post(f"/api/lms/admin/rounds/{r1['_id']}/resolve", json={"force": True})
    assert repeat.json()["already_resolved"] is True


def test_admin_flag_also_grants_organiser_rights(world, setup):
    comp, r1, _f1, _alice = setup
    client = _build_test_client({"_id": "someone", "is_admin": True})

    response = client.get(f"/api/lms/competitions/{comp['_id']}/rounds/{r1['_id']}/pick-counts")

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_override_pick_after_lock(world, setup):
    comp, r1, f1, alice = setup
    world.lock(r1)

    body = await results_router.override_pick(
        str(comp["_id"]),
        str(alice["_id"]),
        results_router.PickCreate(fixture_id=str(f1["_id"]), side="home"),
        user={"_id": "organiser"},
    )

    assert body["pick"]["team_short"] == "ARS"
    assert world.audits("PICK_MADE")[0]["actor_id"] == "organiser"


@pytest.mark.asyncio
async def test_override_pick_on_resolved_round_is_rejected(world, setup):
    comp, r1, f1, alice = setup
    await pick_service.set_pick(str(alice["_id"]), str(f1["_id"]), "home")
    world.lock(r1)
    await result_service.apply_result(str(f1["_id"]), "away_win")

    with pytest.raises(LmsError) as exc:
        await results_router.override_pick(
            str(comp["_id"]),
            str(alice["_id"]),
            results_router.PickCreate(fixture_id=str(f1["_id"]), side="away"),
            user={"_id": "organiser"},
        )

    assert exc.value.code == ErrorCode.FIXTURE_ALREADY_RESOLVED
    assert exc.value.status_code == 409
    assert [p["status"] for p in world.picks_of(alice, r1)] == ["lost"]


@pytest.mark.asyncio
async def test_override_pick_rejects_player_of_other_competition(world, setup):
    comp, _r1, f1, _alice = setup
    stranger = world.player(world.competition(), "stranger")

    with pytest.raises(LmsError) as exc:
        await results_router.override_pick(
            str(comp["_id"]),
            str(stranger["_id"]),
            results_router.PickCreate(fixture_id=str(f1["_id"]), side="home"),
            user={"_id": "organiser"},
        )
    assert exc.value.code == ErrorCode.PLAYER_NOT_FOUND
