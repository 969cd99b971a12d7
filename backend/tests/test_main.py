"""
backend/tests/test_main.py

Purpose:
    Application-level wiring: health endpoint, validation payloads and the
    mapping of infrastructure failures to opaque 5xx responses.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import ConnectionFailure, OperationFailure

from app import main
from app.services import pick_service
from app.services.auth_service import get_current_user


@pytest.fixture
def client(world):
    async def _fake_user():
        return {"_id": "alice"}

    main.app.dependency_overrides[get_current_user] = _fake_user
    # No `with`: the lifespan (real MongoDB, scheduler) is not started.
    yield TestClient(main.app, raise_server_exceptions=False)
    main.app.dependency_overrides.clear()


@pytest.fixture
def member(world):
    comp = world.competition()
    world.team(comp, "ARS")
    world.team(comp, "CHE")
    fixture = world.fixture(world.round(comp, 1), "ARS", "CHE")
    world.player(comp, "alice")
    return comp, fixture


def test_health_reports_db_and_scheduler(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "db": "connected", "round_resolver": False}
    assert "X-Request-ID" in response.headers


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"


def test_validation_errors_use_error_code(client, member):
    comp, fixture = member

    response = client.post(
        f"/api/lms/competitions/{comp['_id']}/picks",
        json={"fixture_id": str(fixture["_id"]), "side": "sideways"},
    )

    assert response.status_code == 422
    body = response.json()
    assert body["detail"]["code"] == "VALIDATION_ERROR"
    assert body["errors"][0]["field"] == "side"


def test_business_errors_pass_through(client, member):
    comp, _fixture = member

    response = client.post(
        f"/api/lms/competitions/{comp['_id']}/picks",
        json={"fixture_id": "000000000000000000000000", "side": "home"},
    )

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "FIXTURE_NOT_FOUND"


@pytest.mark.parametrize(
    "exc, status_code",
    [
        (ConnectionFailure("primary down"), 503),
        (OperationFailure("transaction aborted"), 500),
        (RuntimeError("boom"), 500),
    ],
)
def test_infrastructure_errors_are_opaque(client, member, monkeypatch, exc, status_code):
    comp, fixture = member

    async def _explode(*_args, **_kwargs):
        raise exc

    monkeypatch.setattr(pick_service, "set_pick", _explode)

    response = client.post(
        f"/api/lms/competitions/{comp['_id']}/picks",
        json={"fixture_id": str(fixture["_id"]), "side": "home"},
    )

    assert response.status_code == status_code
    assert str(exc) not in response.text
