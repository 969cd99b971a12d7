"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths, required settings, and an
    in-memory competition world (fake Motor db + seeding helpers) for the
    pick engine tests.
"""

from __future__ import annotations

import os
import sys
from datetime import timedelta
from pathlib import Path

import pytest
from bson import ObjectId

_THIS_FILE = Path(__file__).resolve()
_BACKEND_DIR = _THIS_FILE.parents[1]
_TESTS_DIR = _THIS_FILE.parent

for candidate in (str(_BACKEND_DIR), str(_TESTS_DIR)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

# Settings() refuses to load without these.
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017/?replicaSet=rs0")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ROUND_RESOLVER_ENABLED", "false")

import app.database as _db  # noqa: E402
from app.utils import utcnow  # noqa: E402
from fake_mongo import FakeClient, FakeDB  # noqa: E402


class LmsWorld:
    """Seeds competitions, teams, rounds, fixtures and players into a FakeDB."""

    def __init__(self, db: FakeDB, client: FakeClient):
        self.db = db
        self.client = client
        self.teams: dict[str, dict] = {}

    def competition(self, **overrides) -> dict:
        doc = {
            "_id": ObjectId(),
            "name": "Office LMS",
            "organiser_id": "organiser",
            "team_list_id": ObjectId(),
            "lives_mode": "limited",
            "lives_per_player": 1,
            "no_team_twice": True,
            "reset_on_exhaustion": True,
            "draw_survives": False,
        }
        doc.update(overrides)
        self.db.competitions.docs.append(doc)
        return doc

    def team(self, competition: dict, short_name: str, *, is_active: bool = True) -> dict:
        doc = {
            "_id": ObjectId(),
            "team_list_id": competition["team_list_id"],
            "name": f"{short_name} FC",
            "short_name": short_name,
            "is_active": is_active,
        }
        self.db.teams.docs.append(doc)
        self.teams[short_name] = doc
        return doc

    def round(self, competition: dict, number: int = 1, *, locked: bool = False, lock_time=...) -> dict:
        if lock_time is ...:
            lock_time = utcnow() + (timedelta(hours=-1) if locked else timedelta(hours=2))
        doc = {
            "_id": ObjectId(),
            "competition_id": competition["_id"],
            "round_number": number,
            "lock_time": lock_time,
            "resolved_at": None,
        }
        self.db.rounds.docs.append(doc)
        return doc

    def lock(self, round_doc: dict) -> None:
        """Move the round's lock time into the past."""
        stored = next(r for r in self.db.rounds.docs if r["_id"] == round_doc["_id"])
        stored["lock_time"] = utcnow() - timedelta(minutes=5)
        round_doc["lock_time"] = stored["lock_time"]

    def fixture(self, round_doc: dict, home: str, away: str, *, result=None, kickoff_time=None) -> dict:
        home_team = self.teams[home]
        away_team = self.teams[away]
        doc = {
            "_id": ObjectId(),
            "competition_id": round_doc["competition_id"],
            "round_id": round_doc["_id"],
            "kickoff_time": kickoff_time,
            "home_team_id": home_team["_id"],
            "home_team": home_team["name"],
            "home_team_short": home,
            "away_team_id": away_team["_id"],
            "away_team": away_team["name"],
            "away_team_short": away,
            "result": result,
            "result_set_at": None,
            "processed_at": None,
        }
        self.db.fixtures.docs.append(doc)
        return doc

    def player(self, competition: dict, user_id: str, *, lives=..., used: list[tuple[str, dict]] = (), **overrides) -> dict:
        if lives is ...:
            lives = None if competition["lives_mode"] == "unlimited" else (
                1 if competition["lives_mode"] == "knockout" else competition["lives_per_player"]
            )
        now = utcnow()
        doc = {
            "_id": ObjectId(),
            "competition_id": competition["_id"],
            "user_id": user_id,
            "display_name": user_id.title(),
            "lives_remaining": lives,
            "status": "active",
            "used_teams": [
                {"team_id": self.teams[short]["_id"], "round_id": round_doc["_id"]}
                for short, round_doc in used
            ],
            "reset_count": 0,
            "last_reset_at": None,
            "losses": 0,
            "rounds_survived": 0,
            "eliminated_at": None,
            "eliminated_round_id": None,
            "write_seq": 0,
            "created_at": now,
            "updated_at": now,
        }
        doc.update(overrides)
        self.db.competition_players.docs.append(doc)
        return doc

    def get(self, collection: str, _id) -> dict | None:
        return next((d for d in getattr(self.db, collection).docs if d["_id"] == _id), None)

    def picks_of(self, player: dict, round_doc: dict | None = None) -> list[dict]:
        return [
            p for p in self.db.picks.docs
            if p["player_id"] == player["_id"] and (round_doc is None or p["round_id"] == round_doc["_id"])
        ]

    def audits(self, action: str | None = None) -> list[dict]:
        return [a for a in self.db.audit_logs.docs if action is None or a["action"] == action]


@pytest.fixture
def world(monkeypatch) -> LmsWorld:
    db = FakeDB()
    client = FakeClient()
    monkeypatch.setattr(_db, "db", db, raising=False)
    monkeypatch.setattr(_db, "client", client, raising=False)
    return LmsWorld(db, client)
