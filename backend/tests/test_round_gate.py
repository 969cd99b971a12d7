"""
backend/tests/test_round_gate.py

Purpose:
    Lock gate boundaries: lock_time, earliest kickoff, clock skew and the
    "no lock time means locked" rule.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.config import settings
from app.errors import ErrorCode, LmsError
from app.models.competition import RoundStatus
from app.services import round_gate

T0 = datetime(2026, 8, 15, 14, 0, tzinfo=timezone.utc)


def test_open_strictly_before_lock_time():
    round_doc = {"lock_time": T0}
    assert round_gate.is_open(round_doc, T0 - timedelta(seconds=1)) is True
    assert round_gate.is_open(round_doc, T0) is False
    assert round_gate.is_open(round_doc, T0 + timedelta(seconds=1)) is False


def test_naive_lock_time_is_read_as_utc():
    round_doc = {"lock_time": T0.replace(tzinfo=None)}
    assert round_gate.is_open(round_doc, T0 - timedelta(minutes=1)) is True
    assert round_gate.is_open(round_doc, T0) is False


def test_round_without_lock_time_is_locked():
    assert round_gate.lock_deadline({"lock_time": None}) is None
    assert round_gate.is_open({"lock_time": None}, T0) is False
    assert round_gate.round_status({}, T0) == RoundStatus.locked


def test_earliest_kickoff_pulls_deadline_forward():
    round_doc = {"lock_time": T0}
    fixtures = [
        {"kickoff_time": T0 + timedelta(hours=1)},
        {"kickoff_time": T0 - timedelta(minutes=30)},
        {"kickoff_time": None},
    ]
    assert round_gate.lock_deadline(round_doc, fixtures) == T0 - timedelta(minutes=30)
    assert round_gate.is_open(round_doc, T0 - timedelta(minutes=31), fixtures) is True
    assert round_gate.is_open(round_doc, T0 - timedelta(minutes=30), fixtures) is False


def test_kickoffs_alone_define_deadline():
    fixtures = [{"kickoff_time": T0}]
    assert round_gate.lock_deadline({"lock_time": None}, fixtures) == T0
    assert round_gate.round_status({"lock_time": None}, T0 - timedelta(seconds=1), fixtures) == RoundStatus.open


def test_clock_skew_only_makes_gate_stricter(monkeypatch):
    monkeypatch.setattr(settings, "LOCK_CLOCK_SKEW_SECONDS", 30)
    round_doc = {"lock_time": T0}
    assert round_gate.is_open(round_doc, T0 - timedelta(seconds=31)) is True
    assert round_gate.is_open(round_doc, T0 - timedelta(seconds=30)) is False

    monkeypatch.setattr(settings, "LOCK_CLOCK_SKEW_SECONDS", -30)
    assert round_gate.lock_deadline(round_doc) == T0


def test_assert_open_raises_round_locked():
    with pytest.raises(LmsError) as exc:
        round_gate.assert_open({"lock_time": T0}, T0)
    assert exc.value.code == ErrorCode.ROUND_LOCKED
    assert exc.value.status_code == 409
    assert exc.value.detail["code"] == "ROUND_LOCKED"

    round_gate.assert_open({"lock_time": T0}, T0 - timedelta(minutes=1))
