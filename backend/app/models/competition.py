"""Competition, round, fixture and player models for last-man-standing play."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class LivesMode(str, Enum):
    limited = "limited"      # lives_per_player losses allowed, eliminated at 0
    knockout = "knockout"    # first loss eliminates
    unlimited = "unlimited"  # never eliminated, losses only counted


class PlayerStatus(str, Enum):
    active = "active"
    eliminated = "eliminated"


class FixtureResult(str, Enum):
    home_win = "home_win"
    away_win = "away_win"
    draw = "draw"


class RoundStatus(str, Enum):
    open = "open"
    locked = "locked"


# ---------- MongoDB documents ----------

class CompetitionInDB(BaseModel):
    """Competition rules. Created by the admin workflow, read-only here."""
    name: str
    organiser_id: str
    team_list_id: str
    lives_mode: LivesMode = LivesMode.limited
    lives_per_player: int = 1
    no_team_twice: bool = True
    reset_on_exhaustion: bool = True
    draw_survives: bool = False


class TeamInDB(BaseModel):
    team_list_id: str
    name: str
    short_name: str
    is_active: bool = True


class RoundInDB(BaseModel):
    """A round; open/locked is derived from lock_time, never stored."""
    competition_id: str
    round_number: int
    lock_time: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class FixtureInDB(BaseModel):
    competition_id: str
    round_id: str
    kickoff_time: Optional[datetime] = None
    home_team_id: str
    home_team: str
    home_team_short: str
    away_team_id: str
    away_team: str
    away_team_short: str
    result: Optional[FixtureResult] = None
    result_set_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class UsedTeam(BaseModel):
    team_id: str
    round_id: str


class PlayerInDB(BaseModel):
    """One row per user per competition. Mutated by the pick engine only."""
    competition_id: str
    user_id: str
    display_name: str = ""
    lives_remaining: Optional[int] = None  # None in unlimited mode
    status: PlayerStatus = PlayerStatus.active
    used_teams: list[UsedTeam] = Field(default_factory=list)
    reset_count: int = 0
    last_reset_at: Optional[datetime] = None
    losses: int = 0
    rounds_survived: int = 0
    eliminated_at: Optional[datetime] = None
    eliminated_round_id: Optional[str] = None
    write_seq: int = 0
    created_at: datetime
    updated_at: datetime


# ---------- API responses ----------

class StandingEntry(BaseModel):
    player_id: str
    user_id: str
    display_name: str
    status: PlayerStatus
    lives_remaining: Optional[int] = None
    losses: int = 0
    rounds_survived: int = 0
    eliminated_at: Optional[datetime] = None
