"""Pick models — one team per player per round, resolved to won/lost/drawn."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.models.competition import FixtureResult


class PickSide(str, Enum):
    home = "home"
    away = "away"


class PickStatus(str, Enum):
    pending = "pending"
    won = "won"
    lost = "lost"
    drawn = "drawn"
    withdrawn = "withdrawn"
    no_pick = "no_pick"  # synthesized at resolution for players without a pick


class PickInDB(BaseModel):
    """A pick row. Replacing a pick withdraws the old row and inserts a new one."""
    competition_id: str
    round_id: str
    player_id: str
    user_id: str
    fixture_id: Optional[str] = None  # None for no_pick rows
    side: Optional[PickSide] = None
    team_id: Optional[str] = None
    team_name: Optional[str] = None
    team_short: Optional[str] = None
    status: PickStatus = PickStatus.pending
    replaced: bool = False
    created_at: datetime
    updated_at: datetime
    withdrawn_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


# ---------- API requests ----------

class PickCreate(BaseModel):
    """Request body for making or changing a pick."""
    fixture_id: str
    side: PickSide
    round_id: Optional[str] = None


class FixtureResultUpdate(BaseModel):
    result: FixtureResult


class ResolveRoundRequest(BaseModel):
    force: bool = False


# ---------- API responses ----------

class PickResponse(BaseModel):
    id: str
    round_id: str
    fixture_id: Optional[str] = None
    side: Optional[PickSide] = None
    team_id: Optional[str] = None
    team_name: Optional[str] = None
    team_short: Optional[str] = None
    status: PickStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None


class EligibleTeam(BaseModel):
    team_id: str
    name: str
    short_name: str


class EligibleTeamsResponse(BaseModel):
    teams: list[EligibleTeam] = Field(default_factory=list)
    reset_occurred: bool = False
    reset_message: Optional[str] = None
    no_team_twice: bool = True


class WithdrawResponse(BaseModel):
    withdrawn_pick: PickResponse
    warning: Optional[str] = None


class TeamPickCount(BaseModel):
    team_id: str
    team_short: str
    team_name: str
    pick_count: int


class ResolutionSummary(BaseModel):
    """Counts produced by one resolve_round call (zero on a repeated call)."""
    round_id: str
    won: int = 0
    lost: int = 0
    drawn: int = 0
    no_pick: int = 0
    eliminated: int = 0
    lives_deducted: int = 0
    unresolved_fixtures: int = 0
    complete: bool = False
    already_resolved: bool = False
