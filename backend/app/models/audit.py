from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AuditAction(str, Enum):
    PICK_MADE = "PICK_MADE"
    PICK_CHANGED = "PICK_CHANGED"
    PICK_WITHDRAWN = "PICK_WITHDRAWN"
    TEAMS_AUTO_RESET = "TEAMS_AUTO_RESET"
    FIXTURE_RESULT_SET = "FIXTURE_RESULT_SET"
    ROUND_RESOLVED = "ROUND_RESOLVED"


class AuditLog(BaseModel):
    """Immutable audit log entry for the pick engine.

    Insert-only. No updates or deletes permitted on this collection.
    """

    timestamp: datetime
    actor_id: str  # Who did it? (User-ID or "SYSTEM")
    target_id: str  # Who was affected? (Player-ID, Fixture-ID, Round-ID)
    competition_id: Optional[str] = None
    action: AuditAction
    metadata: dict = Field(default_factory=dict)  # Previous/new values
