"""Round lock gate — decides whether a round still accepts pick changes.

Pure functions over the round document (and optionally its fixtures). The
caller passes ``now`` taken at the moment of the write, inside the same
transaction, so the lock boundary is never judged from a cached value.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from app.config import settings
from app.errors import ErrorCode, LmsError
from app.models.competition import RoundStatus
from app.utils import ensure_utc


def lock_deadline(round_doc: dict, fixtures: Optional[Iterable[dict]] = None) -> Optional[datetime]:
    """Instant after which the round is locked.

    The configured lock_time, pulled forward to the earliest fixture kickoff
    when fixtures are supplied, and forward again by LOCK_CLOCK_SKEW_SECONDS.
    None when neither lock_time nor any kickoff is known.
    """
    candidates: list[datetime] = []
    if round_doc.get("lock_time"):
        candidates.append(ensure_utc(round_doc["lock_time"]))
    for fixture in fixtures or ():
        if fixture.get("kickoff_time"):
            candidates.append(ensure_utc(fixture["kickoff_time"]))
    if not candidates:
        return None
    return min(candidates) - timedelta(seconds=max(0, settings.LOCK_CLOCK_SKEW_SECONDS))


def is_open(round_doc: dict, now: datetime, fixtures: Optional[Iterable[dict]] = None) -> bool:
    """True while ``now`` is strictly before the lock deadline.

    A round without any lock time is treated as locked.
    """
    deadline = lock_deadline(round_doc, fixtures)
    if deadline is None:
        return False
    return ensure_utc(now) < deadline


def assert_open(round_doc: dict, now: datetime, fixtures: Optional[Iterable[dict]] = None) -> None:
    if not is_open(round_doc, now, fixtures):
        raise LmsError(
            ErrorCode.ROUND_LOCKED,
            "This round is locked and picks cannot be changed.",
        )


def round_status(round_doc: dict, now: datetime, fixtures: Optional[Iterable[dict]] = None) -> RoundStatus:
    return RoundStatus.open if is_open(round_doc, now, fixtures) else RoundStatus.locked
