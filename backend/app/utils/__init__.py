"""Time and id helpers shared by the engine services."""

from datetime import datetime, timezone

from bson import ObjectId
from bson.errors import InvalidId


def utcnow() -> datetime:
    """Timezone-aware UTC now. Every lock and resolution timestamp uses it."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes.

    Motor returns stored datetimes naive (they are UTC on the wire); compare
    them with utcnow() only after passing them through here.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_object_id(value) -> ObjectId | None:
    """Coerce a str/ObjectId id into an ObjectId. Returns None for garbage."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None
