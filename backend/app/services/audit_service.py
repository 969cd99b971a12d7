"""Audit trail for pick, reset and resolution events.

Entries go to ``audit_logs`` and are never updated or deleted. Callers write
them after their transaction has committed, so an entry always describes a
change that actually happened; a failed audit write is logged, not raised.
"""

import logging
from typing import Optional

import app.database as _db
from app.models.audit import AuditAction
from app.utils import utcnow

logger = logging.getLogger("lastpick.audit")

SYSTEM_ACTOR = "SYSTEM"


async def log_audit(
    *,
    actor_id: str,
    target_id: str,
    action: AuditAction,
    competition_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> None:
    """Record one engine event.

    ``actor_id`` is the acting user id or SYSTEM_ACTOR for resolver and
    reset events; ``target_id`` is the player, fixture or round touched.
    """
    entry = {
        "timestamp": utcnow(),
        "actor_id": str(actor_id),
        "target_id": str(target_id),
        "competition_id": str(competition_id) if competition_id else None,
        "action": action.value,
        "metadata": metadata or {},
    }
    try:
        await _db.db.audit_logs.insert_one(entry)
    except Exception:
        logger.exception(
            "Failed to write audit log: action=%s actor=%s target=%s competition=%s",
            action.value, actor_id, target_id, competition_id,
        )
