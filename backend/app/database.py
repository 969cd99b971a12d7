"""
backend/app/database.py

Purpose:
    MongoDB connection bootstrap, index management and the transaction
    helper used by every pick-mutating operation.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - app.config
"""

import logging
from typing import Any, Awaitable, Callable, TypeVar

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from app.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("lastpick.database")

T = TypeVar("T")

# Pick statuses that occupy the single (player, round) slot.
LIVE_PICK_STATUSES = ["pending", "won", "lost", "drawn", "no_pick"]


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def run_in_transaction(callback: Callable[[Any], Awaitable[T]]) -> T:
    """Run ``callback(session)`` inside a snapshot/majority transaction.

    Transient write conflicts (two transactions touching the same player
    document) are retried by the driver until the commit window expires.
    Any other exception aborts the transaction and propagates.
    """
    async with await client.start_session() as session:
        return await session.with_transaction(
            callback,
            read_concern=ReadConcern("snapshot"),
            write_concern=WriteConcern("majority"),
        )


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent — safe to run repeatedly."""

    # ---- Competitions / teams (read-mostly, owned by admin workflows) ----

    await db.competitions.create_index("organiser_id")
    await db.teams.create_index([("team_list_id", 1), ("is_active", 1), ("name", 1)])
    await db.teams.create_index([("team_list_id", 1), ("short_name", 1)], unique=True)

    # ---- Rounds ----

    await db.rounds.create_index(
        [("competition_id", 1), ("round_number", 1)], unique=True
    )
    # Resolver sweep: locked but unresolved rounds
    await db.rounds.create_index([("resolved_at", 1), ("lock_time", 1)])

    # ---- Fixtures ----

    await db.fixtures.create_index([("round_id", 1), ("result", 1)])
    await db.fixtures.create_index("competition_id")

    # ---- Competition players ----

    await db.competition_players.create_index(
        [("competition_id", 1), ("user_id", 1)], unique=True
    )
    await db.competition_players.create_index([("competition_id", 1), ("status", 1)])

    # ---- Picks ----

    # One live pick per player per round. Withdrawn rows stay for history.
    await db.picks.create_index(
        [("player_id", 1), ("round_id", 1)],
        unique=True,
        name="picks_one_live_per_round",
        partialFilterExpression={"status": {"$in": LIVE_PICK_STATUSES}},
    )
    await db.picks.create_index([("round_id", 1), ("status", 1)])
    await db.picks.create_index([("player_id", 1), ("created_at", -1)])

    # ---- Audit Logs ----

    await db.audit_logs.create_index([("action", 1), ("timestamp", -1)])
    await db.audit_logs.create_index([("actor_id", 1), ("timestamp", -1)])
    await db.audit_logs.create_index([("target_id", 1), ("timestamp", -1)])
    await db.audit_logs.create_index([("competition_id", 1), ("timestamp", -1)])

    # ---- Auth (blocklist is written by the auth service) ----

    await db.access_blocklist.create_index("jti", unique=True)
    await db.access_blocklist.create_index("expires_at", expireAfterSeconds=0)

    logger.info("Indexes ensured")
