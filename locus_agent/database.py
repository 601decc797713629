"""
Direct PostgreSQL access for the agent_sessions table.

Each row holds one conversation: its workspace, the model it talks to, and
the latest committed AgentState snapshot as JSONB. The table is created on
first use.

When DATABASE_URL is empty, sessions live in process memory instead, which
is enough for local development and a single worker.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from locus_agent.config import settings

logger = logging.getLogger(__name__)

_pool: AsyncConnectionPool | None = None

# Used only when no database is configured
_local_sessions: dict[str, dict] = {}

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS agent_sessions (
    id           TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL,
    model        TEXT NOT NULL DEFAULT 'claude-sonnet-4-6',
    state        JSONB NOT NULL,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


def persistence_enabled() -> bool:
    return bool(settings.database_url)


async def get_pool() -> AsyncConnectionPool:
    global _pool
    if _pool is None:
        _pool = AsyncConnectionPool(
            conninfo=settings.database_url,
            min_size=1,
            max_size=10,
            kwargs={"row_factory": dict_row},
            open=False,
        )
        await _pool.open()
        async with _pool.connection() as conn:
            await conn.execute(_CREATE_TABLE)
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


def _row(row: dict) -> dict:
    row = dict(row)
    if isinstance(row.get("state"), str):
        row["state"] = json.loads(row["state"])
    for key in ("created_at", "updated_at"):
        if isinstance(row.get(key), datetime):
            row[key] = row[key].isoformat()
    return row


# ---------------------------------------------------------------------------
# agent_sessions CRUD
# ---------------------------------------------------------------------------


async def create_session(*, session_id: str, workspace_id: str, model: str, state: dict) -> dict:
    now = datetime.now(timezone.utc).isoformat()
    row = {
        "id": session_id,
        "workspace_id": workspace_id,
        "model": model,
        "state": state,
        "created_at": now,
        "updated_at": now,
    }
    if not persistence_enabled():
        _local_sessions[session_id] = row
        return dict(row)

    pool = await get_pool()
    async with pool.connection() as conn:
        await conn.execute(
            """
            INSERT INTO agent_sessions (id, workspace_id, model, state, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO NOTHING
            """,
            (session_id, workspace_id, model, json.dumps(state), now, now),
        )
    return row


async def get_session(session_id: str) -> dict | None:
    if not persistence_enabled():
        row = _local_sessions.get(session_id)
        return dict(row) if row else None

    pool = await get_pool()
    async with pool.connection() as conn:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                "SELECT * FROM agent_sessions WHERE id = %s LIMIT 1",
                (session_id,),
            )
            row = await cur.fetchone()
    return _row(row) if row else None


async def update_session(session_id: str, *, state: dict, model: str | None = None) -> None:
    now = datetime.now(timezone.utc).isoformat()
    if not persistence_enabled():
        row = _local_sessions.get(session_id)
        if row is not None:
            row.update(state=state, updated_at=now)
            if model is not None:
                row["model"] = model
        return

    sets = ["state = %s", "updated_at = %s"]
    params: list = [json.dumps(state), now]
    if model is not None:
        sets.append("model = %s")
        params.append(model)
    params.append(session_id)

    pool = await get_pool()
    async with pool.connection() as conn:
        await conn.execute(
            f"UPDATE agent_sessions SET {', '.join(sets)} WHERE id = %s",
            params,
        )


async def delete_session(session_id: str) -> bool:
    """Returns True if the session existed."""
    if not persistence_enabled():
        return _local_sessions.pop(session_id, None) is not None

    pool = await get_pool()
    async with pool.connection() as conn:
        cur = await conn.execute("DELETE FROM agent_sessions WHERE id = %s", (session_id,))
        deleted = cur.rowcount > 0
    return deleted
