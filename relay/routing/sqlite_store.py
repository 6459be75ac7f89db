"""SqliteRoutingDataStore — aiosqlite persistence for the routing collections."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import aiosqlite

from relay.config import settings
from relay.routing.models import Connection, ConnectionRequest, Identity

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_ROLE_USER = "user"
_ROLE_BOT = "bot"
_ROLE_AGGREGATION = "aggregation"

_CREATE_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS participants (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        role TEXT NOT NULL,
        identity TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS connection_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        requestor TEXT NOT NULL,
        request_time TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS connections (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        party_a TEXT NOT NULL,
        party_b TEXT NOT NULL,
        last_activity_time TEXT NOT NULL
    )
    """,
)


class SqliteRoutingDataStore:
    """Persists routing data in SQLite.

    Identities are stored as JSON documents. Removals load the candidate
    rows and delete the first one equal to the argument, so they follow
    the same matching rules as the in-memory store. Pass an explicit
    *db_path* for test isolation (e.g. ``tmp_path / "routing.db"``).
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False
        self._write_lock = asyncio.Lock()

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            for statement in _CREATE_TABLES:
                await db.execute(statement)
            await db.commit()
            self._initialised = True
        return db

    async def _fetch(self, sql: str, params: tuple = ()) -> list[tuple]:
        db = await self._connect()
        try:
            cursor = await db.execute(sql, params)
            return list(await cursor.fetchall())
        finally:
            await db.close()

    async def _insert(self, sql: str, params: tuple) -> bool:
        async with self._write_lock:
            db = await self._connect()
            try:
                await db.execute(sql, params)
                await db.commit()
                return True
            except aiosqlite.Error:
                logger.exception("Failed to write routing data")
                return False
            finally:
                await db.close()

    async def _delete_first(self, table: str, rows: list[tuple], match) -> bool:
        """Delete the first of *rows* (``(id, ...)`` tuples) accepted by *match*."""
        for row in rows:
            if match(row[1:]):
                db = await self._connect()
                try:
                    sql = f"DELETE FROM {table} WHERE id = ?"  # noqa: S608
                    cursor = await db.execute(sql, (row[0],))
                    await db.commit()
                    return cursor.rowcount > 0
                except aiosqlite.Error:
                    logger.exception("Failed to delete from %s", table)
                    return False
                finally:
                    await db.close()
        return False

    async def _list_role(self, role: str) -> list[Identity]:
        rows = await self._fetch(
            "SELECT identity FROM participants WHERE role = ? ORDER BY id", (role,)
        )
        return [Identity.from_json(row[0]) for row in rows]

    async def _remove_role(self, role: str, identity: Identity) -> bool:
        async with self._write_lock:
            rows = await self._fetch(
                "SELECT id, identity FROM participants WHERE role = ? ORDER BY id", (role,)
            )
            return await self._delete_first(
                "participants", rows, lambda cols: Identity.from_json(cols[0]) == identity
            )

    # -- Users and bots --------------------------------------------------------

    async def list_users(self) -> list[Identity]:
        return await self._list_role(_ROLE_USER)

    async def list_bot_instances(self) -> list[Identity]:
        return await self._list_role(_ROLE_BOT)

    async def add_user_or_bot(self, identity: Identity) -> bool:
        role = _ROLE_BOT if identity.is_bot else _ROLE_USER
        return await self._insert(
            "INSERT INTO participants (role, identity) VALUES (?, ?)",
            (role, identity.to_json()),
        )

    async def remove_user_or_bot(self, identity: Identity) -> bool:
        role = _ROLE_BOT if identity.is_bot else _ROLE_USER
        return await self._remove_role(role, identity)

    # -- Aggregation endpoints -------------------------------------------------

    async def list_aggregation_endpoints(self) -> list[Identity]:
        return await self._list_role(_ROLE_AGGREGATION)

    async def add_aggregation_endpoint(self, identity: Identity) -> bool:
        return await self._insert(
            "INSERT INTO participants (role, identity) VALUES (?, ?)",
            (_ROLE_AGGREGATION, identity.to_json()),
        )

    async def remove_aggregation_endpoint(self, identity: Identity) -> bool:
        return await self._remove_role(_ROLE_AGGREGATION, identity)

    # -- Connection requests ---------------------------------------------------

    async def list_pending_requests(self) -> list[ConnectionRequest]:
        rows = await self._fetch(
            "SELECT requestor, request_time FROM connection_requests ORDER BY id"
        )
        return [ConnectionRequest.from_row(row) for row in rows]

    async def add_pending_request(self, request: ConnectionRequest) -> bool:
        return await self._insert(
            "INSERT INTO connection_requests (requestor, request_time) VALUES (?, ?)",
            request.to_row(),
        )

    async def remove_pending_request(self, request: ConnectionRequest) -> bool:
        async with self._write_lock:
            rows = await self._fetch(
                "SELECT id, requestor, request_time FROM connection_requests ORDER BY id"
            )
            return await self._delete_first(
                "connection_requests",
                rows,
                lambda cols: ConnectionRequest.from_row(cols) == request,
            )

    # -- Connections -----------------------------------------------------------

    async def list_connections(self) -> list[Connection]:
        rows = await self._fetch(
            "SELECT party_a, party_b, last_activity_time FROM connections ORDER BY id"
        )
        return [Connection.from_row(row) for row in rows]

    async def add_connection(self, connection: Connection) -> bool:
        return await self._insert(
            "INSERT INTO connections (party_a, party_b, last_activity_time) VALUES (?, ?, ?)",
            connection.to_row(),
        )

    async def remove_connection(self, connection: Connection) -> bool:
        async with self._write_lock:
            rows = await self._fetch(
                "SELECT id, party_a, party_b, last_activity_time FROM connections ORDER BY id"
            )
            return await self._delete_first(
                "connections", rows, lambda cols: Connection.from_row(cols) == connection
            )
