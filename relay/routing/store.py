"""RoutingDataStore protocol — the persistence port behind the routing registry."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from relay.config import settings

if TYPE_CHECKING:
    from pathlib import Path

    from relay.routing.models import Connection, ConnectionRequest, Identity


@runtime_checkable
class RoutingDataStore(Protocol):
    """Durable storage for the four routing collections.

    Each call must behave atomically with respect to other callers sharing
    the store. Boolean calls report success; "not found" is ``False``,
    never an exception. Removals match on the model's equality.
    """

    async def list_users(self) -> list[Identity]: ...

    async def list_bot_instances(self) -> list[Identity]: ...

    async def list_aggregation_endpoints(self) -> list[Identity]: ...

    async def add_user_or_bot(self, identity: Identity) -> bool:
        """Store *identity* as a bot instance if it has a bot account, else as a user."""
        ...

    async def remove_user_or_bot(self, identity: Identity) -> bool: ...

    async def add_aggregation_endpoint(self, identity: Identity) -> bool: ...

    async def remove_aggregation_endpoint(self, identity: Identity) -> bool: ...

    async def list_pending_requests(self) -> list[ConnectionRequest]: ...

    async def add_pending_request(self, request: ConnectionRequest) -> bool: ...

    async def remove_pending_request(self, request: ConnectionRequest) -> bool: ...

    async def list_connections(self) -> list[Connection]: ...

    async def add_connection(self, connection: Connection) -> bool: ...

    async def remove_connection(self, connection: Connection) -> bool: ...


def create_data_store(
    backend: str | None = None, db_path: Path | None = None
) -> RoutingDataStore:
    """Build the store named by *backend* (default from settings).

    Raises ValueError for an unknown backend name.
    """
    name = (backend or settings.get_routing_backend()).strip().lower()
    if name == "memory":
        from relay.routing.memory_store import InMemoryRoutingDataStore

        return InMemoryRoutingDataStore()
    if name == "sqlite":
        from relay.routing.sqlite_store import SqliteRoutingDataStore

        return SqliteRoutingDataStore(db_path=db_path)
    msg = f"Unknown routing backend '{name}'"
    raise ValueError(msg)
