"""In-memory RoutingDataStore — reference implementation for tests and single-process use."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from relay.routing.models import Connection, ConnectionRequest, Identity


class InMemoryRoutingDataStore:
    """Keeps the routing collections in process memory.

    Every call holds a single ``asyncio.Lock`` so concurrent coroutines see
    each add/remove as one step. List reads return copies.
    """

    def __init__(self) -> None:
        self._users: list[Identity] = []
        self._bot_instances: list[Identity] = []
        self._aggregation_endpoints: list[Identity] = []
        self._requests: list[ConnectionRequest] = []
        self._connections: list[Connection] = []
        self._lock = asyncio.Lock()

    @staticmethod
    def _remove_first(items: list, item: object) -> bool:
        for index, existing in enumerate(items):
            if existing == item:
                del items[index]
                return True
        return False

    # -- Users and bots --------------------------------------------------------

    async def list_users(self) -> list[Identity]:
        async with self._lock:
            return list(self._users)

    async def list_bot_instances(self) -> list[Identity]:
        async with self._lock:
            return list(self._bot_instances)

    async def add_user_or_bot(self, identity: Identity) -> bool:
        async with self._lock:
            target = self._bot_instances if identity.is_bot else self._users
            target.append(identity)
            return True

    async def remove_user_or_bot(self, identity: Identity) -> bool:
        async with self._lock:
            target = self._bot_instances if identity.is_bot else self._users
            return self._remove_first(target, identity)

    # -- Aggregation endpoints -------------------------------------------------

    async def list_aggregation_endpoints(self) -> list[Identity]:
        async with self._lock:
            return list(self._aggregation_endpoints)

    async def add_aggregation_endpoint(self, identity: Identity) -> bool:
        async with self._lock:
            self._aggregation_endpoints.append(identity)
            return True

    async def remove_aggregation_endpoint(self, identity: Identity) -> bool:
        async with self._lock:
            return self._remove_first(self._aggregation_endpoints, identity)

    # -- Connection requests ---------------------------------------------------

    async def list_pending_requests(self) -> list[ConnectionRequest]:
        async with self._lock:
            return list(self._requests)

    async def add_pending_request(self, request: ConnectionRequest) -> bool:
        async with self._lock:
            self._requests.append(request)
            return True

    async def remove_pending_request(self, request: ConnectionRequest) -> bool:
        async with self._lock:
            return self._remove_first(self._requests, request)

    # -- Connections -----------------------------------------------------------

    async def list_connections(self) -> list[Connection]:
        async with self._lock:
            return list(self._connections)

    async def add_connection(self, connection: Connection) -> bool:
        async with self._lock:
            self._connections.append(connection)
            return True

    async def remove_connection(self, connection: Connection) -> bool:
        async with self._lock:
            return self._remove_first(self._connections, connection)
