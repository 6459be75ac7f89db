"""RoutingRegistry — who is registered, who is waiting, and who is talking to whom.

The registry holds no routing state of its own. Every read and write goes
through a :class:`~relay.routing.store.RoutingDataStore`, and every mutating
operation returns a typed result the caller branches on.

Compound operations (activity refresh, the participant removal sweep) issue
several store calls and are not atomic across them. Callers needing strict
atomicity for a participant must serialise access themselves.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from relay.config import settings
from relay.routing.clock import Clock, SystemClock
from relay.routing.errors import InvalidArgumentError
from relay.routing.models import Connection, ConnectionRequest, Identity, same_participant
from relay.routing.results import (
    AbstractResult,
    ConnectionRequestResult,
    ConnectionRequestResultType,
    ConnectionResult,
    ConnectionResultType,
    ParticipantResult,
    ParticipantResultType,
)
from relay.routing.store import create_data_store

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from relay.routing.store import RoutingDataStore

logger = logging.getLogger(__name__)


def _request_key(request: ConnectionRequest) -> tuple:
    return (request.requestor.to_json(), request.request_time)


def _connection_key(connection: Connection) -> tuple:
    return (
        connection.party_a.to_json(),
        connection.party_b.to_json(),
        connection.last_activity_time,
    )


def _is_set(value: str | None) -> bool:
    return bool(value and value.strip())


def find_by_criteria(
    pool: Iterable[Identity],
    channel_id: str | None = None,
    conversation_id: str | None = None,
    account_id: str | None = None,
    bots_only: bool = False,
) -> list[Identity]:
    """Return the identities in *pool* matching every criterion given.

    Blank strings count as unset. At least one of *channel_id*,
    *conversation_id* and *account_id* must be set, otherwise
    InvalidArgumentError is raised. Matching is exact and case-sensitive;
    *account_id* is compared against the user account if present, else
    the bot account.
    """
    if not (_is_set(channel_id) or _is_set(conversation_id) or _is_set(account_id)):
        msg = "At least one search criterion must be defined"
        raise InvalidArgumentError(msg)

    found: list[Identity] = []
    for identity in pool:
        if bots_only and not identity.is_bot:
            continue
        if _is_set(channel_id) and identity.channel_id != channel_id:
            continue
        if _is_set(conversation_id) and identity.conversation_id != conversation_id:
            continue
        if _is_set(account_id) and identity.account_id != account_id:
            continue
        found.append(identity)
    return found


class RoutingRegistry:
    """Registration, request and connection lifecycle over a routing store.

    Singleton accessed via ``RoutingRegistry.get()``, which builds the store
    named by settings. Construct directly with an explicit *store* and
    *clock* for tests.

    Args:
        store: Persistence port holding the routing collections.
        clock: Time source for request and activity timestamps.
        reject_requests_without_aggregation: Default for
            ``submit_request`` when the caller does not pass the flag.
    """

    _instance: RoutingRegistry | None = None

    def __init__(
        self,
        store: RoutingDataStore,
        clock: Clock | None = None,
        *,
        reject_requests_without_aggregation: bool | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        if reject_requests_without_aggregation is None:
            reject_requests_without_aggregation = settings.reject_requests_without_aggregation
        self._reject_without_aggregation = reject_requests_without_aggregation

    @classmethod
    def get(cls) -> RoutingRegistry:
        """Return the shared registry, creating it from settings if needed."""
        if cls._instance is None:
            cls._instance = cls(create_data_store())
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @property
    def store(self) -> RoutingDataStore:
        return self._store

    def now(self) -> datetime:
        return self._clock.now()

    # -- Read accessors --------------------------------------------------------

    async def get_users(self) -> list[Identity]:
        return await self._store.list_users()

    async def get_bot_instances(self) -> list[Identity]:
        return await self._store.list_bot_instances()

    async def get_aggregation_endpoints(self) -> list[Identity]:
        return await self._store.list_aggregation_endpoints()

    async def get_requests(self) -> list[ConnectionRequest]:
        return await self._store.list_pending_requests()

    async def get_connections(self) -> list[Connection]:
        return await self._store.list_connections()

    # -- Users and bots --------------------------------------------------------

    async def register_participant(self, identity: Identity) -> bool:
        """Store a user or bot instance. Returns False if already registered.

        Raises InvalidArgumentError if *identity* has neither account.
        """
        if identity is None or not identity.has_account:
            msg = "A participant needs a user or a bot account"
            raise InvalidArgumentError(msg)

        existing = (
            await self.get_bot_instances() if identity.is_bot else await self.get_users()
        )
        if any(same_participant(identity, other) for other in existing):
            return False

        added = await self._store.add_user_or_bot(identity)
        if added:
            logger.info("Registered %s", identity)
        else:
            logger.warning("Store refused to register %s", identity)
        return added

    async def remove_participant(self, identity: Identity) -> list[AbstractResult]:
        """Remove *identity* everywhere it appears.

        Removes matching users and bot instances, then withdraws every
        pending request and disconnects every connection the participant is
        part of, rescanning until nothing matches. Returns every outcome in
        order; a single ``ERROR`` result means nothing matched.
        """
        results: list[AbstractResult] = []

        registered = await self.get_users() + await self.get_bot_instances()
        for participant in registered:
            if not same_participant(identity, participant):
                continue
            if await self._store.remove_user_or_bot(participant):
                logger.info("Removed participant %s", participant)
                results.append(ParticipantResult(participant=participant))
            else:
                results.append(
                    ParticipantResult(
                        type=ParticipantResultType.ERROR,
                        participant=participant,
                        error_message=f"Failed to remove participant {participant}",
                    )
                )

        # Entries that failed once are keyed by their stored values and skipped
        # on later scans, so each failure is reported once.
        failed_requests: set[tuple] = set()
        while True:
            request = next(
                (
                    r
                    for r in await self.get_requests()
                    if same_participant(identity, r.requestor)
                    and _request_key(r) not in failed_requests
                ),
                None,
            )
            if request is None:
                break
            request_result = await self.withdraw_request(request)
            results.append(request_result)
            if request_result.type != ConnectionRequestResultType.REJECTED:
                failed_requests.add(_request_key(request))

        failed_connections: set[tuple] = set()
        while True:
            connection = next(
                (
                    c
                    for c in await self.get_connections()
                    if c.involves(identity) and _connection_key(c) not in failed_connections
                ),
                None,
            )
            if connection is None:
                break
            connection_result = await self.disconnect(connection)
            results.append(connection_result)
            if connection_result.type != ConnectionResultType.DISCONNECTED:
                failed_connections.add(_connection_key(connection))

        if not results:
            results.append(
                ParticipantResult(
                    type=ParticipantResultType.ERROR,
                    participant=identity,
                    error_message=f"Participant {identity} not found",
                )
            )
        logger.debug("Removal of %s produced %d result(s)", identity, len(results))
        return results

    async def resolve_bot_name_in_conversation(self, identity: Identity) -> str | None:
        """Name of the bot instance in the same channel and conversation, if any."""
        if identity is None or not (
            _is_set(identity.channel_id) or _is_set(identity.conversation_id)
        ):
            return None
        bot = await self.find_one(
            channel_id=identity.channel_id,
            conversation_id=identity.conversation_id,
            bots_only=True,
        )
        if bot is None or bot.bot is None:
            return None
        return bot.bot.name

    # -- Aggregation endpoints -------------------------------------------------

    async def add_aggregation_endpoint(self, identity: Identity) -> bool:
        """Store an operator aggregation endpoint. Returns False if it exists.

        Raises InvalidArgumentError if *identity* carries a user or bot account.
        """
        if identity is None:
            msg = "Aggregation endpoint is missing"
            raise InvalidArgumentError(msg)
        if identity.has_account:
            msg = "An aggregation endpoint cannot carry a user or bot account"
            raise InvalidArgumentError(msg)

        if identity in await self.get_aggregation_endpoints():
            return False

        added = await self._store.add_aggregation_endpoint(identity)
        if added:
            logger.info("Added aggregation endpoint %s", identity)
        return added

    async def remove_aggregation_endpoint(self, identity: Identity) -> bool:
        removed = await self._store.remove_aggregation_endpoint(identity)
        if removed:
            logger.info("Removed aggregation endpoint %s", identity)
        else:
            logger.info("Aggregation endpoint %s not found", identity)
        return removed

    async def is_aggregation_endpoint(self, identity: Identity) -> bool:
        """True if *identity* is in the conversation of an aggregation endpoint."""
        if identity is None:
            return False
        return any(
            endpoint.conversation_id == identity.conversation_id
            and endpoint.service_url == identity.service_url
            and endpoint.channel_id == identity.channel_id
            for endpoint in await self.get_aggregation_endpoints()
        )

    # -- Connection requests ---------------------------------------------------

    async def find_request(self, identity: Identity) -> ConnectionRequest | None:
        """First pending request whose requestor is the same participant."""
        for request in await self.get_requests():
            if same_participant(identity, request.requestor):
                return request
        return None

    async def submit_request(
        self,
        requestor: Identity,
        reject_if_no_aggregation_endpoint: bool | None = None,
    ) -> ConnectionRequestResult:
        """Ask for *requestor* to be connected to an operator.

        Returns ``OK``, ``ALREADY_REQUESTED``, ``NOT_SETUP`` or ``ERROR``.
        """
        if requestor is None:
            msg = "Requestor is missing"
            raise InvalidArgumentError(msg)
        if reject_if_no_aggregation_endpoint is None:
            reject_if_no_aggregation_endpoint = self._reject_without_aggregation

        request = ConnectionRequest(requestor=requestor, request_time=self.now())
        result = ConnectionRequestResult(connection_request=request)

        if await self.find_request(requestor) is not None:
            result.type = ConnectionRequestResultType.ALREADY_REQUESTED
            return result

        if reject_if_no_aggregation_endpoint and not await self.get_aggregation_endpoints():
            result.type = ConnectionRequestResultType.NOT_SETUP
            return result

        if await self._store.add_pending_request(request):
            logger.info("Connection request from %s", requestor)
            result.type = ConnectionRequestResultType.OK
        else:
            result.type = ConnectionRequestResultType.ERROR
            result.error_message = (
                "Failed to add the connection request - this is likely an error "
                "caused by the storage implementation"
            )
        return result

    async def withdraw_request(self, request: ConnectionRequest) -> ConnectionRequestResult:
        """Remove a pending request. Returns ``REJECTED`` or ``ERROR``."""
        if request is None:
            msg = "Connection request is missing"
            raise InvalidArgumentError(msg)

        result = ConnectionRequestResult(connection_request=request)
        if request not in await self.get_requests():
            result.type = ConnectionRequestResultType.ERROR
            result.error_message = (
                "Could not find a connection request associated with the given requestor"
            )
            return result

        if await self._store.remove_pending_request(request):
            logger.info("Connection request from %s removed", request.requestor)
            result.type = ConnectionRequestResultType.REJECTED
        else:
            result.type = ConnectionRequestResultType.ERROR
            result.error_message = (
                "Failed to remove the connection request associated with the given requestor"
            )
        return result

    # -- Connections -----------------------------------------------------------

    async def find_connection(self, identity: Identity) -> Connection | None:
        for connection in await self.get_connections():
            if connection.involves(identity):
                return connection
        return None

    async def is_connected(self, identity: Identity) -> bool:
        return await self.find_connection(identity) is not None

    async def find_counterpart(self, identity: Identity) -> Identity | None:
        """The participant on the other side of *identity*'s connection."""
        for connection in await self.get_connections():
            counterpart = connection.counterpart_of(identity)
            if counterpart is not None:
                return counterpart
        return None

    async def accept_request(
        self, connection: Connection, requestor: Identity
    ) -> ConnectionResult:
        """Store *connection* and consume the pending request of *requestor*.

        Returns ``CONNECTED`` (with the consumed request, or None if it had
        already gone) or ``ERROR`` when either party is already connected or
        the connection could not be stored.
        """
        result = ConnectionResult(connection=connection)

        for existing in await self.get_connections():
            if existing.involves(connection.party_a) or existing.involves(connection.party_b):
                result.type = ConnectionResultType.ERROR
                result.error_message = f"A party of {connection} is already connected"
                return result

        connection.last_activity_time = self.now()
        if not await self._store.add_connection(connection):
            result.type = ConnectionResultType.ERROR
            result.error_message = f"Failed to add the connection {connection}"
            return result

        request = await self.find_request(requestor)
        if request is None:
            logger.warning("No pending request from %s to remove on connect", requestor)
        else:
            withdrawn = await self.withdraw_request(request)
            if withdrawn.type != ConnectionRequestResultType.REJECTED:
                logger.warning(
                    "Connected but could not clear request from %s: %s",
                    requestor,
                    withdrawn.error_message,
                )

        logger.info("Connected %s", connection)
        result.type = ConnectionResultType.CONNECTED
        result.connection_request = request
        return result

    async def refresh_activity(self, connection: Connection) -> bool:
        """Restamp the connection's last activity time.

        Removes and re-adds the connection. If the removal fails nothing is
        re-added and False is returned. If the re-add fails the connection is
        gone and False is returned.
        """
        if not await self._store.remove_connection(connection):
            logger.warning("Cannot refresh activity, connection not found: %s", connection)
            return False
        connection.last_activity_time = self.now()
        if not await self._store.add_connection(connection):
            logger.warning("Connection lost while refreshing activity: %s", connection)
            return False
        return True

    async def disconnect(self, connection: Connection) -> ConnectionResult:
        """Remove the stored connection equal to *connection*.

        Returns ``DISCONNECTED`` or ``ERROR``.
        """
        result = ConnectionResult(connection=connection)

        for existing in await self.get_connections():
            if existing != connection:
                continue
            result.connection = existing
            if await self._store.remove_connection(existing):
                logger.info("Disconnected %s", existing)
                result.type = ConnectionResultType.DISCONNECTED
            else:
                result.type = ConnectionResultType.ERROR
                result.error_message = "Failed to remove the connection"
            return result

        result.type = ConnectionResultType.ERROR
        result.error_message = f"Connection {connection} not found"
        return result

    async def describe_connections(self) -> str:
        """One line per active connection, for operators and debugging."""
        connections = await self.get_connections()
        if not connections:
            return "No connections"
        return "\n".join(str(connection) for connection in connections)

    # -- Lookup ----------------------------------------------------------------

    async def find_one(
        self,
        channel_id: str | None = None,
        conversation_id: str | None = None,
        account_id: str | None = None,
        bots_only: bool = False,
    ) -> Identity | None:
        """Find an identity by criteria across every collection.

        Searches registered users and bot instances first (bot instances
        only when *bots_only*), then pending requestors, then both sides of
        active connections. Returns the first match of the first tier that
        has one.
        """
        criteria = (channel_id, conversation_id, account_id, bots_only)

        registered = await self.get_bot_instances()
        if not bots_only:
            registered = await self.get_users() + registered
        found = find_by_criteria(registered, *criteria)

        if not found:
            requestors = [request.requestor for request in await self.get_requests()]
            found = find_by_criteria(requestors, *criteria)

        if not found:
            connected = [party for c in await self.get_connections() for party in c.parties]
            found = find_by_criteria(connected, *criteria)

        return found[0] if found else None
