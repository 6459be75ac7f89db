"""Routing registry — participants, connection requests and active connections."""

from relay.routing.clock import Clock, FixedClock, SystemClock
from relay.routing.errors import InvalidArgumentError, RoutingError
from relay.routing.memory_store import InMemoryRoutingDataStore
from relay.routing.models import (
    ChannelAccount,
    Connection,
    ConnectionRequest,
    Identity,
    same_participant,
)
from relay.routing.registry import RoutingRegistry, find_by_criteria
from relay.routing.results import (
    AbstractResult,
    ConnectionRequestResult,
    ConnectionRequestResultType,
    ConnectionResult,
    ConnectionResultType,
    ParticipantResult,
    ParticipantResultType,
)
from relay.routing.sqlite_store import SqliteRoutingDataStore
from relay.routing.store import RoutingDataStore, create_data_store

__all__ = [
    "AbstractResult",
    "ChannelAccount",
    "Clock",
    "Connection",
    "ConnectionRequest",
    "ConnectionRequestResult",
    "ConnectionRequestResultType",
    "ConnectionResult",
    "ConnectionResultType",
    "FixedClock",
    "Identity",
    "InMemoryRoutingDataStore",
    "InvalidArgumentError",
    "ParticipantResult",
    "ParticipantResultType",
    "RoutingDataStore",
    "RoutingError",
    "RoutingRegistry",
    "SqliteRoutingDataStore",
    "SystemClock",
    "create_data_store",
    "find_by_criteria",
    "same_participant",
]
