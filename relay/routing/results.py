"""Typed outcomes returned by the routing registry's mutating operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from relay.routing.models import Connection, ConnectionRequest, Identity


class ParticipantResultType(StrEnum):
    REMOVED = "removed"
    ERROR = "error"


class ConnectionRequestResultType(StrEnum):
    """Outcome of a connection request operation.

    - ``OK``: request stored,
    - ``ALREADY_REQUESTED``: a request for the requestor is already pending,
    - ``NOT_SETUP``: no aggregation endpoint exists, nobody can accept it,
    - ``REJECTED``: the request was withdrawn or rejected and is gone,
    - ``ERROR``: see ``error_message``.

    Accepted requests are reported through :class:`ConnectionResult`.
    """

    OK = "ok"
    ALREADY_REQUESTED = "already_requested"
    NOT_SETUP = "not_setup"
    REJECTED = "rejected"
    ERROR = "error"


class ConnectionResultType(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass
class AbstractResult:
    """Common base: an outcome code plus a diagnostic message on failure."""

    error_message: str = ""

    @property
    def succeeded(self) -> bool:
        return getattr(self, "type", None) != "error"

    def to_dict(self) -> dict[str, Any]:
        return {"type": str(getattr(self, "type", "")), "error_message": self.error_message}


@dataclass
class ParticipantResult(AbstractResult):
    """Outcome of removing a registered user or bot instance."""

    type: ParticipantResultType = ParticipantResultType.REMOVED
    participant: Identity | None = None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["participant"] = self.participant.model_dump() if self.participant else None
        return data


@dataclass
class ConnectionRequestResult(AbstractResult):
    type: ConnectionRequestResultType = ConnectionRequestResultType.ERROR
    connection_request: ConnectionRequest | None = None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        request = self.connection_request
        data["connection_request"] = request.to_dict() if request else None
        return data


@dataclass
class ConnectionResult(AbstractResult):
    """Outcome of connecting or disconnecting.

    ``connection_request`` is set on ``CONNECTED`` when the accepted
    request was found and consumed.
    """

    type: ConnectionResultType = ConnectionResultType.ERROR
    connection: Connection | None = None
    connection_request: ConnectionRequest | None = None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["connection"] = self.connection.to_dict() if self.connection else None
        request = self.connection_request
        data["connection_request"] = request.to_dict() if request else None
        return data
