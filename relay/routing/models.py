"""Routing data model — participant identities, requests and connections."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ChannelAccount(BaseModel):
    """A user or bot account on a channel."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""


class Identity(BaseModel):
    """One addressable conversation endpoint.

    A participant carries either a ``user`` or a ``bot`` account. An
    aggregation endpoint carries neither and is addressed by its
    channel, conversation and service URL alone.

    Structural equality (``==``) compares every field. Use
    :func:`same_participant` to decide whether two identities belong to
    the same participant.
    """

    model_config = ConfigDict(frozen=True)

    channel_id: str = ""
    conversation_id: str = ""
    service_url: str = ""
    user: ChannelAccount | None = None
    bot: ChannelAccount | None = None

    @property
    def is_bot(self) -> bool:
        return self.bot is not None

    @property
    def channel_account(self) -> ChannelAccount | None:
        """The user account if set, otherwise the bot account."""
        if self.user is not None:
            return self.user
        return self.bot

    @property
    def account_id(self) -> str | None:
        account = self.channel_account
        return account.id if account else None

    @property
    def has_account(self) -> bool:
        return self.user is not None or self.bot is not None

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> Identity:
        return cls.model_validate_json(raw)

    def __str__(self) -> str:
        if self.user is not None:
            who = f"user:{self.user.id}"
        elif self.bot is not None:
            who = f"bot:{self.bot.id}"
        else:
            who = "conversation"
        return f"{self.channel_id}/{self.conversation_id} ({who})"


def same_participant(first: Identity | None, second: Identity | None) -> bool:
    """Return True if both identities belong to the same participant.

    Two bot identities match on bot id, two user identities match on user
    id. Channel, conversation and service URL are not compared, so the same
    account id seen on two channels counts as one participant.
    """
    if first is None or second is None:
        return False
    if first.bot is not None and second.bot is not None:
        return first.bot.id == second.bot.id
    if first.user is not None and second.user is not None:
        return first.user.id == second.user.id
    return False


def _parse_time(raw: str | None) -> datetime:
    if not raw:
        msg = "Stored routing record has no timestamp"
        raise ValueError(msg)
    return datetime.fromisoformat(raw)


def _format_time(value: datetime | None) -> str:
    if value is None:
        msg = "Routing record has not been stamped with a time"
        raise ValueError(msg)
    return value.isoformat()


@dataclass(eq=False)
class ConnectionRequest:
    """A pending ask from a participant to be paired with an operator.

    Attributes:
        requestor: The participant asking for a human.
        request_time: When the request was submitted. Set by the registry
            from its clock; None until then.
    """

    requestor: Identity
    request_time: datetime | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConnectionRequest):
            return NotImplemented
        return same_participant(self.requestor, other.requestor)

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``connection_requests`` column order."""
        return (self.requestor.to_json(), _format_time(self.request_time))

    @classmethod
    def from_row(cls, row: tuple) -> ConnectionRequest:
        return cls(requestor=Identity.from_json(row[0]), request_time=_parse_time(row[1]))

    def to_dict(self) -> dict:
        return {
            "requestor": self.requestor.model_dump(),
            "request_time": self.request_time.isoformat() if self.request_time else None,
        }


@dataclass(eq=False)
class Connection:
    """An active pairing of two participants.

    Equality is symmetric: ``Connection(a, b) == Connection(b, a)`` when the
    parties match under :func:`same_participant`.
    """

    party_a: Identity
    party_b: Identity
    last_activity_time: datetime | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Connection):
            return NotImplemented
        return (
            same_participant(self.party_a, other.party_a)
            and same_participant(self.party_b, other.party_b)
        ) or (
            same_participant(self.party_a, other.party_b)
            and same_participant(self.party_b, other.party_a)
        )

    @property
    def parties(self) -> tuple[Identity, Identity]:
        return (self.party_a, self.party_b)

    def involves(self, identity: Identity) -> bool:
        """True if either side of the connection matches *identity*."""
        return same_participant(identity, self.party_a) or same_participant(
            identity, self.party_b
        )

    def counterpart_of(self, identity: Identity) -> Identity | None:
        """Return the side opposite *identity*, or None if not involved."""
        if same_participant(identity, self.party_a):
            return self.party_b
        if same_participant(identity, self.party_b):
            return self.party_a
        return None

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``connections`` column order."""
        return (
            self.party_a.to_json(),
            self.party_b.to_json(),
            _format_time(self.last_activity_time),
        )

    @classmethod
    def from_row(cls, row: tuple) -> Connection:
        return cls(
            party_a=Identity.from_json(row[0]),
            party_b=Identity.from_json(row[1]),
            last_activity_time=_parse_time(row[2]),
        )

    def to_dict(self) -> dict:
        return {
            "party_a": self.party_a.model_dump(),
            "party_b": self.party_b.model_dump(),
            "last_activity_time": (
                self.last_activity_time.isoformat() if self.last_activity_time else None
            ),
        }

    def __str__(self) -> str:
        last = self.last_activity_time.isoformat() if self.last_activity_time else "never"
        return f"{self.party_a} <-> {self.party_b} (last activity {last})"
