"""Tests for RoutingRegistry participant registration, removal and aggregation endpoints."""

import pytest

from relay.routing.errors import InvalidArgumentError
from relay.routing.models import ChannelAccount, Connection, ConnectionRequest, Identity
from relay.routing.registry import RoutingRegistry
from relay.routing.results import (
    ConnectionRequestResult,
    ConnectionRequestResultType,
    ConnectionResult,
    ConnectionResultType,
    ParticipantResult,
    ParticipantResultType,
)

USER = Identity(channel_id="web", conversation_id="c1", user=ChannelAccount(id="u1", name="Ursula"))
AGENT = Identity(channel_id="web", conversation_id="c1", bot=ChannelAccount(id="agent1", name="Relay"))
ENDPOINT = Identity(channel_id="web", conversation_id="operators", service_url="https://relay.example")


# -- register_participant ------------------------------------------------------


async def test_register_user_then_duplicate(registry: RoutingRegistry) -> None:
    assert await registry.register_participant(USER) is True
    assert await registry.register_participant(USER) is False
    assert await registry.get_users() == [USER]


async def test_register_bot_goes_to_bot_instances(registry: RoutingRegistry) -> None:
    assert await registry.register_participant(AGENT) is True
    assert await registry.get_bot_instances() == [AGENT]
    assert await registry.get_users() == []


async def test_register_duplicate_detected_across_channels(registry: RoutingRegistry) -> None:
    await registry.register_participant(USER)
    same_account_elsewhere = Identity(channel_id="sms", conversation_id="c7", user=ChannelAccount(id="u1"))
    assert await registry.register_participant(same_account_elsewhere) is False


async def test_register_without_account_raises(registry: RoutingRegistry) -> None:
    with pytest.raises(InvalidArgumentError, match="user or a bot account"):
        await registry.register_participant(Identity(channel_id="web", conversation_id="c1"))
    assert await registry.get_users() == []


async def test_register_store_refusal_returns_false(registry: RoutingRegistry, monkeypatch) -> None:
    async def refuse(identity: Identity) -> bool:
        return False

    monkeypatch.setattr(registry.store, "add_user_or_bot", refuse)
    assert await registry.register_participant(USER) is False


# -- remove_participant --------------------------------------------------------


async def test_register_remove_remove(registry: RoutingRegistry) -> None:
    await registry.register_participant(USER)

    first = await registry.remove_participant(USER)
    assert len(first) == 1
    assert isinstance(first[0], ParticipantResult)
    assert first[0].type == ParticipantResultType.REMOVED
    assert first[0].participant == USER

    second = await registry.remove_participant(USER)
    assert len(second) == 1
    assert second[0].type == ParticipantResultType.ERROR
    assert "not found" in second[0].error_message
    assert second[0].succeeded is False


async def test_remove_cascades_request_and_connection(registry: RoutingRegistry) -> None:
    other = Identity(channel_id="web", conversation_id="c2", user=ChannelAccount(id="u1"))
    # Pending request under one conversation, active connection under another.
    await registry.submit_request(USER)
    await registry.store.add_connection(Connection(other, AGENT))

    results = await registry.remove_participant(USER)

    assert len(results) == 2
    assert isinstance(results[0], ConnectionRequestResult)
    assert results[0].type == ConnectionRequestResultType.REJECTED
    assert isinstance(results[1], ConnectionResult)
    assert results[1].type == ConnectionResultType.DISCONNECTED
    assert await registry.get_requests() == []
    assert await registry.get_connections() == []
    assert await registry.is_connected(AGENT) is False


async def test_remove_registered_connected_participant_reports_all(registry: RoutingRegistry) -> None:
    await registry.register_participant(USER)
    await registry.submit_request(USER)
    await registry.accept_request(Connection(USER, AGENT), USER)

    results = await registry.remove_participant(USER)

    assert [r.type for r in results] == [
        ParticipantResultType.REMOVED,
        ConnectionResultType.DISCONNECTED,
    ]


async def test_remove_sweeps_every_duplicate(registry: RoutingRegistry) -> None:
    # Duplicates can only be planted below the registry.
    for conversation in ("c1", "c2", "c3"):
        identity = Identity(channel_id="web", conversation_id=conversation, user=ChannelAccount(id="u1"))
        await registry.store.add_connection(Connection(identity, AGENT))
    await registry.submit_request(USER)
    await registry.store.add_pending_request(ConnectionRequest(requestor=USER))

    results = await registry.remove_participant(USER)

    rejected = [r for r in results if r.type == ConnectionRequestResultType.REJECTED]
    disconnected = [r for r in results if r.type == ConnectionResultType.DISCONNECTED]
    assert len(rejected) == 2
    assert len(disconnected) == 3
    assert await registry.get_requests() == []
    assert await registry.get_connections() == []


async def test_remove_continues_past_failed_connection(registry: RoutingRegistry, monkeypatch) -> None:
    stuck_agent = Identity(channel_id="web", conversation_id="c1", bot=ChannelAccount(id="a1"))
    free_agent = Identity(channel_id="web", conversation_id="c2", bot=ChannelAccount(id="a2"))
    other_chat = Identity(channel_id="web", conversation_id="c2", user=ChannelAccount(id="u1"))
    await registry.store.add_connection(Connection(USER, stuck_agent))
    await registry.store.add_connection(Connection(other_chat, free_agent))
    original = registry.store.remove_connection

    async def fail_for_stuck_agent(connection: Connection) -> bool:
        if connection.party_b.bot.id == "a1":
            return False
        return await original(connection)

    monkeypatch.setattr(registry.store, "remove_connection", fail_for_stuck_agent)
    results = await registry.remove_participant(USER)

    assert [r.type for r in results] == [
        ConnectionResultType.ERROR,
        ConnectionResultType.DISCONNECTED,
    ]
    assert results[0].error_message == "Failed to remove the connection"
    remaining = await registry.get_connections()
    assert len(remaining) == 1
    assert remaining[0].party_b == stuck_agent


async def test_remove_reports_failed_request_once_and_keeps_sweeping(
    registry: RoutingRegistry, monkeypatch
) -> None:
    await registry.submit_request(USER)
    await registry.store.add_connection(Connection(USER, AGENT))

    async def fail(request: ConnectionRequest) -> bool:
        return False

    monkeypatch.setattr(registry.store, "remove_pending_request", fail)
    results = await registry.remove_participant(USER)

    assert [r.type for r in results] == [
        ConnectionRequestResultType.ERROR,
        ConnectionResultType.DISCONNECTED,
    ]
    assert len(await registry.get_requests()) == 1
    assert await registry.get_connections() == []


async def test_remove_leaves_other_participants(registry: RoutingRegistry) -> None:
    bystander = Identity(channel_id="web", conversation_id="c5", user=ChannelAccount(id="u5"))
    await registry.register_participant(USER)
    await registry.register_participant(bystander)
    await registry.submit_request(bystander)

    await registry.remove_participant(USER)

    assert await registry.get_users() == [bystander]
    assert await registry.find_request(bystander) is not None


# -- resolve_bot_name_in_conversation ------------------------------------------


async def test_resolve_bot_name(registry: RoutingRegistry) -> None:
    await registry.register_participant(AGENT)
    assert await registry.resolve_bot_name_in_conversation(USER) == "Relay"


async def test_resolve_bot_name_other_conversation(registry: RoutingRegistry) -> None:
    await registry.register_participant(AGENT)
    elsewhere = Identity(channel_id="web", conversation_id="c9", user=ChannelAccount(id="u1"))
    assert await registry.resolve_bot_name_in_conversation(elsewhere) is None


async def test_resolve_bot_name_ignores_users(registry: RoutingRegistry) -> None:
    await registry.register_participant(USER)
    assert await registry.resolve_bot_name_in_conversation(USER) is None


async def test_resolve_bot_name_without_conversation(registry: RoutingRegistry) -> None:
    assert await registry.resolve_bot_name_in_conversation(Identity()) is None


# -- Aggregation endpoints -----------------------------------------------------


async def test_add_aggregation_endpoint(registry: RoutingRegistry) -> None:
    assert await registry.add_aggregation_endpoint(ENDPOINT) is True
    assert await registry.add_aggregation_endpoint(ENDPOINT) is False
    assert await registry.get_aggregation_endpoints() == [ENDPOINT]


@pytest.mark.parametrize("identity", [USER, AGENT])
async def test_add_aggregation_endpoint_with_account_raises(
    registry: RoutingRegistry, identity: Identity
) -> None:
    with pytest.raises(InvalidArgumentError, match="cannot carry"):
        await registry.add_aggregation_endpoint(identity)


async def test_remove_aggregation_endpoint(registry: RoutingRegistry) -> None:
    await registry.add_aggregation_endpoint(ENDPOINT)
    assert await registry.remove_aggregation_endpoint(ENDPOINT) is True
    assert await registry.remove_aggregation_endpoint(ENDPOINT) is False


async def test_is_aggregation_endpoint_matches_conversation(registry: RoutingRegistry) -> None:
    await registry.add_aggregation_endpoint(ENDPOINT)
    operator = Identity(
        channel_id="web",
        conversation_id="operators",
        service_url="https://relay.example",
        user=ChannelAccount(id="op1"),
    )
    assert await registry.is_aggregation_endpoint(operator) is True


@pytest.mark.parametrize(
    "field",
    [{"channel_id": "sms"}, {"conversation_id": "c1"}, {"service_url": "https://other.example"}],
)
async def test_is_aggregation_endpoint_needs_all_three(registry: RoutingRegistry, field: dict) -> None:
    await registry.add_aggregation_endpoint(ENDPOINT)
    assert await registry.is_aggregation_endpoint(ENDPOINT.model_copy(update=field)) is False


async def test_is_aggregation_endpoint_empty(registry: RoutingRegistry) -> None:
    assert await registry.is_aggregation_endpoint(ENDPOINT) is False
