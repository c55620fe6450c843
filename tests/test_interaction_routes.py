"""Command and button handlers driven by stand-in interaction objects."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import discord

from squadbot.errors import CapacityError, NotFoundError
from squadbot.routes.interaction_routes import (
    format_error,
    gamemode_autocomplete,
    handle_component,
    handle_endlfg_command,
    handle_help_command,
    handle_lfg_command,
    parse_custom_id,
)
from squadbot.utils.embeds import build_session_view

from conftest import CHANNEL, GUILD, create_session


class FakeResponse:
    def __init__(self):
        self.done = False
        self.sent = []

    def is_done(self):
        return self.done

    async def defer(self, **kwargs):
        self.done = True

    async def send_message(self, **kwargs):
        self.done = True
        self.sent.append(kwargs)


class FakeFollowup:
    def __init__(self):
        self.sent = []

    async def send(self, content=None, **kwargs):
        self.sent.append(dict(kwargs, content=content))


class FakeChannel:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send(self, **kwargs):
        if self.fail:
            raise discord.HTTPException(SimpleNamespace(status=403, reason="Forbidden"), "Missing Access")
        self.sent.append(kwargs)
        return SimpleNamespace(id=777)


def make_interaction(user_id: int = 1, name: str = "alice", custom_id=None, channel=None, game=None):
    return SimpleNamespace(
        user=SimpleNamespace(id=user_id, name=name),
        guild_id=int(GUILD),
        channel_id=int(CHANNEL),
        channel=channel or FakeChannel(),
        data={"custom_id": custom_id} if custom_id else {},
        namespace=SimpleNamespace(game=game),
        response=FakeResponse(),
        followup=FakeFollowup(),
    )


def last_reply(interaction) -> str:
    return interaction.followup.sent[-1]["content"]


def test_parse_custom_id():
    assert parse_custom_id("join_abc123") == ("join", "abc123")
    assert parse_custom_id("leave_abc_123") == ("leave", "abc_123")
    assert parse_custom_id("join_") == (None, None)
    assert parse_custom_id("confirm_abc") == (None, None)
    assert parse_custom_id(None) == (None, None)


def test_format_error_uses_title_and_message():
    assert format_error(CapacityError("No room left.")) == "❌ **Session is full!**\n\nNo room left."
    assert format_error(NotFoundError("Nope.", title="Not in session!")).startswith("❌ **Not in session!**")


def test_lfg_command_posts_card_and_attaches_it(lobby):
    async def scenario():
        interaction = make_interaction()
        await handle_lfg_command(interaction, lobby, "valorant", "Competitive", 3, "no tilt")
        session = lobby.registry.get(lobby.registry.session_id_for_user("1"))
        assert session.message_id == "777"
        assert session.info == "no tilt"
        card = interaction.channel.sent[0]
        assert [item.custom_id for item in card["view"].children] == [f"join_{session.id}", f"leave_{session.id}"]
        assert "created!" in last_reply(interaction)
        assert interaction.followup.sent[-1]["ephemeral"] is True

    asyncio.run(scenario())


def test_lfg_command_releases_creator_when_card_cannot_be_posted(lobby, caplog):
    async def scenario():
        interaction = make_interaction(channel=FakeChannel(fail=True))
        await handle_lfg_command(interaction, lobby, "valorant", "Competitive", 3)
        assert len(lobby.registry) == 0
        assert lobby.registry.session_id_for_user("1") is None
        assert "LFG creation failed!" in last_reply(interaction)

    asyncio.run(scenario())
    assert "Error in handle_lfg_command" in caplog.text


def test_lfg_command_reports_validation_errors(lobby):
    async def scenario():
        interaction = make_interaction()
        await handle_lfg_command(interaction, lobby, "valorant", "Zero Build", 3)
        assert "Invalid request!" in last_reply(interaction)
        assert interaction.channel.sent == []

    asyncio.run(scenario())


def test_join_and_leave_buttons(lobby):
    async def scenario():
        session = await create_session(lobby)
        join = make_interaction(user_id=2, name="bob", custom_id=f"join_{session.id}")
        await handle_component(join, lobby)
        assert "Successfully joined the squad!" in last_reply(join)
        assert "👥 **Players:** 2/3" in last_reply(join)

        again = make_interaction(user_id=2, name="bob", custom_id=f"join_{session.id}")
        await handle_component(again, lobby)
        assert "Already in session!" in last_reply(again)

        leave = make_interaction(user_id=2, name="bob", custom_id=f"leave_{session.id}")
        await handle_component(leave, lobby)
        assert "Successfully left the squad!" in last_reply(leave)

        last = make_interaction(user_id=1, custom_id=f"leave_{session.id}")
        await handle_component(last, lobby)
        assert "automatically deleted" in last_reply(last)
        assert len(lobby.registry) == 0

    asyncio.run(scenario())


def test_unknown_component_is_ignored(lobby):
    async def scenario():
        interaction = make_interaction(custom_id="confirm_abc")
        await handle_component(interaction, lobby)
        assert interaction.response.done is False
        assert interaction.followup.sent == []

    asyncio.run(scenario())


def test_endlfg_by_non_creator(lobby):
    async def scenario():
        session = await create_session(lobby)
        await lobby.join_session(session.id, "2", "bob")
        interaction = make_interaction(user_id=2, name="bob")
        await handle_endlfg_command(interaction, lobby)
        assert "Access denied!" in last_reply(interaction)

        owner = make_interaction()
        await handle_endlfg_command(owner, lobby)
        assert "ended successfully" in last_reply(owner)
        assert len(lobby.registry) == 0

    asyncio.run(scenario())


def test_help_is_sent_privately():
    async def scenario():
        interaction = make_interaction()
        await handle_help_command(interaction)
        reply = interaction.response.sent[0]
        assert reply["ephemeral"] is True
        assert "Valorant" in reply["embed"].fields[3].value

    asyncio.run(scenario())


def test_gamemode_autocomplete():
    async def scenario():
        choices = await gamemode_autocomplete(make_interaction(game="valorant"), "comp")
        assert [(c.name, c.value) for c in choices] == [("Competitive", "Competitive")]
        assert await gamemode_autocomplete(make_interaction(), "comp") == []

    asyncio.run(scenario())


def test_session_view_has_no_timeout():
    async def scenario():
        view = build_session_view("abc")
        assert view.timeout is None
        assert [item.label for item in view.children] == ["Join Squad", "Leave Squad"]

    asyncio.run(scenario())
