"""
Slash commands and button routing.

Every handler is wrapped by `interaction_handler`: domain errors become a
private reply with the error's message, anything else is logged and answered
with a generic failure notice.
"""
import functools
import logging
from typing import List, Optional

import discord
from discord import app_commands

from squadbot.errors import SessionError
from squadbot.games import GAMES, match_modes
from squadbot.models import MAX_PLAYERS, MIN_PLAYERS
from squadbot.services.lobby_service import LobbyService
from squadbot.services.session_registry import Session
from squadbot.utils.embeds import build_help_embed, build_session_embed, build_session_view

logger = logging.getLogger(__name__)

GAME_CHOICES = [app_commands.Choice(name=game.display, value=key) for key, game in GAMES.items()]


def format_error(error: SessionError) -> str:
    return f"❌ **{error.title}**\n\n{error.message}"


def format_join_success(session: Session, headline: str) -> str:
    return (
        f"✅ **{headline}**\n\n"
        f"🎮 **Game:** {session.game_display}\n"
        f"🎯 **Mode:** {session.gamemode}\n"
        f"👥 **Players:** {len(session.current_players)}/{session.players_needed}\n"
        f"🆔 **Session:** #{session.short_code}"
    )


def parse_custom_id(custom_id: Optional[str]):
    """Splits `join_<id>` / `leave_<id>` into (action, session_id)."""
    action, _, session_id = (custom_id or "").partition("_")
    if action not in ("join", "leave") or not session_id:
        return None, None
    return action, session_id


async def send_private(interaction: discord.Interaction, content: Optional[str] = None, embed: Optional[discord.Embed] = None):
    kwargs = {"ephemeral": True}
    if content is not None:
        kwargs["content"] = content
    if embed is not None:
        kwargs["embed"] = embed
    try:
        if interaction.response.is_done():
            await interaction.followup.send(**kwargs)
        else:
            await interaction.response.send_message(**kwargs)
    except discord.HTTPException as e:
        logger.error(f"Error sending reply: {e}")


def interaction_handler(action: str):
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(interaction: discord.Interaction, *args, **kwargs):
            try:
                return await func(interaction, *args, **kwargs)
            except SessionError as e:
                logger.info(f"{func.__name__} rejected for {interaction.user}: {type(e).__name__}: {e.message}")
                await send_private(interaction, format_error(e))
            except Exception:
                logger.exception(f"Error in {func.__name__}")
                await send_private(interaction, f"❌ **{action} failed!**\n\nSomething went wrong. Please try again.")
        return wrapper
    return decorator


@interaction_handler("LFG creation")
async def handle_lfg_command(interaction: discord.Interaction, lobby: LobbyService, game: str, gamemode: str, players: int, info: Optional[str] = None):
    await interaction.response.defer(ephemeral=True, thinking=True)
    session = await lobby.create_session(
        creator_id=interaction.user.id,
        creator_name=interaction.user.name,
        guild_id=interaction.guild_id,
        channel_id=interaction.channel_id,
        game=game,
        gamemode=gamemode,
        players_needed=players,
        info=info,
    )

    try:
        card = await interaction.channel.send(embed=build_session_embed(session), view=build_session_view(session.id))
    except discord.HTTPException:
        # Without a card nobody can join; do not leave the creator locked in
        await lobby.expire_session(session.id)
        raise
    if await lobby.attach_message(session.id, card.id) is None:
        # Gone before the card existed
        await card.delete()
        return
    await interaction.followup.send(f"🚀 **LFG session #{session.short_code} created!** Waiting for players to join.", ephemeral=True)


@interaction_handler("Quick Join")
async def handle_quickjoin_command(interaction: discord.Interaction, lobby: LobbyService, game: str, gamemode: Optional[str] = None):
    await interaction.response.defer(ephemeral=True, thinking=True)
    session = await lobby.quick_join(
        game=game,
        guild_id=interaction.guild_id,
        user_id=interaction.user.id,
        username=interaction.user.name,
        preferred_gamemode=gamemode,
    )
    await interaction.followup.send(format_join_success(session, f"Successfully joined {session.game_display} session!"), ephemeral=True)


@interaction_handler("End session")
async def handle_endlfg_command(interaction: discord.Interaction, lobby: LobbyService):
    await interaction.response.defer(ephemeral=True, thinking=True)
    session = await lobby.terminate_session(interaction.user.id)
    await interaction.followup.send(
        f"✅ **LFG session ended successfully!**\n\nSession #{session.short_code} has been terminated and all resources cleaned up.",
        ephemeral=True,
    )


@interaction_handler("Help command")
async def handle_help_command(interaction: discord.Interaction):
    await send_private(interaction, embed=build_help_embed())


@interaction_handler("Join")
async def handle_join_button(interaction: discord.Interaction, lobby: LobbyService, session_id: str):
    await interaction.response.defer(ephemeral=True, thinking=True)
    session = await lobby.join_session(session_id, interaction.user.id, interaction.user.name)
    await interaction.followup.send(format_join_success(session, "Successfully joined the squad!"), ephemeral=True)


@interaction_handler("Leave")
async def handle_leave_button(interaction: discord.Interaction, lobby: LobbyService, session_id: str):
    await interaction.response.defer(ephemeral=True, thinking=True)
    outcome = await lobby.leave_session(session_id, interaction.user.id)
    if outcome.destroyed:
        content = "✅ **Left session successfully!**\n\nSession was empty and has been automatically deleted."
    else:
        content = f"✅ **Successfully left the squad!**\n\nYou've been removed from session #{outcome.session.short_code}."
    await interaction.followup.send(content, ephemeral=True)


async def handle_component(interaction: discord.Interaction, lobby: LobbyService):
    action, session_id = parse_custom_id((interaction.data or {}).get("custom_id"))
    if action == "join":
        await handle_join_button(interaction, lobby, session_id)
    elif action == "leave":
        await handle_leave_button(interaction, lobby, session_id)


async def gamemode_autocomplete(interaction: discord.Interaction, current: str) -> List[app_commands.Choice[str]]:
    game = getattr(interaction.namespace, "game", None)
    return [app_commands.Choice(name=mode, value=mode) for mode in match_modes(game, current)]


def register_commands(tree: app_commands.CommandTree, lobby: LobbyService):
    @tree.command(name="lfg", description="Create a Looking for Group session")
    @app_commands.guild_only()
    @app_commands.describe(
        game="Which game you want to play",
        gamemode="Game mode you want to play",
        players="How many players needed (including you)",
        info="Additional info about your session",
    )
    @app_commands.choices(game=GAME_CHOICES)
    @app_commands.autocomplete(gamemode=gamemode_autocomplete)
    async def lfg(
        interaction: discord.Interaction,
        game: app_commands.Choice[str],
        gamemode: str,
        players: app_commands.Range[int, MIN_PLAYERS, MAX_PLAYERS],
        info: Optional[str] = None,
    ):
        await handle_lfg_command(interaction, lobby, game.value, gamemode, players, info)

    @tree.command(name="quickjoin", description="Instantly join an available LFG session")
    @app_commands.guild_only()
    @app_commands.describe(game="Which game you want to join", gamemode="Preferred game mode")
    @app_commands.choices(game=GAME_CHOICES)
    @app_commands.autocomplete(gamemode=gamemode_autocomplete)
    async def quickjoin(interaction: discord.Interaction, game: app_commands.Choice[str], gamemode: Optional[str] = None):
        await handle_quickjoin_command(interaction, lobby, game.value, gamemode)

    @tree.command(name="endlfg", description="End your active LFG session")
    @app_commands.guild_only()
    async def endlfg(interaction: discord.Interaction):
        await handle_endlfg_command(interaction, lobby)

    @tree.command(name="help", description="Show bot commands and features")
    async def help_command(interaction: discord.Interaction):
        await handle_help_command(interaction)
