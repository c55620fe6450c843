import logging
from typing import Optional

import discord
from discord import app_commands

from squadbot.config import settings
from squadbot.routes.interaction_routes import handle_component, register_commands
from squadbot.services.lobby_service import LobbyService

logger = logging.getLogger(__name__)


class SquadBot(discord.Client):
    """Discord gateway client; all session logic lives in the LobbyService."""

    def __init__(self, lobby: Optional[LobbyService] = None, sync_commands: bool = settings.SYNC_COMMANDS):
        intents = discord.Intents.none()
        intents.guilds = True
        intents.voice_states = True
        super().__init__(intents=intents)
        self.tree = app_commands.CommandTree(self)
        self.lobby = lobby
        self.sync_commands = sync_commands

    async def setup_hook(self):
        register_commands(self.tree, self.lobby)
        if self.sync_commands:
            logger.info("Started refreshing application (/) commands.")
            await self.tree.sync()
            logger.info("Successfully reloaded application (/) commands.")

    async def on_ready(self):
        logger.info(f"{self.user} is online, serving {len(self.guilds)} servers")

    async def on_interaction(self, interaction: discord.Interaction):
        if interaction.type == discord.InteractionType.component:
            await handle_component(interaction, self.lobby)

    async def on_voice_state_update(self, member: discord.Member, before: discord.VoiceState, after: discord.VoiceState):
        if before.channel is not None and before.channel != after.channel and len(before.channel.members) == 0:
            self.lobby.room_vacated(before.channel.id)
        if after.channel is not None:
            self.lobby.room_occupied(after.channel.id)

    async def on_error(self, event_method: str, *args, **kwargs):
        logger.exception(f"Error handling {event_method}")
