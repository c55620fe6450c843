"""
Discord implementations of the provisioning gateway and the session presenter.
"""
import logging
from typing import Optional

import discord

from squadbot.errors import ProvisioningFailure
from squadbot.games import get_game
from squadbot.services.gateway import ProvisioningGateway, SessionPresenter
from squadbot.services.session_registry import Session
from squadbot.utils.embeds import build_session_embed, build_session_view

logger = logging.getLogger(__name__)


class DiscordProvisioningGateway(ProvisioningGateway):
    def __init__(self, client: discord.Client):
        self.client = client

    @staticmethod
    def _check_permissions(guild: discord.Guild):
        permissions = guild.me.guild_permissions
        if not permissions.manage_channels:
            raise ProvisioningFailure('Bot needs "Manage Channels" permission to create voice channels.')
        if not permissions.connect:
            raise ProvisioningFailure('Bot needs "Connect" permission for voice channel access.')

    async def provision_room(self, session: Session) -> str:
        guild = self.client.get_guild(int(session.guild_id))
        if guild is None:
            raise ProvisioningFailure(f"Server {session.guild_id} is not available")
        self._check_permissions(guild)

        game = get_game(session.game)
        category_name = game.category_name if game else f"{session.game}-LFG"
        try:
            category = discord.utils.find(lambda c: c.name.lower() == category_name.lower(), guild.categories)
            if category is None:
                category = await guild.create_category(category_name, reason="LFG Bot - Game category for organized sessions")

            overwrites = {guild.default_role: discord.PermissionOverwrite(connect=False, view_channel=False)}
            for player in session.current_players:
                target = guild.get_member(int(player.id)) or discord.Object(id=int(player.id), type=discord.Member)
                overwrites[target] = discord.PermissionOverwrite(connect=True, view_channel=True, speak=True)

            channel = await guild.create_voice_channel(
                name=f"🎮 {session.gamemode} #{session.short_code}",
                category=category,
                user_limit=session.players_needed,
                overwrites=overwrites,
                reason=f"LFG Bot - Voice channel for {session.gamemode} session",
            )
        except discord.HTTPException as e:
            raise ProvisioningFailure(f"Error creating voice channel: {e}") from e

        logger.info(f"Created voice channel: {channel.name} ({channel.id})")
        return str(channel.id)

    async def destroy_room(self, room_id: str) -> None:
        channel = self.client.get_channel(int(room_id))
        if channel is None:
            return
        try:
            await channel.delete(reason="LFG session ended")
        except discord.NotFound:
            return
        except discord.HTTPException as e:
            raise ProvisioningFailure(f"Error deleting voice channel: {e}") from e

    async def cleanup_empty_room(self, room_id: str) -> bool:
        channel = self.client.get_channel(int(room_id))
        if channel is None:
            return False
        if len(channel.members) > 0:
            return False

        category = channel.category
        logger.info(f"Deleting empty voice channel: {channel.name}")
        try:
            await channel.delete(reason="LFG Bot - Channel empty for 1 minute")
        except discord.NotFound:
            return True
        except discord.HTTPException as e:
            raise ProvisioningFailure(f"Error deleting voice channel: {e}") from e

        if category is not None and not [c for c in category.channels if c.id != channel.id]:
            logger.info(f"Deleting empty category: {category.name}")
            try:
                await category.delete(reason="LFG Bot - Category empty after channel cleanup")
            except discord.NotFound:
                pass
            except discord.HTTPException as e:
                logger.error(f"Error deleting empty category {category.name}: {e}")
        return True


class DiscordSessionPresenter(SessionPresenter):
    def __init__(self, client: discord.Client):
        self.client = client

    async def _get_channel(self, channel_id: str) -> Optional[discord.abc.Messageable]:
        channel = self.client.get_channel(int(channel_id))
        if channel is not None:
            return channel
        try:
            return await self.client.fetch_channel(int(channel_id))
        except discord.HTTPException as e:
            logger.warning(f"Channel {channel_id} is not reachable: {e}")
            return None

    async def _get_message(self, session: Session) -> Optional[discord.Message]:
        if not session.message_id:
            return None
        channel = await self._get_channel(session.channel_id)
        if channel is None:
            return None
        try:
            return await channel.fetch_message(int(session.message_id))
        except discord.HTTPException as e:
            logger.warning(f"Card for session #{session.short_code} is not reachable: {e}")
            return None

    async def refresh(self, session: Session) -> None:
        message = await self._get_message(session)
        if message is None:
            return
        try:
            # A full card keeps its buttons off
            view = build_session_view(session.id) if session.is_waiting else None
            await message.edit(embed=build_session_embed(session), view=view)
        except discord.HTTPException as e:
            logger.error(f"Error updating original LFG message: {e}")

    async def announce_room(self, session: Session) -> None:
        message = await self._get_message(session)
        if message is not None:
            try:
                # No buttons once the squad has its room
                await message.edit(embed=build_session_embed(session), view=None)
            except discord.HTTPException as e:
                logger.error(f"Error updating original LFG message: {e}")

        channel = await self._get_channel(session.channel_id)
        if channel is None:
            return
        mentions = " ".join(f"<@{player.id}>" for player in session.current_players)
        try:
            await channel.send(
                f"🎉 **Squad assembled!** {mentions}\n\n"
                f"🔊 Your private voice channel is ready: <#{session.voice_channel_id}>\n"
                "🎮 Have fun gaming together!"
            )
        except discord.HTTPException as e:
            logger.error(f"Error notifying squad for session #{session.short_code}: {e}")

    async def delete_message(self, session: Session) -> None:
        message = await self._get_message(session)
        if message is None:
            return
        try:
            await message.delete()
        except discord.NotFound:
            pass
        except discord.HTTPException as e:
            logger.error(f"Error deleting session message: {e}")
