import discord

from squadbot.games import GAMES
from squadbot.services.session_registry import Session

BRAND_COLOR = 0x00ff88
FOOTER = "LFG Bot - Find your gaming squad!"


def build_session_embed(session: Session) -> discord.Embed:
    embed = discord.Embed(
        title=f"🎮 {session.game_display} - {session.gamemode}",
        color=BRAND_COLOR,
        timestamp=discord.utils.utcnow(),
    )
    embed.add_field(name="👥 Players", value=f"{len(session.current_players)}/{session.players_needed}", inline=True)
    embed.add_field(name="🎯 Status", value="🟢 Open" if session.is_waiting else "🔴 Full", inline=True)
    embed.add_field(name="⏱️ Session ID", value=f"#{session.short_code}", inline=True)
    if session.info:
        embed.add_field(name="📝 Additional Info", value=session.info, inline=False)
    if session.current_players:
        squad = "\n".join(
            f"{'👑' if index == 0 else '🎮'} <@{player.id}>"
            for index, player in enumerate(session.current_players)
        )
        embed.add_field(name="🏆 Current Squad", value=squad, inline=False)
    if session.voice_channel_id:
        embed.add_field(name="🔊 Voice Channel", value=f"<#{session.voice_channel_id}>", inline=True)
    embed.set_footer(text=FOOTER)
    return embed


def build_session_view(session_id: str) -> discord.ui.View:
    """Join/Leave buttons; clicks are routed by custom id, not by view callbacks."""
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(style=discord.ButtonStyle.success, label="Join Squad", emoji="🎮", custom_id=f"join_{session_id}"))
    view.add_item(discord.ui.Button(style=discord.ButtonStyle.secondary, label="Leave Squad", emoji="🚪", custom_id=f"leave_{session_id}"))
    return view


def build_help_embed() -> discord.Embed:
    embed = discord.Embed(
        title="🎮 LFG Bot - Help & Commands",
        description="**Find your gaming squad!**",
        color=BRAND_COLOR,
        timestamp=discord.utils.utcnow(),
    )
    embed.add_field(
        name="🎯 `/lfg`",
        value="Create a new Looking for Group session\n• Choose your game and mode\n• Set player count (2-10)\n• Add optional session info\n• Automatic voice channel creation",
        inline=False,
    )
    embed.add_field(
        name="⚡ `/quickjoin`",
        value="Instantly join available sessions\n• Select your preferred game\n• Optional gamemode preference\n• Joins the oldest open session",
        inline=False,
    )
    embed.add_field(
        name="🛑 `/endlfg`",
        value="End your active LFG session\n• Only session creators can use\n• Cleans up voice channels\n• Removes the session card",
        inline=False,
    )
    embed.add_field(name="🎮 Supported Games", value=" • ".join(game.display for game in GAMES.values()), inline=False)
    embed.add_field(
        name="🔧 How It Works",
        value="1️⃣ Create/join a session\n2️⃣ Wait for players to join\n3️⃣ Voice channel auto-created when full\n4️⃣ Game together in your private channel\n5️⃣ Channels auto-cleanup when empty",
        inline=False,
    )
    embed.set_footer(text=FOOTER)
    return embed
