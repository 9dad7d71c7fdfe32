"""The ``leave`` command: disconnect from the guild's voice channel."""

from __future__ import annotations

import logging

from astrobot.commands.join import GUILD_CONTEXT, _guild_id, _respond

logger = logging.getLogger(__name__)

NAME = "leave"


async def run(ctx, cmd) -> None:
    """Handle the ``leave`` command."""
    guild_id = _guild_id(cmd)
    ctx.data.voice_commands.pop(guild_id, None)

    manager = ctx.voice
    call = manager.get(guild_id)
    if call is None:
        await _respond(cmd, "Not in a voice channel!")
        return

    channel_id = call.current_channel
    try:
        await manager.remove(guild_id)
    except Exception as exc:
        await _respond(cmd, f"Failed: {exc!r}")
        return

    ctx.data.voice_commands.pop(guild_id, None)
    ctx.set_presence(None, "online")
    try:
        await ctx.edit_nickname(guild_id, None)
    except Exception as exc:
        logger.warning("Failed to set nickname: %r", exc)

    await _respond(cmd, f"Left <#{channel_id}>")
    logger.info("Left channel %s of guild %s!", channel_id, guild_id)


def register() -> dict:
    """Application command definition for ``leave``."""
    return {
        "name": NAME,
        "description": "Leave a voice channel",
        "contexts": [GUILD_CONTEXT],
    }