"""The ``finish`` command: stop the guild's current recording."""

from __future__ import annotations

import logging

from astrobot.commands.join import GUILD_CONTEXT, _guild_id, _respond
from astrobot.voice import VoiceCommand

logger = logging.getLogger(__name__)

NAME = "finish"


async def run(ctx, cmd) -> None:
    """Handle the ``finish`` command."""
    guild_id = _guild_id(cmd)

    if ctx.voice.get(guild_id) is None:
        await _respond(cmd, "Not in a voice channel!")
        return

    cmd_queue = ctx.data.voice_commands.get(guild_id)
    if cmd_queue is None:
        await _respond(cmd, "Failed to get VoiceCommand!")
        return

    await cmd_queue.put(VoiceCommand.FINISH)
    ctx.set_presence(None, "online")
    try:
        await ctx.edit_nickname(guild_id, None)
    except Exception as exc:
        logger.warning("Failed to set nickname: %r", exc)

    await _respond(cmd, "Recording stopped!")
    logger.info("Finished recording in guild %s!", guild_id)


def register() -> dict:
    """Application command definition for ``finish``."""
    return {
        "name": NAME,
        "description": "Stop recording current voice channel",
        "contexts": [GUILD_CONTEXT],
    }