"""The ``record`` command: start recording, joining a channel first if asked to."""

from __future__ import annotations

import asyncio
import logging

from astrobot.commands.join import (
    CHANNEL_OPTION,
    GUILD_CONTEXT,
    NOT_IN_CHANNEL,
    VOICE_CHANNEL,
    _guild_id,
    _resolve_channel,
    _respond,
    do_join,
)
from astrobot.voice import VoiceCommand

logger = logging.getLogger(__name__)

NAME = "record"
RECORDING_ACTIVITY = "Recording..."
RECORDING_MARK = "\N{LARGE RED CIRCLE}"


async def do_record(ctx, guild_id, cmd_queue: asyncio.Queue) -> None:
    """Tell the guild's receiver to record and show it in presence and nickname."""
    await cmd_queue.put(VoiceCommand.RECORD)
    ctx.set_presence(RECORDING_ACTIVITY, "dnd")
    try:
        await ctx.edit_nickname(guild_id, f"{RECORDING_MARK} {ctx.current_user_name}")
    except Exception as exc:
        logger.warning("Failed to set nickname: %r", exc)
    logger.info("Started recording in guild %s!", guild_id)


async def _join_and_record(ctx, cmd, guild_id, channel_id) -> None:
    try:
        cmd_queue = await do_join(ctx, guild_id, channel_id)
    except RuntimeError as exc:
        await _respond(cmd, str(exc))
        return
    await do_record(ctx, guild_id, cmd_queue)
    await _respond(cmd, f"Joined <#{channel_id}> and began recording!")


async def run(ctx, cmd) -> None:
    """Handle the ``record`` command."""
    guild_id = _guild_id(cmd)
    channel_id = await _resolve_channel(ctx, cmd, guild_id)
    has_call = ctx.voice.get(guild_id) is not None

    if channel_id is not None:
        await _join_and_record(ctx, cmd, guild_id, channel_id)
    elif has_call:
        cmd_queue = ctx.data.voice_commands.get(guild_id)
        if cmd_queue is None:
            await _respond(cmd, "Failed to get VoiceCommand Sender!")
            return
        await do_record(ctx, guild_id, cmd_queue)
        await _respond(cmd, "Began recording!")
    else:
        await _respond(cmd, NOT_IN_CHANNEL)


def register() -> dict:
    """Application command definition for ``record``."""
    return {
        "name": NAME,
        "description": "Being recording current voice channel",
        "contexts": [GUILD_CONTEXT],
        "options": [
            {
                "type": CHANNEL_OPTION,
                "name": "channel",
                "description": "Voice channel to record",
                "channel_types": [VOICE_CHANNEL],
            }
        ],
    }