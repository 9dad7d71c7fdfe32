"""The ``join`` command: connect to a voice channel with a voice receiver attached.

Commands work against a small context interface supplied by the bot runtime:

* ``ctx.data`` is the shared :class:`~astrobot.voice.DiscordData`.
* ``ctx.voice`` is the voice manager. It has ``get(guild_id)``,
  ``get_or_insert(guild_id)``, ``await join(guild_id, channel_id)`` and
  ``await remove(guild_id)``. Removing a call closes the receivers attached
  to it.
* A call has ``add_global_event(event, receiver)`` and ``current_channel``.
* ``ctx.recordings_dir`` is where recordings are written.
* ``await ctx.guild_channels(guild_id)`` maps channel ids to channels. Each
  channel has ``kind`` and ``members()``, which returns member user ids.
* ``ctx.set_presence(activity, status)``,
  ``await ctx.edit_nickname(guild_id, nickname)`` and ``ctx.current_user_name``.

A command interaction has ``guild_id``, ``user_id``, ``options`` (option
values), ``name`` and ``await create_response(content, ephemeral=...)``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from astrobot.voice_handler import VoiceReceiver

logger = logging.getLogger(__name__)

NAME = "join"

GUILD_CONTEXT = 0
CHANNEL_OPTION = 7
VOICE_CHANNEL = 2

COMMAND_QUEUE_SIZE = 32
RECEIVER_EVENTS = ("speaking_state_update", "client_disconnect", "voice_tick")

NOT_IN_CHANNEL = "You are not in a voice channel, and did not provide one as an argument!"


async def _respond(cmd, content: str) -> None:
    """Send an ephemeral reply, logging rather than raising on failure."""
    try:
        await cmd.create_response(content, ephemeral=True)
    except Exception as exc:  # the reply is best effort
        logger.error("Error responding to the interaction: %r", exc)


def _guild_id(cmd):
    if cmd.guild_id is None:
        raise ValueError(f"command {cmd.name!r} used outside a guild")
    return cmd.guild_id


async def _resolve_channel(ctx, cmd, guild_id):
    """The channel given as an option, else the voice channel the caller is in."""
    if cmd.options:
        return cmd.options[0]
    return await get_member_channel(ctx, guild_id, cmd.user_id)


async def do_join(ctx, guild_id, channel_id) -> asyncio.Queue:
    """Join ``channel_id`` and return the guild's voice command queue.

    Raises ``RuntimeError`` when the call exists without a command queue or
    when joining fails.
    """
    logger.debug("Joining: %s @ %s", channel_id, guild_id)
    manager = ctx.voice

    # Receive events fire while joining, so handlers go in before the join.
    if manager.get(guild_id) is None:
        call = manager.get_or_insert(guild_id)
        cmd_queue: asyncio.Queue = asyncio.Queue(maxsize=COMMAND_QUEUE_SIZE)
        ctx.data.voice_commands[guild_id] = cmd_queue
        receiver = await VoiceReceiver.create(guild_id, cmd_queue, ctx.recordings_dir)
        for event in RECEIVER_EVENTS:
            call.add_global_event(event, receiver)
    else:
        cmd_queue = ctx.data.voice_commands.get(guild_id)
        if cmd_queue is None:
            message = "Failed to get command sender for existing call handler!"
            logger.error(message)
            raise RuntimeError(message)

    try:
        await manager.join(guild_id, channel_id)
    except Exception as exc:
        # The join failed, but the handlers on the call still have to go.
        with contextlib.suppress(Exception):
            await manager.remove(guild_id)
        raise RuntimeError(f"Failed to join voice channel: {exc!r}") from exc

    logger.info("Joined channel %s of guild %s!", channel_id, guild_id)
    return cmd_queue


async def get_member_channel(ctx, guild_id, user_id):
    """Return the voice channel ``user_id`` is in, or ``None``."""
    try:
        channels = await ctx.guild_channels(guild_id)
    except Exception as exc:
        logger.error("Failed to retrieve guild channels: %r", exc)
        return None

    for channel_id, channel in channels.items():
        if channel.kind != VOICE_CHANNEL:
            continue
        try:
            members = channel.members()
        except Exception as exc:
            logger.error("Failed to retrieve members from channel %s: %r", channel_id, exc)
            return None
        if user_id in members:
            return channel_id
    return None


async def run(ctx, cmd) -> None:
    """Handle the ``join`` command."""
    guild_id = _guild_id(cmd)
    channel_id = await _resolve_channel(ctx, cmd, guild_id)
    if channel_id is None:
        await _respond(cmd, NOT_IN_CHANNEL)
        return
    try:
        await do_join(ctx, guild_id, channel_id)
    except RuntimeError as exc:
        await _respond(cmd, str(exc))
    else:
        await _respond(cmd, f"Joined <#{channel_id}>")


def register() -> dict:
    """Application command definition for ``join``."""
    return {
        "name": NAME,
        "description": "Join a voice channel",
        "contexts": [GUILD_CONTEXT],
        "options": [
            {
                "type": CHANNEL_OPTION,
                "name": "channel",
                "description": "Voice channel to join",
                "channel_types": [VOICE_CHANNEL],
            }
        ],
    }