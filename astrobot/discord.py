"""Gateway event handling: command registration and interaction dispatch."""

from __future__ import annotations

import logging

from astrobot.commands import finish, join, leave, record

logger = logging.getLogger(__name__)

APPLICATION_COMMAND = 2

_HANDLERS = {
    join.NAME: join.run,
    leave.NAME: leave.run,
    record.NAME: record.run,
    finish.NAME: finish.run,
}


def global_commands() -> list[dict]:
    """Definitions of every command the bot registers globally."""
    return [join.register(), leave.register(), record.register(), finish.register()]


class Events:
    """Handles the bot's gateway events."""

    async def ready(self, ctx, user_name: str) -> None:
        """Register the global commands once connected; failures propagate."""
        logger.info("%s is connected!", user_name)
        await ctx.set_global_commands(global_commands())

    async def interaction_create(self, ctx, interaction) -> bool:
        """Run the command named by ``interaction``; return whether one ran."""
        if interaction.type != APPLICATION_COMMAND:
            return False
        handler = _HANDLERS.get(interaction.name)
        if handler is None:
            return False
        await handler(ctx, interaction)
        return True