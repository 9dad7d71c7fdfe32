"""Per-guild voice receiver: maps SSRCs to users and feeds ticks to a recorder."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from types import MappingProxyType

from astrobot.recorder import Recorder
from astrobot.voice import UserVoiceState, VoiceCommand, VoiceData, VoiceState

logger = logging.getLogger(__name__)

VOICE_QUEUE_SIZE = 50


class VoiceReceiver:
    """Receives voice events for one guild and drives that guild's recorder."""

    def __init__(self, guild_id, recorder: Recorder, voice_queue: asyncio.Queue) -> None:
        self.guild_id = guild_id
        self.recorder = recorder
        self._voice_queue = voice_queue
        self._known_ssrcs: dict[int, int] = {}
        self._tasks: list[asyncio.Task] = []
        self._recorder_task: asyncio.Task | None = None
        self._closed = False

    @classmethod
    async def create(cls, guild_id, cmd_queue: asyncio.Queue, base_dir="recordings") -> VoiceReceiver:
        """Build a receiver, start its recorder and listen for commands on ``cmd_queue``."""
        voice_queue: asyncio.Queue = asyncio.Queue(maxsize=VOICE_QUEUE_SIZE)
        recorder = Recorder(guild_id, Path(base_dir))
        receiver = cls(guild_id, recorder, voice_queue)
        receiver._recorder_task = asyncio.create_task(recorder.run(voice_queue))
        receiver._tasks.append(asyncio.create_task(receiver._command_loop(cmd_queue)))
        return receiver

    @property
    def known_ssrcs(self) -> Mapping[int, int]:
        """Read-only view of the SSRC to user id mapping."""
        return MappingProxyType(self._known_ssrcs)

    @property
    def closed(self) -> bool:
        return self._closed

    async def _command_loop(self, cmd_queue: asyncio.Queue) -> None:
        while (command := await cmd_queue.get()) is not None:
            await self.handle_command(command)

    async def handle_command(self, command: VoiceCommand) -> None:
        """Start or stop the recording."""
        if command is VoiceCommand.RECORD:
            logger.debug("[%s] Got START_RECORDING command!", self.guild_id)
            self.recorder.start()
        elif command is VoiceCommand.FINISH:
            logger.debug("[%s] Got STOP_RECORDING command!", self.guild_id)
            self.recorder.finish()
        else:
            raise ValueError(f"unknown voice command: {command!r}")

    def on_speaking_state_update(self, ssrc: int, user_id, speaking=None) -> None:
        """Remember which user sends on ``ssrc``; updates without a user are ignored."""
        if user_id is None:
            return
        previous = self._known_ssrcs.get(ssrc)
        self._known_ssrcs[ssrc] = user_id
        if previous is None:
            logger.debug(
                "[%s] Speaking state update: user %s has SSRC %s, using %r",
                self.guild_id, user_id, ssrc, speaking,
            )

    async def on_voice_tick(
        self, speaking: Mapping[int, Sequence[int]], silent: Iterable[int]
    ) -> VoiceData:
        """Turn one tick of decoded audio into ``VoiceData`` and queue it for the recorder."""
        data = VoiceData(rx_timestamp=time.monotonic())
        for ssrc, samples in speaking.items():
            user_id = self._known_ssrcs.get(ssrc)
            if user_id is None:
                logger.warning(
                    "[%s] Got a voice packet with an SSRC not mapped to a user ID: %s",
                    self.guild_id, ssrc,
                )
                continue
            if samples is None:
                raise ValueError(f"speaking SSRC {ssrc} carries no decoded audio")
            data.user_voice_states.append(UserVoiceState(user_id, VoiceState.speaking(samples)))
        for ssrc in silent:
            user_id = self._known_ssrcs.get(ssrc)
            if user_id is not None:
                data.user_voice_states.append(UserVoiceState(user_id, VoiceState.silent()))

        logger.debug("[%s] Sending VoiceData: %r", self.guild_id, data)
        if self._closed:
            logger.error("[%s] Failed to send VoiceData: receiver is closed", self.guild_id)
        else:
            await self._voice_queue.put(data)
        return data

    def on_client_disconnect(self, user_id) -> None:
        logger.info("[%s] Client disconnected: user %s", self.guild_id, user_id)

    async def close(self) -> None:
        """Stop listening, let the recorder drain its queue and finish any recording."""
        if self._closed:
            return
        self._closed = True
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        if self._recorder_task is not None:
            await self._voice_queue.put(None)
            await self._recorder_task
            self._recorder_task = None
        self.recorder.finish()

    async def __aenter__(self) -> VoiceReceiver:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()