"""Data passed between the voice receiver, the recorder and the commands."""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Iterable
from dataclasses import dataclass, field


@dataclass(frozen=True)
class VoiceState:
    """What a user did during one voice tick: spoke (with samples) or stayed silent."""

    samples: tuple[int, ...] | None = None

    @classmethod
    def speaking(cls, samples: Iterable[int]) -> VoiceState:
        return cls(tuple(samples))

    @classmethod
    def silent(cls) -> VoiceState:
        return cls()

    @property
    def is_speaking(self) -> bool:
        return self.samples is not None


@dataclass(frozen=True)
class UserVoiceState:
    """A user's voice state within one tick."""

    user_id: int
    voice_state: VoiceState


@dataclass
class VoiceData:
    """All user voice states received in one tick, stamped with a monotonic time."""

    rx_timestamp: float
    user_voice_states: list[UserVoiceState] = field(default_factory=list)


class VoiceCommand(enum.Enum):
    """Commands sent to a guild's voice receiver."""

    RECORD = "record"
    FINISH = "finish"


@dataclass
class DiscordData:
    """Shared bot state: the command queue of each guild's voice receiver."""

    voice_commands: dict[int, asyncio.Queue] = field(default_factory=dict)