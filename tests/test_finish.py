import asyncio
from dataclasses import dataclass, field

import pytest

from astrobot.commands import finish
from astrobot.voice import DiscordData, VoiceCommand


class FakeVoice:
    def __init__(self):
        self.calls = {}

    def get(self, guild_id):
        return self.calls.get(guild_id)


class FakeContext:
    def __init__(self):
        self.data = DiscordData()
        self.voice = FakeVoice()
        self.presence = []
        self.nicknames = []

    def set_presence(self, activity, status):
        self.presence.append((activity, status))

    async def edit_nickname(self, guild_id, nickname):
        self.nicknames.append((guild_id, nickname))


@dataclass
class FakeCommand:
    guild_id: int | None
    user_id: int = 7
    options: list = field(default_factory=list)
    name: str = "finish"
    responses: list = field(default_factory=list)

    async def create_response(self, content, ephemeral=False):
        self.responses.append((content, ephemeral))


def test_register():
    spec = finish.register()
    assert spec["name"] == "finish"
    assert spec["description"] == "Stop recording current voice channel"


@pytest.mark.asyncio
async def test_finish_without_call():
    ctx = FakeContext()
    cmd = FakeCommand(guild_id=100)
    await finish.run(ctx, cmd)
    assert cmd.responses == [("Not in a voice channel!", True)]


@pytest.mark.asyncio
async def test_finish_without_queue():
    ctx = FakeContext()
    ctx.voice.calls[100] = object()
    cmd = FakeCommand(guild_id=100)
    await finish.run(ctx, cmd)
    assert cmd.responses == [("Failed to get VoiceCommand!", True)]
    assert ctx.presence == []


@pytest.mark.asyncio
async def test_finish_sends_command():
    ctx = FakeContext()
    ctx.voice.calls[100] = object()
    queue = asyncio.Queue()
    ctx.data.voice_commands[100] = queue
    cmd = FakeCommand(guild_id=100)
    await finish.run(ctx, cmd)
    assert cmd.responses == [("Recording stopped!", True)]
    assert queue.get_nowait() is VoiceCommand.FINISH
    assert ctx.presence == [(None, "online")]
    assert ctx.nicknames == [(100, None)]


@pytest.mark.asyncio
async def test_finish_outside_guild():
    with pytest.raises(ValueError):
        await finish.run(FakeContext(), FakeCommand(guild_id=None))