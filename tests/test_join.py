import asyncio
from dataclasses import dataclass, field

import pytest

from astrobot.commands import join
from astrobot.voice import DiscordData
from astrobot.voice_handler import VoiceReceiver


class FakeCall:
    def __init__(self, channel=None):
        self.events = []
        self.current_channel = channel

    def add_global_event(self, event, handler):
        self.events.append((event, handler))


class FakeVoice:
    def __init__(self, fail_join=False):
        self.calls = {}
        self.fail_join = fail_join
        self.removed = []

    def get(self, guild_id):
        return self.calls.get(guild_id)

    def get_or_insert(self, guild_id):
        return self.calls.setdefault(guild_id, FakeCall())

    async def join(self, guild_id, channel_id):
        if self.fail_join:
            raise ConnectionError("timeout")
        self.get_or_insert(guild_id).current_channel = channel_id

    async def remove(self, guild_id):
        call = self.calls.pop(guild_id)
        self.removed.append(guild_id)
        for _, handler in call.events:
            await handler.close()


@dataclass
class FakeChannel:
    kind: int
    member_ids: list
    error: Exception | None = None

    def members(self):
        if self.error is not None:
            raise self.error
        return self.member_ids


class FakeContext:
    def __init__(self, tmp_path, channels=None, voice=None):
        self.data = DiscordData()
        self.voice = voice or FakeVoice()
        self.recordings_dir = tmp_path
        self.channels = channels or {}
        self.channel_error = None
        self.current_user_name = "Astro"

    async def guild_channels(self, guild_id):
        if self.channel_error is not None:
            raise self.channel_error
        return self.channels


@dataclass
class FakeCommand:
    guild_id: int | None
    user_id: int
    options: list = field(default_factory=list)
    name: str = "join"
    responses: list = field(default_factory=list)

    async def create_response(self, content, ephemeral=False):
        self.responses.append((content, ephemeral))


async def _shutdown(ctx):
    for guild_id in list(ctx.voice.calls):
        await ctx.voice.remove(guild_id)


def test_register_describes_channel_option():
    spec = join.register()
    assert spec["name"] == "join"
    assert spec["description"] == "Join a voice channel"
    option = spec["options"][0]
    assert option["name"] == "channel"
    assert option["type"] == join.CHANNEL_OPTION
    assert option["channel_types"] == [join.VOICE_CHANNEL]


@pytest.mark.asyncio
async def test_get_member_channel_finds_voice_channel(tmp_path):
    ctx = FakeContext(
        tmp_path,
        channels={
            1: FakeChannel(kind=0, member_ids=[7]),
            2: FakeChannel(kind=join.VOICE_CHANNEL, member_ids=[3]),
            4: FakeChannel(kind=join.VOICE_CHANNEL, member_ids=[7, 8]),
        },
    )
    assert await join.get_member_channel(ctx, 100, 7) == 4
    assert await join.get_member_channel(ctx, 100, 99) is None


@pytest.mark.asyncio
async def test_get_member_channel_handles_errors(tmp_path):
    ctx = FakeContext(tmp_path)
    ctx.channel_error = ConnectionError("down")
    assert await join.get_member_channel(ctx, 100, 7) is None

    ctx = FakeContext(
        tmp_path,
        channels={2: FakeChannel(kind=join.VOICE_CHANNEL, member_ids=[7], error=KeyError(2))},
    )
    assert await join.get_member_channel(ctx, 100, 7) is None


@pytest.mark.asyncio
async def test_do_join_installs_receiver_and_queue(tmp_path):
    ctx = FakeContext(tmp_path)
    queue = await join.do_join(ctx, 100, 10)
    try:
        assert ctx.data.voice_commands[100] is queue
        call = ctx.voice.calls[100]
        assert call.current_channel == 10
        assert [event for event, _ in call.events] == list(join.RECEIVER_EVENTS)
        receivers = {id(handler) for _, handler in call.events}
        assert len(receivers) == 1
        receiver = call.events[0][1]
        assert isinstance(receiver, VoiceReceiver)
        assert receiver.guild_id == 100
        assert receiver.recorder.base_dir == tmp_path

        again = await join.do_join(ctx, 100, 11)
        assert again is queue
        assert len(call.events) == 3
        assert call.current_channel == 11
    finally:
        await _shutdown(ctx)


@pytest.mark.asyncio
async def test_do_join_existing_call_without_queue(tmp_path):
    ctx = FakeContext(tmp_path)
    ctx.voice.calls[100] = FakeCall()
    with pytest.raises(RuntimeError, match="Failed to get command sender"):
        await join.do_join(ctx, 100, 10)


@pytest.mark.asyncio
async def test_do_join_failure_removes_call(tmp_path):
    ctx = FakeContext(tmp_path, voice=FakeVoice(fail_join=True))
    with pytest.raises(RuntimeError, match="^Failed to join voice channel: "):
        await join.do_join(ctx, 100, 10)
    assert ctx.voice.removed == [100]
    assert ctx.voice.get(100) is None


@pytest.mark.asyncio
async def test_run_joins_given_channel(tmp_path):
    ctx = FakeContext(tmp_path)
    cmd = FakeCommand(guild_id=100, user_id=7, options=[123])
    await join.run(ctx, cmd)
    try:
        assert cmd.responses == [("Joined <#123>", True)]
    finally:
        await _shutdown(ctx)


@pytest.mark.asyncio
async def test_run_joins_callers_channel(tmp_path):
    ctx = FakeContext(tmp_path, channels={10: FakeChannel(kind=join.VOICE_CHANNEL, member_ids=[7])})
    cmd = FakeCommand(guild_id=100, user_id=7)
    await join.run(ctx, cmd)
    try:
        assert cmd.responses == [("Joined <#10>", True)]
        assert ctx.voice.calls[100].current_channel == 10
    finally:
        await _shutdown(ctx)


@pytest.mark.asyncio
async def test_run_without_channel(tmp_path):
    ctx = FakeContext(tmp_path)
    cmd = FakeCommand(guild_id=100, user_id=7)
    await join.run(ctx, cmd)
    assert cmd.responses == [(join.NOT_IN_CHANNEL, True)]
    assert ctx.voice.calls == {}


@pytest.mark.asyncio
async def test_run_reports_join_failure(tmp_path):
    ctx = FakeContext(tmp_path, voice=FakeVoice(fail_join=True))
    cmd = FakeCommand(guild_id=100, user_id=7, options=[5])
    await join.run(ctx, cmd)
    assert len(cmd.responses) == 1
    assert cmd.responses[0][0].startswith("Failed to join voice channel: ")
    await asyncio.sleep(0)
    assert ctx.voice.calls == {}


@pytest.mark.asyncio
async def test_run_outside_guild(tmp_path):
    ctx = FakeContext(tmp_path)
    with pytest.raises(ValueError):
        await join.run(ctx, FakeCommand(guild_id=None, user_id=7))