# astrobot

A voice channel recorder. While recording, every speaker gets their own
mono, 16-bit, 48 kHz FLAC file. Each file is padded with silence so that
all tracks line up from the moment the recording started.

## Installing

```
pip install .
```

To also install the test tools:

```
pip install ".[test]"
```

## What is in the package

- `astrobot.flac`: a small FLAC writer. `encode_stream_header` returns the
  `fLaC` marker and one STREAMINFO block (total sample count and MD5 left
  unset). `encode_frame` encodes one fixed-blocksize frame, choosing per
  channel between a constant, a fixed-predictor (Rice coded) or a verbatim
  subframe. `crc8` and `crc16` are the checksums FLAC frames use.
- `astrobot.voice`: the data passed around: `VoiceState`
  (`VoiceState.speaking(samples)` / `VoiceState.silent()`),
  `UserVoiceState`, `VoiceData`, the `VoiceCommand` enum (`RECORD`,
  `FINISH`) and `DiscordData`, which maps guild ids to command queues.
- `astrobot.recorder`: `FlacEncoder`, which buffers one user's samples and
  writes 4096-sample frames to a file, and `Recorder`, which keeps one
  encoder per user in a guild.
- `astrobot.voice_handler`: `VoiceReceiver`, which maps SSRCs to users,
  turns voice ticks into `VoiceData` for its recorder and obeys
  `VoiceCommand`s arriving on a queue.
- `astrobot.commands.join`, `.leave`, `.record`, `.finish`: the slash
  command handlers, each with `run(ctx, cmd)` and `register()`.
- `astrobot.discord`: `Events`, which registers the commands on `ready`
  and dispatches `interaction_create` to the handlers, and
  `global_commands()`, which returns all four command definitions.

## Commands

| Command   | What it does                                              |
|-----------|-----------------------------------------------------------|
| `join`    | Join a voice channel: the one given, or the caller's own  |
| `leave`   | Leave the current voice channel                           |
| `record`  | Start recording, joining a channel first if one is known  |
| `finish`  | Stop recording and finalise the FLAC files                |

The handlers work against a context object supplied by the bot runtime:
`ctx.data` (a `DiscordData`), `ctx.voice` (the voice manager),
`ctx.recordings_dir`, `ctx.guild_channels(guild_id)`,
`ctx.set_presence(...)`, `ctx.edit_nickname(...)` and
`ctx.current_user_name`. The full interface is described in the docstring
of `astrobot.commands.join`.

## Output layout

Recordings go under the base directory, `recordings` by default:

```
recordings/<guild id>/<YYYY_MM_DD_HH_MM_SS>/<user id>.flac
```

## Using the recorder directly

```python
import time
from pathlib import Path

from astrobot.recorder import Recorder
from astrobot.voice import UserVoiceState, VoiceData, VoiceState

recorder = Recorder(guild_id=1234, base_dir=Path("recordings"))
recorder.start()
packet = VoiceData(
    rx_timestamp=time.monotonic(),
    user_voice_states=[
        UserVoiceState(user_id=42, voice_state=VoiceState.speaking([0] * 960)),
    ],
)
recorder.process_voice_data(packet)
recorder.finish()  # flushes and closes every file
```

Users who have spoken once and are quiet in a later tick get 960 samples
of silence for that tick. `Recorder.run(queue)` is a coroutine that
processes `VoiceData` from an `asyncio.Queue` until `None` arrives.

## What the package does not do

There is no program to start: the package does not connect to the chat
service, log in, or receive and decode voice audio itself. A bot runtime
has to provide the context and interaction objects, call `Events.ready`
and `Events.interaction_create`, and feed speaking updates and voice
ticks to `VoiceReceiver`.

## Running the tests

```
pytest
```