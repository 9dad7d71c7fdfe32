"""Per-guild recording of each user's voice into separate FLAC files."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from pathlib import Path

from astrobot import flac
from astrobot.voice import VoiceData

logger = logging.getLogger(__name__)

BLOCK_SIZE = 4096
BUFFER_N = 2
BUFFER_FRAMES = BUFFER_N * BLOCK_SIZE

SAMPLES_PER_PACKET = 960
SILENT_SAMPLES = (0,) * SAMPLES_PER_PACKET

SAMPLE_RATE = 48000
BITS_PER_SAMPLE = 16
CHANNELS = 1


class FlacEncoder:
    """Buffers one user's samples and appends fixed-size FLAC frames to a file."""

    def __init__(self, user_id, guild_id, channels, bits_per_sample, sample_rate, file, header):
        self.user_id = user_id
        self.guild_id = guild_id
        self.channels = channels
        self.bits_per_sample = bits_per_sample
        self.sample_rate = sample_rate
        self._file = file
        self._header = header
        self._buffer: deque[int] = deque(maxlen=BUFFER_FRAMES)

    @classmethod
    def create(cls, user_id, guild_id, channels, bits_per_sample, sample_rate, file_path) -> FlacEncoder:
        """Validate the stream parameters and create the output file and its directory."""
        logger.debug("[%s] <%s> Initializing FlacEncoder...", guild_id, user_id)
        header = flac.encode_stream_header(sample_rate, channels, bits_per_sample, BLOCK_SIZE)
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        file = open(path, "wb", buffering=0)
        logger.info("[%s] <%s> Created new file: %s", guild_id, user_id, path)
        return cls(user_id, guild_id, channels, bits_per_sample, sample_rate, file, header)

    @property
    def closed(self) -> bool:
        return self._file.closed

    @property
    def buffered(self) -> int:
        """Number of samples waiting to be encoded."""
        return len(self._buffer)

    def start(self) -> None:
        """Write the stream header."""
        logger.debug("[%s] <%s> Starting FLAC file...", self.guild_id, self.user_id)
        self._write(self._header, "header")

    def _write(self, data: bytes, what: str) -> None:
        try:
            self._file.write(data)
        except (OSError, ValueError) as exc:
            logger.error("[%s] <%s> Failed to write %s to file: %r", self.guild_id, self.user_id, what, exc)

    def _encode_frame(self, samples: Sequence[int]) -> None:
        per_channel = len(samples) // self.channels
        if per_channel == 0:
            logger.error("[%s] <%s> Called encode_frame on empty samples!", self.guild_id, self.user_id)
            return
        channels = [samples[c::self.channels][:per_channel] for c in range(self.channels)]
        try:
            frame = flac.encode_frame(channels, 0, self.sample_rate, self.bits_per_sample, BLOCK_SIZE)
        except ValueError as exc:
            logger.error("[%s] <%s> Failed to encode frame: %s", self.guild_id, self.user_id, exc)
            return
        self._write(frame, "frame")

    def add_samples(self, samples: Iterable[int]) -> None:
        """Buffer samples, encoding one block once a full block has accumulated."""
        self._buffer.extend(samples)
        if len(self._buffer) >= BLOCK_SIZE:
            block = [self._buffer.popleft() for _ in range(BLOCK_SIZE)]
            self._encode_frame(block)

    def add_silence(self, duration: float | timedelta) -> None:
        """Flush the buffer, then append ``duration`` seconds of silence."""
        if isinstance(duration, timedelta):
            duration = duration.total_seconds()
        if duration <= 0:
            return
        sample_count = int(duration * SAMPLE_RATE)
        blocks, remainder = divmod(sample_count, BLOCK_SIZE)
        logger.debug(
            "[%s] <%s> Adding %ss worth of silence! [%d blocks; %d samples]",
            self.guild_id, self.user_id, duration, blocks, remainder,
        )
        self._flush_buffer()
        silence = [0] * BLOCK_SIZE
        for _ in range(blocks):
            self._encode_frame(silence)
        self.add_samples([0] * remainder)

    def _flush_buffer(self) -> None:
        samples = list(self._buffer)
        self._buffer.clear()
        if samples:
            logger.debug("[%s] <%s> Flushing %d remaining samples to encoder...", self.guild_id, self.user_id, len(samples))
            self._encode_frame(samples)

    def finish(self) -> None:
        """Encode whatever is buffered and flush the file."""
        if self.closed:
            return
        self._flush_buffer()
        try:
            self._file.flush()
        except OSError as exc:
            logger.error("[%s] <%s> Failed to flush file to disk: %r", self.guild_id, self.user_id, exc)

    def close(self) -> None:
        """Finish the stream and close the file."""
        if self.closed:
            return
        self.finish()
        self._file.close()

    def __enter__(self) -> FlacEncoder:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Recorder:
    """Records every user heard in a guild's voice channel into one FLAC file each."""

    def __init__(self, guild_id, base_dir="recordings"):
        self.guild_id = guild_id
        self.base_dir = Path(base_dir)
        self.sample_rate = SAMPLE_RATE
        self.channels = CHANNELS
        self.bits_per_sample = BITS_PER_SAMPLE
        self._encoders: dict[int, FlacEncoder] = {}
        self._known_users: set[int] = set()
        self._output_dir = Path()
        self._started: float | None = None

    @property
    def started(self) -> float | None:
        """Monotonic time at which the current recording began, if any."""
        return self._started

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    @property
    def known_users(self) -> frozenset[int]:
        return frozenset(self._known_users)

    def get_or_create_encoder(self, user_id, timestamp: float) -> FlacEncoder:
        """Return the user's encoder, creating it padded with silence up to ``timestamp``."""
        if self._started is None:
            raise RuntimeError(f"[{self.guild_id}] <{user_id}> recording not started")
        encoder = self._encoders.get(user_id)
        if encoder is not None:
            return encoder
        encoder = FlacEncoder.create(
            user_id,
            self.guild_id,
            self.channels,
            self.bits_per_sample,
            self.sample_rate,
            self._output_dir / f"{user_id}.flac",
        )
        encoder.start()
        encoder.add_silence(timestamp - self._started)
        self._encoders[user_id] = encoder
        return encoder

    def add_audio_data(self, user_id, timestamp: float, samples: Sequence[int]) -> None:
        if self._started is None:
            return
        try:
            encoder = self.get_or_create_encoder(user_id, timestamp)
        except (OSError, ValueError) as exc:
            logger.error("[%s] <%s> Failed to get FlacEncoder: %r", self.guild_id, user_id, exc)
            return
        encoder.add_samples(samples)

    def process_voice_data(self, data: VoiceData) -> None:
        """Append one tick of audio, padding known but quiet users with silence."""
        if self._started is None:
            return
        silent_this_packet = set(self._known_users)
        for entry in data.user_voice_states:
            if entry.user_id not in silent_this_packet:
                logger.debug("[%s] <%s> User not previously in known user set, adding...", self.guild_id, entry.user_id)
                silent_this_packet.add(entry.user_id)
                self._known_users.add(entry.user_id)
            samples = entry.voice_state.samples
            if samples is not None:
                silent_this_packet.discard(entry.user_id)
                self.add_audio_data(entry.user_id, data.rx_timestamp, samples)
                if len(samples) != SAMPLES_PER_PACKET:
                    logger.warning(
                        "[%s] <%s> We got a packet with a non-standard number of samples! Got: %d, expected: %d",
                        self.guild_id, entry.user_id, len(samples), SAMPLES_PER_PACKET,
                    )
        for user_id in silent_this_packet:
            self.add_audio_data(user_id, data.rx_timestamp, SILENT_SAMPLES)

    def start(self) -> None:
        """Begin a recording in a fresh timestamped directory; no-op if already recording."""
        if self._started is None:
            logger.info("[%s] Beginning recording...", self.guild_id)
            self._started = time.monotonic()
            stamp = datetime.now().strftime("%Y_%m_%d_%H_%M_%S")
            self._output_dir = self.base_dir / str(self.guild_id) / stamp

    def finish(self) -> None:
        """Stop recording, closing every file and forgetting known users."""
        self._started = None
        logger.info("[%s] Stopping recording...", self.guild_id)
        for encoder in self._encoders.values():
            encoder.close()
        self._encoders.clear()
        # Users from a previous recording who left must not appear in the next one.
        self._known_users.clear()
        logger.debug("[%s] Encoders and known users cleared.", self.guild_id)

    async def run(self, voice_queue: asyncio.Queue) -> None:
        """Process voice data from the queue until ``None`` arrives."""
        while (data := await voice_queue.get()) is not None:
            self.process_voice_data(data)