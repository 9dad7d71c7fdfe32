"""Minimal FLAC stream writer: STREAMINFO header and fixed-blocksize frames."""

from __future__ import annotations

from collections.abc import Sequence

__all__ = ["crc8", "crc16", "encode_stream_header", "encode_frame"]

_MAX_RICE_PARAMETER = 14
_MAX_FIXED_ORDER = 4

_SAMPLE_RATE_CODES = {
    88200: 1,
    176400: 2,
    192000: 3,
    8000: 4,
    16000: 5,
    22050: 6,
    24000: 7,
    32000: 8,
    44100: 9,
    48000: 10,
    96000: 11,
}

_SAMPLE_SIZE_CODES = {8: 1, 12: 2, 16: 4, 20: 5, 24: 6, 32: 7}


def _make_crc_table(poly: int, width: int) -> tuple[int, ...]:
    top = 1 << (width - 1)
    mask = (1 << width) - 1
    table = []
    for byte in range(256):
        crc = byte << (width - 8)
        for _ in range(8):
            crc = ((crc << 1) ^ poly) if crc & top else crc << 1
        table.append(crc & mask)
    return tuple(table)


_CRC8_TABLE = _make_crc_table(0x07, 8)
_CRC16_TABLE = _make_crc_table(0x8005, 16)


def crc8(data: bytes) -> int:
    """CRC-8 (polynomial 0x07, initial value 0) as used in FLAC frame headers."""
    crc = 0
    for byte in data:
        crc = _CRC8_TABLE[crc ^ byte]
    return crc


def crc16(data: bytes) -> int:
    """CRC-16 (polynomial 0x8005, initial value 0) as used for FLAC frames."""
    crc = 0
    for byte in data:
        crc = ((crc << 8) & 0xFFFF) ^ _CRC16_TABLE[(crc >> 8) ^ byte]
    return crc


class _BitWriter:
    """Big-endian bit writer that emits whole bytes as they fill."""

    def __init__(self) -> None:
        self._out = bytearray()
        self._acc = 0
        self._nbits = 0

    def write(self, value: int, nbits: int) -> None:
        if nbits == 0:
            return
        self._acc = (self._acc << nbits) | (value & ((1 << nbits) - 1))
        self._nbits += nbits
        while self._nbits >= 8:
            self._nbits -= 8
            self._out.append((self._acc >> self._nbits) & 0xFF)
        self._acc &= (1 << self._nbits) - 1

    def align(self) -> None:
        if self._nbits:
            self.write(0, 8 - self._nbits)

    def getvalue(self) -> bytes:
        self.align()
        return bytes(self._out)


def _validate_stream(sample_rate: int, channels: int, bits_per_sample: int) -> None:
    if not 1 <= sample_rate < (1 << 20):
        raise ValueError(f"sample rate out of range: {sample_rate}")
    if not 1 <= channels <= 8:
        raise ValueError(f"channel count out of range: {channels}")
    if not 4 <= bits_per_sample <= 32:
        raise ValueError(f"bits per sample out of range: {bits_per_sample}")


def encode_stream_header(
    sample_rate: int, channels: int, bits_per_sample: int, block_size: int
) -> bytes:
    """Return the ``fLaC`` marker followed by a single STREAMINFO block."""
    _validate_stream(sample_rate, channels, bits_per_sample)
    if not 16 <= block_size <= 65535:
        raise ValueError(f"block size out of range: {block_size}")

    info = _BitWriter()
    info.write(block_size, 16)  # minimum block size
    info.write(block_size, 16)  # maximum block size
    info.write(0, 24)  # minimum frame size (unknown)
    info.write(0, 24)  # maximum frame size (unknown)
    info.write(sample_rate, 20)
    info.write(channels - 1, 3)
    info.write(bits_per_sample - 1, 5)
    info.write(0, 36)  # total samples (unknown)
    body = info.getvalue() + bytes(16)  # MD5 signature left unset

    block_header = _BitWriter()
    block_header.write(1, 1)  # last metadata block
    block_header.write(0, 7)  # STREAMINFO
    block_header.write(len(body), 24)
    return b"fLaC" + block_header.getvalue() + body


def _utf8_number(value: int) -> bytes:
    if value < 0x80:
        return bytes([value])
    for length in range(2, 8):
        if value < 1 << (5 * length + 1):
            break
    else:
        raise ValueError(f"frame number too large: {value}")
    lead = ((0xFF << (8 - length)) & 0xFF) | (value >> (6 * (length - 1)))
    tail = [0x80 | ((value >> (6 * shift)) & 0x3F) for shift in range(length - 2, -1, -1)]
    return bytes([lead, *tail])


def _block_size_code(size: int) -> tuple[int, bytes]:
    if size == 192:
        return 1, b""
    for code in range(2, 6):
        if size == 576 << (code - 2):
            return code, b""
    for code in range(8, 16):
        if size == 256 << (code - 8):
            return code, b""
    if size <= 256:
        return 6, bytes([size - 1])
    return 7, (size - 1).to_bytes(2, "big")


def _sample_rate_code(rate: int) -> tuple[int, bytes]:
    if rate in _SAMPLE_RATE_CODES:
        return _SAMPLE_RATE_CODES[rate], b""
    if rate % 1000 == 0 and rate // 1000 <= 0xFF:
        return 12, bytes([rate // 1000])
    if rate <= 0xFFFF:
        return 13, rate.to_bytes(2, "big")
    if rate % 10 == 0 and rate // 10 <= 0xFFFF:
        return 14, (rate // 10).to_bytes(2, "big")
    return 0, b""


def _fixed_residuals(samples: list[int], order: int) -> list[int]:
    residuals = samples
    for _ in range(order):
        residuals = [b - a for a, b in zip(residuals, residuals[1:])]
    return residuals


def _zigzag(value: int) -> int:
    return value << 1 if value >= 0 else ((-value) << 1) - 1


def _rice_parameter(folded: list[int]) -> tuple[int, int]:
    """Pick the Rice parameter with the fewest bits; return (parameter, bits)."""
    best = None
    for k in range(_MAX_RICE_PARAMETER + 1):
        bits = len(folded) * (k + 1) + sum(u >> k for u in folded)
        if best is None or bits < best[1]:
            best = (k, bits)
    assert best is not None
    return best


def _write_subframe(out: _BitWriter, samples: list[int], bps: int) -> None:
    if all(s == samples[0] for s in samples):
        out.write(0, 1)
        out.write(0b000000, 6)
        out.write(0, 1)
        out.write(samples[0], bps)
        return

    count = len(samples)
    order = min(
        range(min(_MAX_FIXED_ORDER, count - 1) + 1),
        key=lambda o: sum(abs(r) for r in _fixed_residuals(samples, o)),
    )
    folded = [_zigzag(r) for r in _fixed_residuals(samples, order)]
    rice, rice_bits = _rice_parameter(folded)
    fixed_bits = order * bps + 10 + rice_bits

    if fixed_bits >= count * bps:
        out.write(0, 1)
        out.write(0b000001, 6)
        out.write(0, 1)
        for sample in samples:
            out.write(sample, bps)
        return

    out.write(0, 1)
    out.write(0b001000 | order, 6)
    out.write(0, 1)
    for sample in samples[:order]:
        out.write(sample, bps)
    out.write(0, 2)  # Rice coding with 4-bit parameters
    out.write(0, 4)  # partition order 0
    out.write(rice, 4)
    for value in folded:
        out.write(1, (value >> rice) + 1)
        out.write(value, rice)


def encode_frame(
    samples: Sequence[Sequence[int]],
    frame_number: int,
    sample_rate: int,
    bits_per_sample: int,
    block_size: int,
) -> bytes:
    """Encode one fixed-blocksize frame.

    ``samples`` holds one sequence of signed samples per channel; all channels
    must have the same length, between 1 and ``block_size``.
    """
    channels = [list(channel) for channel in samples]
    _validate_stream(sample_rate, len(channels), bits_per_sample)
    count = len(channels[0])
    if any(len(channel) != count for channel in channels):
        raise ValueError("channels differ in length")
    if count == 0:
        raise ValueError("cannot encode a frame without samples")
    if count > block_size or block_size > 65535:
        raise ValueError(f"frame of {count} samples exceeds block size {block_size}")
    if frame_number < 0:
        raise ValueError(f"negative frame number: {frame_number}")
    low, high = -(1 << (bits_per_sample - 1)), 1 << (bits_per_sample - 1)
    if any(not low <= s < high for channel in channels for s in channel):
        raise ValueError(f"sample does not fit in {bits_per_sample} bits")

    bs_code, bs_extra = _block_size_code(count)
    sr_code, sr_extra = _sample_rate_code(sample_rate)
    header = _BitWriter()
    header.write(0xFFF8, 16)  # sync code, fixed blocking strategy
    header.write(bs_code, 4)
    header.write(sr_code, 4)
    header.write(len(channels) - 1, 4)
    header.write(_SAMPLE_SIZE_CODES.get(bits_per_sample, 0), 3)
    header.write(0, 1)
    head = header.getvalue() + _utf8_number(frame_number) + bs_extra + sr_extra
    head += bytes([crc8(head)])

    body = _BitWriter()
    for channel in channels:
        _write_subframe(body, channel, bits_per_sample)

    frame = head + body.getvalue()
    return frame + crc16(frame).to_bytes(2, "big")