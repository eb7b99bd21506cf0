"""
Per-session PCM buffer for streaming recognition.

Accumulates incoming audio chunks (16-bit mono, sample rate fixed per buffer),
reports buffered duration, and supports two consumption styles:
- windowing (`get_ready_segment`) for engines that transcribe fixed windows;
- tail trimming (`trim_to_tail`) for keyword-spotting continuity.
"""

from typing import Optional

SAMPLE_RATE = 16000
BYTES_PER_SAMPLE = 2


def bytes_to_seconds(num_bytes: int, sample_rate: int = SAMPLE_RATE) -> float:
    """Convert raw 16-bit mono byte count to duration in seconds."""
    if num_bytes <= 0 or sample_rate <= 0:
        return 0.0
    return num_bytes / float(sample_rate * BYTES_PER_SAMPLE)


def bytes_to_duration_ms(num_bytes: int, sample_rate: int = SAMPLE_RATE) -> float:
    """Convert raw audio byte count to duration in milliseconds."""
    return bytes_to_seconds(num_bytes, sample_rate) * 1000.0


def duration_ms_to_bytes(ms: float, sample_rate: int = SAMPLE_RATE) -> int:
    """Convert duration in ms to a byte count, aligned to whole samples."""
    samples = int((ms / 1000.0) * sample_rate)
    return max(0, samples) * BYTES_PER_SAMPLE


class AudioBuffer:
    """
    Growable 16-bit mono PCM buffer.

    - Accepts chunks of any size.
    - `duration_seconds()` is `len / (sample_rate * 2)`.
    - Optional windowing: when at least `window_duration_ms` is buffered,
      `get_ready_segment()` returns one window and keeps `overlap_duration_ms`
      of its end for the next call.
    """

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        window_duration_ms: float = 2000.0,
        overlap_duration_ms: float = 500.0,
    ):
        """
        Args:
            sample_rate: Samples per second of the PCM stream.
            window_duration_ms: Minimum duration (ms) to consider the buffer "ready".
            overlap_duration_ms: Duration kept from a window for the next one (0 = no overlap).
        """
        self.sample_rate = sample_rate
        self.window_duration_ms = max(200.0, window_duration_ms)
        self.overlap_duration_ms = max(0.0, min(overlap_duration_ms, self.window_duration_ms * 0.5))
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def append(self, chunk: bytes) -> None:
        """Append a raw audio chunk."""
        if not chunk:
            return
        self._buffer.extend(chunk)

    def duration_seconds(self) -> float:
        """Current buffered duration in seconds."""
        return bytes_to_seconds(len(self._buffer), self.sample_rate)

    def duration_ms(self) -> float:
        """Current buffered duration in milliseconds."""
        return self.duration_seconds() * 1000.0

    def has_ready_segment(self) -> bool:
        """True if at least one window_duration_ms of audio is available."""
        return self.duration_ms() >= self.window_duration_ms

    def get_ready_segment(self) -> Optional[bytes]:
        """
        If buffer has at least window_duration_ms, return a segment of that length
        and retain the overlap at its end for the next call.
        Returns None if not enough data.
        """
        if not self.has_ready_segment():
            return None
        window_bytes = duration_ms_to_bytes(self.window_duration_ms, self.sample_rate)
        overlap_bytes = duration_ms_to_bytes(self.overlap_duration_ms, self.sample_rate)
        take = min(len(self._buffer), window_bytes)
        segment = bytes(self._buffer[:take])
        keep_from = max(0, take - overlap_bytes)
        self._buffer = self._buffer[keep_from:]
        return segment

    def trim_to_tail(self, seconds: float) -> None:
        """Keep only the trailing `seconds` of audio. A buffer no longer than that is emptied."""
        keep = duration_ms_to_bytes(seconds * 1000.0, self.sample_rate)
        if len(self._buffer) > keep > 0:
            self._buffer = self._buffer[-keep:]
        else:
            self._buffer.clear()

    def peek_all(self) -> bytes:
        """Return all buffered bytes without consuming."""
        return bytes(self._buffer)

    def clear(self) -> None:
        """Clear the buffer (e.g. on session end)."""
        self._buffer.clear()

