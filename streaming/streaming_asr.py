"""
Whisper-backed streaming recognizer.

Whisper is not a streaming engine, so each stream buffers frames and
transcribes fixed overlapping windows on a worker thread, reporting each
window's text as one fragment. `stop` transcribes the unprocessed tail and
then signals stream completion.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import numpy as np

from streaming.audio_buffer import SAMPLE_RATE, AudioBuffer, duration_ms_to_bytes
from streaming.recognizer import RecognitionListener, RecognizerError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("pcm",)
WHISPER_SAMPLE_RATE = 16000


def extract_text(result: Any) -> Optional[str]:
    """
    Pull the transcript out of an engine result.

    Accepts a Whisper result dict, an object with a `.text` attribute, or a
    plain string. Returns None when there is no usable text.
    """
    if result is None:
        return None
    if isinstance(result, str):
        text = result
    elif isinstance(result, dict):
        text = result.get("text")
    else:
        text = getattr(result, "text", None)
    if not isinstance(text, str):
        return None
    text = text.strip()
    return text or None


def pcm16_to_float32(pcm: bytes, sample_rate: int = WHISPER_SAMPLE_RATE) -> np.ndarray:
    """Little-endian PCM16 mono -> float32 in [-1, 1] at 16 kHz."""
    usable = len(pcm) - (len(pcm) % 2)
    audio = np.frombuffer(pcm[:usable], dtype="<i2").astype(np.float32) / 32768.0
    if sample_rate != WHISPER_SAMPLE_RATE and audio.size:
        audio = _linear_resample(audio, sample_rate, WHISPER_SAMPLE_RATE)
    return audio


def _linear_resample(x: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    n_out = int(round(x.shape[0] * float(dst_rate) / float(src_rate)))
    if n_out <= 1:
        return np.zeros((0,), dtype=np.float32)
    t = np.linspace(0.0, x.shape[0] - 1, num=n_out, dtype=np.float32)
    i0 = np.floor(t).astype(np.int32)
    i1 = np.minimum(i0 + 1, x.shape[0] - 1)
    frac = t - i0.astype(np.float32)
    return (x[i0] * (1.0 - frac) + x[i1] * frac).astype(np.float32)


def _check_input(fmt: str, sample_rate: int) -> None:
    if not fmt or not fmt.strip():
        raise ValueError("Audio format must be provided (e.g. pcm)")
    if fmt.strip().lower() not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported audio format: {fmt}")
    if sample_rate <= 0:
        raise ValueError(f"Sample rate must be positive, got: {sample_rate}")


class WhisperStream:
    """Handle for one open stream. Callbacks are delivered in order on one worker thread."""

    def __init__(self, listener: RecognitionListener, sample_rate: int, window_ms: float, overlap_ms: float):
        self.listener = listener
        self.sample_rate = sample_rate
        self.buffer = AudioBuffer(
            sample_rate=sample_rate,
            window_duration_ms=window_ms,
            overlap_duration_ms=overlap_ms,
        )
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="whisper-stream")
        self.lock = threading.Lock()
        self.pending_bytes = 0  # bytes not yet covered by any transcribed window
        self.stopped = False


class WhisperRecognizer:
    """Recognizer over an openai-whisper model (`model.transcribe(audio, ...)`)."""

    def __init__(
        self,
        model: Any,
        language: Optional[str] = None,
        window_seconds: float = 2.0,
        overlap_seconds: float = 0.5,
        inference_lock: Optional[threading.Lock] = None,
    ):
        self.model = model
        self.language = language
        self.window_ms = window_seconds * 1000.0
        self.overlap_ms = overlap_seconds * 1000.0
        self.inference_lock = inference_lock or threading.Lock()

    def open(self, fmt: str, sample_rate: int, listener: RecognitionListener) -> WhisperStream:
        _check_input(fmt, sample_rate)
        logger.info("Starting streaming ASR. format: %s, sampleRate: %d", fmt, sample_rate)
        return WhisperStream(listener, sample_rate, self.window_ms, self.overlap_ms)

    def send_frame(self, handle: WhisperStream, data: bytes) -> None:
        if handle is None:
            raise RecognizerError("Stream handle cannot be None")
        segments = []
        with handle.lock:
            if handle.stopped:
                raise RecognizerError("Stream already stopped")
            handle.buffer.append(data)
            handle.pending_bytes += len(data)
            while handle.buffer.has_ready_segment():
                segment = handle.buffer.get_ready_segment()
                if segment:
                    segments.append(segment)
                    handle.pending_bytes = 0
        for segment in segments:
            handle.executor.submit(self._transcribe_and_report, handle, segment)

    def stop(self, handle: WhisperStream) -> None:
        if handle is None:
            return
        with handle.lock:
            if handle.stopped:
                return
            handle.stopped = True
            tail = b""
            if handle.pending_bytes > 0:
                tail = handle.buffer.peek_all()
            handle.buffer.clear()
        if tail:
            handle.executor.submit(self._transcribe_and_report, handle, tail)
        handle.executor.submit(handle.listener.on_stream_complete)
        handle.executor.shutdown(wait=True)

    def _transcribe_and_report(self, handle: WhisperStream, pcm: bytes) -> None:
        try:
            text = self.transcribe(pcm, handle.sample_rate)
        except Exception as e:
            handle.listener.on_error(e)
            return
        if text:
            handle.listener.on_text_fragment(text)

    def transcribe(self, pcm: bytes, sample_rate: int = SAMPLE_RATE) -> Optional[str]:
        """Run Whisper on one PCM16 segment and return its text (None if empty)."""
        if len(pcm) < duration_ms_to_bytes(50, sample_rate):
            return None
        audio = pcm16_to_float32(pcm, sample_rate)
        with self.inference_lock:
            result = self.model.transcribe(audio, language=self.language, fp16=False)
        return extract_text(result)

    def transcribe_clip(self, data: bytes, fmt: str, sample_rate: int) -> str:
        """One-shot recognition of a complete clip. Raises ValueError on bad input."""
        _check_input(fmt, sample_rate)
        if not data:
            raise ValueError("Audio data must not be empty")
        logger.info("Recognizing clip. format: %s, sampleRate: %d, bytes: %d", fmt, sample_rate, len(data))
        return self.transcribe(data, sample_rate) or ""
