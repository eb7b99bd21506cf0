"""
One recognition session: audio buffering policy per mode plus the lifecycle
of a single recognizer stream.

Normal mode forwards every chunk as it arrives. Keyword-spot (KWS) mode
batches chunks and periodically re-sends a sliding window of recent audio.

Callers serialize `add_audio` for a session (one producer at a time).
Lifecycle calls (`end`/`abort`/`stop`) may come from another thread.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from streaming.audio_buffer import AudioBuffer
from streaming.recognizer import Recognizer
from streaming.result_aggregator import ResultAggregator

logger = logging.getLogger(__name__)


class SessionMode(str, Enum):
    NORMAL = "normal"
    KWS = "kws"

    @classmethod
    def parse(cls, value: Any) -> "SessionMode":
        if isinstance(value, SessionMode):
            return value
        if isinstance(value, str) and value.strip().lower() == cls.KWS.value:
            return cls.KWS
        return cls.NORMAL


@dataclass
class SessionPolicy:
    """Buffering thresholds; all configurable through config.py."""
    min_audio_seconds: float = 0.3
    kws_recognize_interval: int = 8   # chunks per KWS window (~0.4 s)
    kws_keep_seconds: float = 0.5     # tail kept across KWS windows
    progress_interval: int = 10       # chunks between progress notifications

    @classmethod
    def from_config(cls) -> "SessionPolicy":
        import config
        return cls(
            min_audio_seconds=config.MIN_AUDIO_SECONDS,
            kws_recognize_interval=config.KWS_RECOGNIZE_INTERVAL,
            kws_keep_seconds=config.KWS_KEEP_SECONDS,
            progress_interval=config.PROGRESS_INTERVAL_CHUNKS,
        )


class Session:
    def __init__(
        self,
        session_id: str,
        recognizer: Recognizer,
        audio_format: str = "pcm",
        sample_rate: int = 16000,
        policy: Optional[SessionPolicy] = None,
        enable_deduplication: bool = True,
    ):
        self.session_id = session_id
        self.recognizer = recognizer
        self.audio_format = audio_format
        self.sample_rate = sample_rate
        self.policy = policy or SessionPolicy()
        self.enable_deduplication = enable_deduplication

        self.mode = SessionMode.NORMAL
        self.audio_buffer = AudioBuffer(sample_rate=sample_rate)
        self.kws_buffer = AudioBuffer(sample_rate=sample_rate)
        self.chunk_count = 0
        self.kws_chunk_count = 0

        self._lock = threading.RLock()
        self._active = False
        self._aborted = False
        self._handle: Any = None
        self._aggregator: Optional[ResultAggregator] = None

        self._on_partial: Optional[Callable[[str], None]] = None
        self._on_final: Optional[Callable[[str], None]] = None
        self._on_progress: Optional[Callable[[str], None]] = None
        self._on_error: Optional[Callable[[], None]] = None

    # ----- callback registration -----
    def on_partial_result(self, callback: Callable[[str], None]) -> "Session":
        self._on_partial = callback
        return self

    def on_final_result(self, callback: Callable[[str], None]) -> "Session":
        self._on_final = callback
        return self

    def on_progress(self, callback: Callable[[str], None]) -> "Session":
        self._on_progress = callback
        return self

    def on_error(self, callback: Callable[[], None]) -> "Session":
        self._on_error = callback
        return self

    # ----- state -----
    @property
    def active(self) -> bool:
        return self._active

    @property
    def aborted(self) -> bool:
        return self._aborted

    def is_active(self) -> bool:
        return self._active

    def buffered_seconds(self) -> float:
        return self.audio_buffer.duration_seconds()

    # ----- lifecycle -----
    def start(self, mode: Any = SessionMode.NORMAL) -> bool:
        """Open a fresh recognizer stream. Returns False if it could not be opened."""
        with self._lock:
            if self._active:
                logger.warning("[%s] Session already active, stopping it first", self.session_id)
                self.stop()

            self._aborted = False
            self._clear_buffers()
            self.mode = SessionMode.parse(mode)
            if self.mode is SessionMode.KWS:
                logger.info("[%s] Starting KWS mode", self.session_id)
            else:
                logger.info("[%s] Starting new utterance", self.session_id)

            aggregator = ResultAggregator(
                on_partial=self._deliver_partial,
                on_final=self._deliver_final,
                enable_deduplication=self.enable_deduplication,
                on_error=self._on_recognition_error,
            )
            try:
                handle = self.recognizer.open(self.audio_format, self.sample_rate, aggregator)
            except Exception:
                logger.exception("[%s] Failed to start recognition", self.session_id)
                self._notify_error()
                return False

            self._aggregator = aggregator
            self._handle = handle
            self._active = True
            return True

    def add_audio(self, data: bytes, mode: Any = None) -> None:
        if not self._active or self._aborted or not data:
            return

        kws = self.mode is SessionMode.KWS or SessionMode.parse(mode) is SessionMode.KWS
        if kws:
            self._add_kws_audio(data)
        else:
            self._add_normal_audio(data)

    def end(self) -> None:
        """Close the current utterance; short utterances resolve to an empty final result."""
        with self._lock:
            if not self._active or self._aborted:
                return

            self.mode = SessionMode.NORMAL
            duration = self.audio_buffer.duration_seconds()
            logger.info(
                "[%s] Utterance end, audio: %d bytes (%.2fs)",
                self.session_id, len(self.audio_buffer), duration,
            )

            if duration >= self.policy.min_audio_seconds:
                # Audio was already forwarded; stopping the stream yields the final result.
                self._release_recognizer()
                self._active = False
            else:
                logger.info("[%s] Audio too short, skipping recognition", self.session_id)
                if self._aggregator is not None:
                    self._aggregator.discard()
                if self._on_final:
                    self._on_final("")
                self.stop()

            self.audio_buffer.clear()
            self.chunk_count = 0

    def abort(self) -> None:
        """Drop buffered and future audio until the next start. The stream stays open."""
        logger.info("[%s] Abort received", self.session_id)
        with self._lock:
            self._aborted = True
            self._clear_buffers()
            self.mode = SessionMode.NORMAL

    def stop(self) -> None:
        """Release the recognizer stream and clear buffers. Safe to call repeatedly."""
        with self._lock:
            self._release_recognizer()
            self._active = False
            self.audio_buffer.clear()
            self.kws_buffer.clear()

    # ----- internals -----
    def _add_normal_audio(self, data: bytes) -> None:
        self.audio_buffer.append(data)
        self.chunk_count += 1
        if self._handle is None:
            return

        self._send_frame(data)
        if self.chunk_count % self.policy.progress_interval == 0 and self._on_progress:
            duration = self.audio_buffer.duration_seconds()
            self._on_progress("(recording: %.1fs)" % duration)

    def _add_kws_audio(self, data: bytes) -> None:
        self.kws_buffer.append(data)
        self.kws_chunk_count += 1
        if self.kws_chunk_count < self.policy.kws_recognize_interval:
            return

        duration = self.kws_buffer.duration_seconds()
        logger.debug("[%s] KWS window: %.2fs", self.session_id, duration)
        if duration >= self.policy.min_audio_seconds and self._handle is not None:
            self._send_frame(self.kws_buffer.peek_all())

        self.kws_buffer.trim_to_tail(self.policy.kws_keep_seconds)
        self.kws_chunk_count = 0

    def _send_frame(self, data: bytes) -> None:
        handle = self._handle
        if handle is None or not self._active or not data:
            return
        try:
            self.recognizer.send_frame(handle, data)
        except Exception:
            logger.exception("[%s] Failed to send audio frame", self.session_id)
            self._notify_error()

    def _release_recognizer(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            self.recognizer.stop(handle)
        except Exception:
            logger.warning("[%s] Error while stopping recognition", self.session_id, exc_info=True)

    def _clear_buffers(self) -> None:
        self.audio_buffer.clear()
        self.kws_buffer.clear()
        self.chunk_count = 0
        self.kws_chunk_count = 0

    def _deliver_partial(self, text: str) -> None:
        if self._on_partial and text and text.strip():
            self._on_partial(text)

    def _deliver_final(self, text: str) -> None:
        if self._on_final and text and text.strip():
            self._on_final(text)

    def _on_recognition_error(self, cause: BaseException) -> None:
        logger.warning("[%s] Recognition failed: %s", self.session_id, cause)
        self._notify_error()

    def _notify_error(self) -> None:
        if self._on_error:
            try:
                self._on_error()
            except Exception:
                logger.exception("[%s] Error callback failed", self.session_id)
