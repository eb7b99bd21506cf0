"""
Real-time streaming layer.

- audio_buffer: PCM16 byte buffer with duration math and windowing.
- result_aggregator: partial/final classification of recognizer fragments.
- session / session_registry: per-utterance buffering and recognizer lifecycle.
- streaming_asr: Whisper-backed recognizer adapter.
- websocket_server: WebSocket handler for /ws/asr (import separately to avoid pulling FastAPI).
"""

from streaming.audio_buffer import AudioBuffer, bytes_to_duration_ms, duration_ms_to_bytes
from streaming.recognizer import RecognitionListener, Recognizer, RecognizerError
from streaming.result_aggregator import ResultAggregator
from streaming.session import Session, SessionMode, SessionPolicy
from streaming.session_registry import SessionRegistry
from streaming.streaming_asr import WhisperRecognizer, extract_text

__all__ = [
    "AudioBuffer",
    "bytes_to_duration_ms",
    "duration_ms_to_bytes",
    "RecognitionListener",
    "Recognizer",
    "RecognizerError",
    "ResultAggregator",
    "Session",
    "SessionMode",
    "SessionPolicy",
    "SessionRegistry",
    "WhisperRecognizer",
    "extract_text",
]
