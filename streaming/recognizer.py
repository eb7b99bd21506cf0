"""
Interfaces between the session pipeline and a streaming speech recognizer.

The recognizer is an external engine: it accepts a stream of PCM frames and
reports text fragments asynchronously on its own threads.
"""
from typing import Any, Protocol


class RecognizerError(RuntimeError):
    """A recognizer stream could not be opened or fed."""


class RecognitionListener(Protocol):
    """Event sink a recognizer reports into. Called from recognizer threads."""

    def on_text_fragment(self, text: str) -> None: ...

    def on_error(self, cause: BaseException) -> None: ...

    def on_stream_complete(self) -> None: ...


class Recognizer(Protocol):
    """
    Streaming recognizer.

    `open` returns an opaque handle for one streaming connection. `stop` ends
    the stream, which leads to `listener.on_stream_complete()`.
    """

    def open(self, fmt: str, sample_rate: int, listener: RecognitionListener) -> Any: ...

    def send_frame(self, handle: Any, data: bytes) -> None: ...

    def stop(self, handle: Any) -> None: ...
