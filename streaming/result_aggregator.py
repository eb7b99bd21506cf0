"""
Aggregates one utterance's recognizer events into partial/final text callbacks.

The recognizer never marks an utterance boundary itself. A fragment that
contains terminal punctuation is treated as the final result; otherwise the
final result is delivered when the stream completes. Either way the final
callback fires at most once per utterance.

Known limitation: punctuation inside a fragment (e.g. "2.5 米") also counts,
so a decimal number can end the utterance early.
"""

import logging
import re
import threading
from typing import Callable, List, Optional

from core.deduplication import deduplicate

logger = logging.getLogger(__name__)

TERMINAL_PUNCTUATION = re.compile(r"[。！？.!?]")

TextCallback = Callable[[str], None]


class ResultAggregator:
    """
    RecognitionListener for one utterance.

    States: listening -> completed (on stream completion) or failed (on error).
    A failed utterance ignores later fragments and delivers no final result.
    Callbacks run on the recognizer's thread, outside the internal lock.
    """

    def __init__(
        self,
        on_partial: Optional[TextCallback] = None,
        on_final: Optional[TextCallback] = None,
        enable_deduplication: bool = True,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ):
        self.on_partial = on_partial
        self.on_final = on_final
        self.on_failure = on_error
        self.enable_deduplication = enable_deduplication
        self._lock = threading.Lock()
        self._fragments: List[str] = []
        self._completed = False
        self._final_triggered = False
        self._failed = False

    # ----- RecognitionListener -----
    def on_text_fragment(self, text: str) -> None:
        if not text or not text.strip():
            logger.warning("Empty text fragment from recognizer, ignored")
            return
        if self.enable_deduplication:
            text = deduplicate(text)

        is_final = bool(TERMINAL_PUNCTUATION.search(text))
        with self._lock:
            if self._failed:
                logger.debug("Fragment after recognition error, ignored: %s", text)
                return
            self._fragments.append(text)
            deliver_final = is_final and not self._final_triggered
            if deliver_final:
                self._final_triggered = True

        if deliver_final:
            logger.info("Final result (punctuated): %s", text)
            if self.on_final:
                self.on_final(text)
            return

        if is_final:
            # A final was already delivered for this utterance; surface the text as partial.
            logger.debug("Punctuated fragment after final, sent as partial: %s", text)
        else:
            logger.info("Partial result: %s", text)
        if self.on_partial:
            self.on_partial(text)

    def on_error(self, cause: BaseException) -> None:
        logger.error("Recognition error: %s", cause, exc_info=cause)
        with self._lock:
            first = not self._failed
            self._completed = True
            self._failed = True
        if first and self.on_failure:
            self.on_failure(cause)

    def on_stream_complete(self) -> None:
        with self._lock:
            self._completed = True
            if self._failed:
                logger.info("Recognition completed after an error, no final result")
                return
            full_text = "".join(self._fragments)
            deliver = bool(full_text) and not self._final_triggered
            if deliver:
                self._final_triggered = True

        if not full_text:
            logger.warning("Recognition completed with no text")
            return
        if not deliver:
            logger.debug("Recognition completed, final result already delivered")
            return
        if self.enable_deduplication:
            full_text = deduplicate(full_text)
        logger.info("Recognition completed without punctuation, final result: %s", full_text)
        if self.on_final:
            self.on_final(full_text)

    # ----- queries -----
    def get_full_text(self) -> str:
        with self._lock:
            text = "".join(self._fragments)
        if self.enable_deduplication:
            return deduplicate(text)
        return text

    def is_completed(self) -> bool:
        with self._lock:
            return self._completed

    def discard(self) -> None:
        """Finish the utterance without delivering anything further."""
        with self._lock:
            self._completed = True
            self._final_triggered = True

    def reset(self) -> None:
        """Clear state so the aggregator can serve a new utterance."""
        with self._lock:
            self._fragments.clear()
            self._completed = False
            self._final_triggered = False
            self._failed = False
