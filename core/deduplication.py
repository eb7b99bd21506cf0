import re
from typing import Optional

# Stutter artifacts: any character repeated 3+ times in a row ("你你你" -> "你")
_REPEATED_CHAR = re.compile(r"(.)\1{2,}")

# Back-to-back repeated phrases, longest unit first so a long unit is not
# partially absorbed by a shorter pass ("你好你好" -> "你好")
_REPEATED_PHRASES = [re.compile(r"(.{%d})\1+" % n) for n in range(6, 1, -1)]

_WHITESPACE = re.compile(r"\s+")

# Runs of the same terminal mark, full-width and half-width ("!!" -> "!", "？？" -> "？")
_PUNCT_RUN = re.compile(r"([，,。.？?！!])\1+")


def _dedup_pass(text: str) -> str:
    text = _REPEATED_CHAR.sub(r"\1", text)
    for pattern in _REPEATED_PHRASES:
        text = pattern.sub(r"\1", text)
    text = _WHITESPACE.sub(" ", text).strip()
    text = _PUNCT_RUN.sub(r"\1", text)
    return text.strip()


def deduplicate(text: Optional[str]) -> Optional[str]:
    """
    Remove stutter repeats and duplicated phrases from recognizer output.
    e.g. '你好你好，你是谁你是谁？' -> '你好，你是谁？'

    Passes are repeated until the text stops changing, so the result is
    idempotent. Each changing pass shortens the text, so this terminates.
    None and blank input are returned unchanged.
    """
    if not text or not text.strip():
        return text

    result = _dedup_pass(text)
    while True:
        again = _dedup_pass(result)
        if again == result:
            return result
        result = again
