"""
Reply-text extraction for the conversational backend's streamed messages.

Messages come in several shapes depending on backend version:
  {"type": "chunk", "content": "..."}            streamed fragment
  {"text": "..."} / {"message": "..."}           single-shot reply
  {"content": {"message" | "text" | "choices": [{"text"}]}}
  {"choices": [{"text": "..."}]}
  {"type": "done"} / {"done": true}              completion marker
"""

import json
from typing import Any, Dict, Optional, Tuple

HANDSHAKE_MESSAGE = "connected"


def _is_handshake(value: str) -> bool:
    return value.lower() == HANDSHAKE_MESSAGE


def _first_choice_text(node: Dict[str, Any]) -> Optional[str]:
    choices = node.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        text = choices[0].get("text")
        if text is not None:
            return str(text)
    return None


def message_type(node: Dict[str, Any]) -> str:
    value = node.get("type")
    return value.strip().lower() if isinstance(value, str) else ""


def is_chunk(node: Dict[str, Any]) -> bool:
    return message_type(node) == "chunk"


def is_done(node: Dict[str, Any]) -> bool:
    return message_type(node) == "done" or node.get("done") is True


def extract_reply_text(node: Dict[str, Any]) -> Optional[str]:
    """
    Best-effort text from one parsed message, tried in order:
    chunk content, "text", "message" (not the "connected" handshake),
    content (string, .message, .text, .choices[0].text), choices[0].text.
    """
    if is_chunk(node) and node.get("content") is not None:
        content = node["content"]
        return content if isinstance(content, str) else json.dumps(content, ensure_ascii=False)

    if node.get("text") is not None:
        return str(node["text"])

    message = node.get("message")
    if isinstance(message, str) and not _is_handshake(message):
        return message

    content = node.get("content")
    if isinstance(content, str):
        if not _is_handshake(content):
            return content
    elif isinstance(content, dict):
        nested = content.get("message")
        if isinstance(nested, str) and not _is_handshake(nested):
            return nested
        nested = content.get("text")
        if isinstance(nested, str):
            return nested
        nested = _first_choice_text(content)
        if nested is not None:
            return nested

    return _first_choice_text(node)


def parse_message(raw: Any) -> Tuple[Optional[Dict[str, Any]], str]:
    """
    Decode one inbound frame. Returns (object or None, raw text).
    None means the frame is not a JSON object and the raw text is the fallback.
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    text = raw if isinstance(raw, str) else str(raw)
    try:
        node = json.loads(text)
    except ValueError:
        return None, text
    if not isinstance(node, dict):
        return None, text
    return node, text
