"""
Request/response bridge to the conversational backend (robot).

One call opens one WebSocket exchange, sends the final transcript, collects
the (possibly streamed) reply, and closes the exchange. Each call is
independent; nothing is shared between calls.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from websockets.exceptions import ConnectionClosed, WebSocketException

from conversation.extraction import extract_reply_text, is_chunk, is_done, parse_message

logger = logging.getLogger(__name__)


class Exchange(Protocol):
    """One open request/response channel (websockets sync ClientConnection fits)."""

    def send(self, message: str) -> None: ...

    def recv(self, timeout: Optional[float] = None) -> Any: ...

    def close(self) -> None: ...


ConnectFn = Callable[[str], Exchange]


class Outcome(str, Enum):
    DONE = "done"
    CLOSED = "closed"
    TIMEOUT = "timeout"
    FAILED = "failed"


@dataclass
class BridgeSettings:
    ws_url: str = "ws://localhost:8080/api/v1/robot/memory/ws"
    persona_id: str = "394f8467-b114-4ef3-8647-077d2eab5a9d"
    scene: str = "chat"
    input_type: str = "listening"
    timeout_seconds: float = 120.0
    max_attempts: int = 3
    open_timeout_seconds: float = 10.0

    @classmethod
    def from_config(cls) -> "BridgeSettings":
        import config
        return cls(
            ws_url=config.ROBOT_WS_URL,
            persona_id=config.ROBOT_PERSONA_ID,
            scene=config.ROBOT_SCENE,
            input_type=config.ROBOT_INPUT_TYPE,
            timeout_seconds=config.ROBOT_TIMEOUT_SECONDS,
            max_attempts=config.ROBOT_MAX_ATTEMPTS,
            open_timeout_seconds=config.ROBOT_OPEN_TIMEOUT_SECONDS,
        )


@dataclass
class RobotExchange:
    """State of one attempt: request fields plus the reply collected so far."""
    request_text: str
    token: str
    persona: str
    scene: str
    input_type: str
    chunk_buffer: List[str] = field(default_factory=list)
    done: bool = False
    reply: Optional[str] = None

    def payload(self) -> Dict[str, str]:
        return {
            "voice": self.request_text,
            "scene": self.scene,
            "inputType": self.input_type,
            "token": self.token,
            "personaId": self.persona,
        }

    def consume(self, raw: Any) -> bool:
        """Fold one inbound message into the reply. Returns True when the backend signals done."""
        node, text = parse_message(raw)
        if node is None:
            if text and text.strip():
                self.reply = text
            return False

        extracted = extract_reply_text(node)
        if extracted and extracted.strip():
            if is_chunk(node):
                self.chunk_buffer.append(extracted)
                self.reply = "".join(self.chunk_buffer)
            else:
                self.reply = extracted

        if is_done(node):
            if self.chunk_buffer:
                self.reply = "".join(self.chunk_buffer)
            self.done = True
        return self.done


def append_token(url: str, token: Optional[str]) -> str:
    """Add `token` as a query parameter (URL unchanged when token is blank)."""
    if not token or not token.strip():
        return url
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.append(("token", token))
    return urlunsplit(parts._replace(query=urlencode(query)))


class ConversationBridge:
    """
    Sends final transcripts to the conversational backend and returns the reply text.

    `send_and_receive` blocks for up to `timeout_seconds` per attempt; call it
    off the audio path (e.g. in an executor), never from a recognizer callback.
    """

    def __init__(self, settings: Optional[BridgeSettings] = None, connect: Optional[ConnectFn] = None):
        self.settings = settings or BridgeSettings()
        self._connect = connect or self._default_connect

    def _default_connect(self, url: str) -> Exchange:
        from websockets.sync.client import connect as ws_connect
        return ws_connect(url, open_timeout=self.settings.open_timeout_seconds)

    def send_and_receive(self, text: Optional[str], token: Optional[str]) -> Optional[str]:
        if not text or not text.strip():
            logger.warning("Voice text is empty, skip robot call")
            return None
        if not token or not token.strip():
            logger.warning("Token is empty, skip robot call")
            return None

        attempts = max(1, self.settings.max_attempts)
        last_error: Optional[str] = None
        for attempt in range(1, attempts + 1):
            exchange = RobotExchange(
                request_text=text,
                token=token,
                persona=self.settings.persona_id,
                scene=self.settings.scene,
                input_type=self.settings.input_type,
            )
            outcome, error = self._run_attempt(exchange)
            if outcome is Outcome.TIMEOUT:
                logger.warning("Robot WS call timed out (attempt %d/%d)", attempt, attempts)
                last_error = "timeout"
                continue
            if outcome is Outcome.FAILED:
                logger.warning("Robot WS call failed (attempt %d/%d): %s", attempt, attempts, error)
                last_error = error
                continue
            logger.info("Robot reply received (attempt %d/%d, %s)", attempt, attempts, outcome.value)
            return exchange.reply

        logger.error("Robot WS call failed after %d attempts: %s", attempts, last_error)
        return None

    def _run_attempt(self, exchange: RobotExchange):
        url = append_token(self.settings.ws_url, exchange.token)
        try:
            ws = self._connect(url)
        except (WebSocketException, OSError) as e:
            return Outcome.FAILED, str(e) or type(e).__name__

        try:
            ws.send(json.dumps(exchange.payload(), ensure_ascii=False))
            return self._await_completion(ws, exchange), None
        except (WebSocketException, OSError) as e:
            return Outcome.FAILED, str(e) or type(e).__name__
        finally:
            self._close_quietly(ws)

    def _await_completion(self, ws: Exchange, exchange: RobotExchange) -> Outcome:
        deadline = time.monotonic() + self.settings.timeout_seconds
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return Outcome.TIMEOUT
            try:
                message = ws.recv(timeout=remaining)
            except TimeoutError:
                return Outcome.TIMEOUT
            except ConnectionClosed as e:
                # A close frame from the peer ends the exchange normally.
                if e.rcvd is not None:
                    return Outcome.CLOSED
                raise
            if exchange.consume(message):
                return Outcome.DONE

    @staticmethod
    def _close_quietly(ws: Exchange) -> None:
        try:
            ws.close()
        except Exception as e:
            logger.debug("Error closing robot exchange: %s", e)
