"""
WebSocket server for /ws/asr.

- Binary frames are PCM16 mono chunks fed to the connection's Session.
- Query params: session_id, token, mode (normal|kws), autostart, format,
  sampleRate (per-connection audio; invalid values fall back to the defaults).
- Text frames are commands: start [mode], end, abort, stop, close
  (plain words or JSON {"type": ..., "mode": ...}).
- Partial/progress/final/error events are pushed back as JSON.
- A non-empty final result is sent to the robot bridge off the event loop;
  the reply is attached to the final message and, with a synthesizer,
  streamed back as one binary audio frame.
"""

import asyncio
import json
import logging
import time
import uuid
from typing import Any, Callable, Optional, Tuple

from fastapi import WebSocket, WebSocketDisconnect

from conversation.bridge import ConversationBridge
from conversation.synthesis import SynthesisError
from streaming.session import Session, SessionMode
from streaming.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

COMMANDS = ("start", "end", "abort", "stop", "close")


def _truthy(value: Optional[str], default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_sample_rate(value: Optional[str]) -> Optional[int]:
    """Positive integer from a query param, or None to use the registry default."""
    try:
        rate = int(value) if value else 0
    except ValueError:
        return None
    return rate if rate > 0 else None


def parse_command(message: str) -> Tuple[Optional[str], Optional[str]]:
    """Text frame -> (command, mode). Unknown input gives (None, None)."""
    text = message.strip()
    if not text:
        return None, None
    mode = None
    if text.startswith("{"):
        try:
            node = json.loads(text)
        except ValueError:
            return None, None
        if not isinstance(node, dict):
            return None, None
        command = str(node.get("type") or node.get("command") or "").strip().lower()
        mode = node.get("mode")
    else:
        parts = text.split()
        command = parts[0].lower()
        if len(parts) > 1:
            mode = parts[1]
    if command not in COMMANDS:
        return None, None
    return command, mode


def build_ws_asr_handler(
    registry: SessionRegistry,
    bridge: Optional[ConversationBridge],
    synthesizer: Any = None,
    get_metrics: Any = None,
    idle_timeout_seconds: float = 300.0,
) -> Callable:
    """
    Build the async WebSocket handler for /ws/asr.

    Args:
        registry: Session registry; one session per connection's session_id.
        bridge: Robot bridge for final results, or None to skip replies.
        synthesizer: Optional object with synthesize(text) -> bytes.
        get_metrics: Optional metrics module (record_connection_open/close, record_final_result, ...).
        idle_timeout_seconds: Close the connection after this long without a frame.

    Returns:
        Async function (websocket: WebSocket) -> None for use with FastAPI.
    """
    metrics = get_metrics

    def _record(name: str, *args) -> None:
        if metrics and hasattr(metrics, name):
            getattr(metrics, name)(*args)

    async def handle_ws_asr(websocket: WebSocket) -> None:
        params = websocket.query_params
        session_id = params.get("session_id") or uuid.uuid4().hex
        token = params.get("token") or ""
        default_mode = SessionMode.parse(params.get("mode"))
        autostart = _truthy(params.get("autostart"))
        audio_format = params.get("format") or None
        sample_rate = _parse_sample_rate(params.get("sampleRate"))

        await websocket.accept()
        _record("record_connection_open")
        logger.info("[%s] WebSocket connected (mode=%s)", session_id, default_mode.value)

        loop = asyncio.get_running_loop()
        outbound: asyncio.Queue = asyncio.Queue()
        reply_tasks = set()

        async def sender() -> None:
            while True:
                item = await outbound.get()
                if item is None:
                    return
                try:
                    if isinstance(item, bytes):
                        await websocket.send_bytes(item)
                    else:
                        await websocket.send_json(item)
                except (WebSocketDisconnect, RuntimeError):
                    return

        def push(item: Any) -> None:
            # Session callbacks run on recognizer threads.
            loop.call_soon_threadsafe(outbound.put_nowait, item)

        async def reply_to(text: str) -> None:
            message = {"type": "final", "text": text}
            if text and token and bridge is not None:
                _record("record_bridge_attempt")
                t0 = time.perf_counter()
                try:
                    reply = await loop.run_in_executor(None, bridge.send_and_receive, text, token)
                except Exception:
                    logger.exception("[%s] Robot bridge call failed", session_id)
                    _record("record_bridge_failure")
                    reply = None
                _record("record_bridge_latency_ms", round((time.perf_counter() - t0) * 1000))
                if reply is None:
                    _record("record_bridge_no_reply")
                message["robotReply"] = reply
                await outbound.put(message)
                if reply and synthesizer is not None:
                    try:
                        audio = await loop.run_in_executor(None, synthesizer.synthesize, reply)
                    except (SynthesisError, ValueError) as e:
                        logger.warning("[%s] Synthesis skipped: %s", session_id, e)
                        return
                    if audio:
                        await outbound.put(audio)
                return
            await outbound.put(message)

        def start_reply(text: str) -> None:
            task = asyncio.ensure_future(reply_to(text))
            reply_tasks.add(task)
            task.add_done_callback(reply_tasks.discard)

        def on_final(text: str) -> None:
            _record("record_final_result", not text)
            logger.info("[%s] Final result: %s", session_id, text)
            loop.call_soon_threadsafe(start_reply, text)

        def on_error() -> None:
            _record("record_recognizer_failure")
            push({"type": "error", "message": "recognition failed"})

        session: Session = registry.get_or_create(session_id, audio_format=audio_format, sample_rate=sample_rate)
        (
            session.on_partial_result(lambda text: push({"type": "partial", "text": text}))
            .on_final_result(on_final)
            .on_progress(lambda text: push({"type": "progress", "text": text}))
            .on_error(on_error)
        )
        sender_task = asyncio.ensure_future(sender())

        if autostart and not session.is_active():
            session.start(default_mode)

        try:
            while True:
                try:
                    data = await asyncio.wait_for(websocket.receive(), timeout=idle_timeout_seconds)
                except asyncio.TimeoutError:
                    logger.info("[%s] Idle timeout", session_id)
                    break
                if data.get("type") == "websocket.disconnect":
                    break
                if data.get("type") != "websocket.receive":
                    continue

                chunk = data.get("bytes")
                if chunk:
                    if not session.is_active() and not session.aborted and autostart:
                        session.start(default_mode)
                    session.add_audio(chunk)
                    continue

                command, mode = parse_command(data.get("text") or "")
                if command is None:
                    continue
                if command == "start":
                    # Restarting an active session stops its stream, which can block on the engine.
                    await loop.run_in_executor(None, session.start, mode if mode is not None else default_mode)
                elif command == "end":
                    await loop.run_in_executor(None, session.end)
                elif command == "abort":
                    session.abort()
                elif command == "stop":
                    await loop.run_in_executor(None, session.stop)
                elif command == "close":
                    break
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.exception("[%s] WebSocket error", session_id)
            try:
                await websocket.send_json({"type": "error", "message": str(e)})
            except Exception:
                pass
        finally:
            await loop.run_in_executor(None, registry.remove, session_id)
            for task in list(reply_tasks):
                task.cancel()
            if reply_tasks:
                await asyncio.gather(*reply_tasks, return_exceptions=True)
            await outbound.put(None)
            await sender_task
            _record("record_connection_close")
            logger.info("[%s] WebSocket closed", session_id)

    return handle_ws_asr
