"""
Streaming observability metrics.

Thread-safe counters and latency samples for /ws/asr and the robot bridge.
Exposed via GET /metrics/streaming (JSON snapshot).
"""

import threading
from collections import deque
from typing import Any, Dict

# ----- Shared state (module-level for singleton behavior) -----
_lock = threading.Lock()
_active_connections = 0
_final_results = 0
_empty_finals = 0
_recognizer_failures = 0
_bridge_attempts = 0
_bridge_failures = 0
_bridge_no_reply = 0
_bridge_latency_samples: deque = deque(maxlen=1000)  # last N round trips for avg/p95


def record_connection_open() -> None:
    """Call when a WebSocket connection is accepted."""
    global _active_connections
    with _lock:
        _active_connections += 1


def record_connection_close() -> None:
    """Call when a WebSocket connection closes."""
    global _active_connections
    with _lock:
        _active_connections = max(0, _active_connections - 1)


def record_final_result(empty: bool = False) -> None:
    global _final_results, _empty_finals
    with _lock:
        _final_results += 1
        if empty:
            _empty_finals += 1


def record_recognizer_failure() -> None:
    """Call when a session reports a recognizer error."""
    global _recognizer_failures
    with _lock:
        _recognizer_failures += 1


def record_bridge_attempt() -> None:
    global _bridge_attempts
    with _lock:
        _bridge_attempts += 1


def record_bridge_failure() -> None:
    """Call when a bridge call raised instead of returning."""
    global _bridge_failures
    with _lock:
        _bridge_failures += 1


def record_bridge_no_reply() -> None:
    global _bridge_no_reply
    with _lock:
        _bridge_no_reply += 1


def record_bridge_latency_ms(total_ms: float) -> None:
    with _lock:
        _bridge_latency_samples.append(total_ms)


def reset() -> None:
    global _active_connections, _final_results, _empty_finals, _recognizer_failures
    global _bridge_attempts, _bridge_failures, _bridge_no_reply
    with _lock:
        _active_connections = 0
        _final_results = 0
        _empty_finals = 0
        _recognizer_failures = 0
        _bridge_attempts = 0
        _bridge_failures = 0
        _bridge_no_reply = 0
        _bridge_latency_samples.clear()


def get_snapshot() -> Dict[str, Any]:
    """
    Return a JSON-serializable snapshot of streaming metrics.
    Used by GET /metrics/streaming.
    """
    with _lock:
        samples = list(_bridge_latency_samples)
        snapshot = {
            "active_connections": _active_connections,
            "final_results": _final_results,
            "empty_finals": _empty_finals,
            "recognizer_failures": _recognizer_failures,
            "bridge_attempts": _bridge_attempts,
            "bridge_failures": _bridge_failures,
            "bridge_no_reply": _bridge_no_reply,
        }
    n = len(samples)
    if n == 0:
        avg_latency_ms = None
        p95_latency_ms = None
    else:
        avg_latency_ms = round(sum(samples) / n, 2)
        sorted_s = sorted(samples)
        idx = max(0, int(0.95 * n) - 1)
        p95_latency_ms = round(sorted_s[idx], 2)
    snapshot.update({
        "avg_bridge_latency_ms": avg_latency_ms,
        "p95_bridge_latency_ms": p95_latency_ms,
        "bridge_latency_sample_count": n,
    })
    return snapshot
