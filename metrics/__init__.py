"""
Observability and streaming metrics.
"""

from metrics.streaming_metrics import (
    get_snapshot,
    record_bridge_attempt,
    record_bridge_failure,
    record_bridge_latency_ms,
    record_bridge_no_reply,
    record_connection_close,
    record_connection_open,
    record_final_result,
    record_recognizer_failure,
    reset,
)

__all__ = [
    "get_snapshot",
    "record_bridge_attempt",
    "record_bridge_failure",
    "record_bridge_latency_ms",
    "record_bridge_no_reply",
    "record_connection_close",
    "record_connection_open",
    "record_final_result",
    "record_recognizer_failure",
    "reset",
]
