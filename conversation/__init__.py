"""
Conversation layer: final transcript -> robot reply -> (optional) speech.

- bridge: one WebSocket exchange per call, retry, streamed reply assembly.
- extraction: reply text from the backend's several message shapes.
- synthesis: HTTP TTS client.
"""

from conversation.bridge import BridgeSettings, ConversationBridge, RobotExchange
from conversation.synthesis import HttpSynthesizer, SynthesisError

__all__ = [
    "BridgeSettings",
    "ConversationBridge",
    "RobotExchange",
    "HttpSynthesizer",
    "SynthesisError",
]
