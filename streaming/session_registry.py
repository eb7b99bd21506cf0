"""
Thread-safe registry of sessions keyed by session id.
"""

import logging
import threading
from typing import Dict, List, Optional

from streaming.recognizer import Recognizer
from streaming.session import Session, SessionPolicy

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Owns the id -> Session map. Only lifecycle calls reach the sessions;
    `stop()` always runs outside the registry lock.
    """

    def __init__(
        self,
        recognizer: Recognizer,
        audio_format: str = "pcm",
        sample_rate: int = 16000,
        policy: Optional[SessionPolicy] = None,
        enable_deduplication: bool = True,
    ):
        self.recognizer = recognizer
        self.audio_format = audio_format
        self.sample_rate = sample_rate
        self.policy = policy
        self.enable_deduplication = enable_deduplication
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}

    def get_or_create(
        self,
        session_id: str,
        audio_format: Optional[str] = None,
        sample_rate: Optional[int] = None,
    ) -> Session:
        """
        Return the session for `session_id`, creating it once if absent.
        `audio_format` and `sample_rate` override the registry defaults for a new session only.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.info("Creating session: %s", session_id)
                session = Session(
                    session_id,
                    self.recognizer,
                    audio_format=audio_format or self.audio_format,
                    sample_rate=sample_rate or self.sample_rate,
                    policy=self.policy,
                    enable_deduplication=self.enable_deduplication,
                )
                self._sessions[session_id] = session
            return session

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[Session]:
        """Remove a session and stop the instance that was removed."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.info("Removing session: %s", session_id)
            session.stop()
        return session

    def clear_all(self) -> None:
        with self._lock:
            sessions: List[Session] = list(self._sessions.values())
            self._sessions.clear()
        logger.info("Clearing all sessions, %d in total", len(sessions))
        for session in sessions:
            session.stop()

    def active_count(self) -> int:
        with self._lock:
            sessions = list(self._sessions.values())
        return sum(1 for s in sessions if s.is_active())

    def total_count(self) -> int:
        with self._lock:
            return len(self._sessions)
