"""
HTTP speech-synthesis client.

POSTs the reply text to a TTS gateway and returns raw audio bytes. Gateways
report failures as a JSON body, so a JSON response is treated as an error
even when the status code is 200.
"""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class SynthesisError(RuntimeError):
    """TTS request failed or the gateway returned an error body instead of audio."""


class HttpSynthesizer:
    def __init__(
        self,
        url: str,
        token: str = "",
        app_key: str = "",
        voice: str = "xiaoyun",
        fmt: str = "pcm",
        sample_rate: int = 16000,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        if not url or not url.strip():
            raise ValueError("TTS url must be provided")
        self.url = url
        self.token = token
        self.app_key = app_key
        self.voice = voice
        self.format = fmt
        self.sample_rate = sample_rate
        self.timeout = timeout
        self._http = session or requests.Session()

    @classmethod
    def from_config(cls) -> Optional["HttpSynthesizer"]:
        """Synthesizer from config, or None when TTS_URL is not set."""
        import config
        if not config.TTS_URL:
            return None
        return cls(
            url=config.TTS_URL,
            token=config.TTS_TOKEN,
            app_key=config.TTS_APP_KEY,
            voice=config.TTS_VOICE,
            fmt=config.TTS_FORMAT,
            sample_rate=config.TTS_SAMPLE_RATE,
            timeout=config.TTS_TIMEOUT_SECONDS,
        )

    def synthesize(
        self,
        text: str,
        voice: Optional[str] = None,
        fmt: Optional[str] = None,
        sample_rate: Optional[int] = None,
    ) -> bytes:
        if not text or not text.strip():
            raise ValueError("Text must not be empty")
        sample_rate = sample_rate or self.sample_rate
        if sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got: {sample_rate}")

        payload = {
            "text": text,
            "voice": voice or self.voice,
            "format": fmt or self.format,
            "sample_rate": sample_rate,
        }
        if self.app_key:
            payload["appkey"] = self.app_key
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["X-NLS-Token"] = self.token

        logger.info("TTS request: %d chars, voice=%s", len(text), payload["voice"])
        try:
            resp = self._http.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise SynthesisError(f"TTS request failed: {e}") from e

        content_type = resp.headers.get("Content-Type", "")
        if resp.status_code >= 400:
            raise SynthesisError(f"TTS HTTP {resp.status_code}: {resp.text[:200]}")
        if "application/json" in content_type.lower():
            raise SynthesisError(f"TTS error response: {resp.text[:200]}")

        audio = resp.content
        logger.info("TTS returned %d bytes", len(audio))
        return audio
