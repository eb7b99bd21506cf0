"""
Voice conversation API.
Streaming ASR sessions over WebSocket, final transcript -> robot reply -> optional TTS.
"""
import asyncio
import base64
import logging
import threading
from typing import Optional

import uvicorn
import whisper
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

import config
import metrics.streaming_metrics as streaming_metrics
from conversation.bridge import BridgeSettings, ConversationBridge
from conversation.synthesis import HttpSynthesizer, SynthesisError
from streaming.session import SessionPolicy
from streaming.session_registry import SessionRegistry
from streaming.streaming_asr import WhisperRecognizer
from streaming.websocket_server import build_ws_asr_handler

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("main")

app = FastAPI(title="Voice Conversation API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

inference_lock = threading.Lock()

_device = config.resolve_device()
logger.info("Loading Whisper model %s on %s", config.WHISPER_MODEL, _device)
whisper_model = whisper.load_model(config.WHISPER_MODEL, device=_device)

recognizer = WhisperRecognizer(
    whisper_model,
    language=config.ASR_LANGUAGE or None,
    window_seconds=config.ASR_WINDOW_SECONDS,
    overlap_seconds=config.ASR_OVERLAP_SECONDS,
    inference_lock=inference_lock,
)
registry = SessionRegistry(
    recognizer,
    audio_format=config.ASR_FORMAT,
    sample_rate=config.ASR_SAMPLE_RATE,
    policy=SessionPolicy.from_config(),
    enable_deduplication=config.ENABLE_DEDUPLICATION,
)
bridge = ConversationBridge(BridgeSettings.from_config())
synthesizer = HttpSynthesizer.from_config()
if synthesizer is None:
    logger.info("TTS_URL not set, speech synthesis disabled")
logger.info("All engines loaded.")


class ChatRequest(BaseModel):
    text: str
    token: str


class TtsRequest(BaseModel):
    text: str
    voice: Optional[str] = None
    format: Optional[str] = None
    sampleRate: Optional[int] = None


@app.get("/")
def health_check():
    return {
        "status": "ok",
        "message": "Voice Conversation API is running",
        "sessions_total": registry.total_count(),
        "sessions_active": registry.active_count(),
        "tts_enabled": synthesizer is not None,
    }


@app.get("/metrics/streaming", include_in_schema=False)
def metrics_streaming():
    """JSON snapshot: connections, final results, recognizer failures, bridge outcomes and latency."""
    return streaming_metrics.get_snapshot()


@app.post("/api/chat")
async def chat(req: ChatRequest):
    if not req.text.strip() or not req.token.strip():
        raise HTTPException(status_code=400, detail="text and token are required")
    loop = asyncio.get_running_loop()
    reply = await loop.run_in_executor(None, bridge.send_and_receive, req.text, req.token)
    return {"reply": reply}


@app.post("/api/asr")
async def asr(request: Request, format: str = "pcm", sampleRate: str = str(config.ASR_SAMPLE_RATE)):
    """Recognize one complete clip POSTed as the raw request body."""
    try:
        sample_rate = int(sampleRate)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid sampleRate parameter")
    data = await request.body()
    if not data:
        raise HTTPException(status_code=400, detail="Empty request body, please POST raw audio bytes")
    loop = asyncio.get_running_loop()
    try:
        text = await loop.run_in_executor(None, recognizer.transcribe_clip, data, format, sample_rate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("ASR failed")
        raise HTTPException(status_code=500, detail=f"ASR failed: {e}")
    return {"result": text}


@app.post("/api/tts")
async def tts(req: TtsRequest):
    if synthesizer is None:
        raise HTTPException(status_code=503, detail="Speech synthesis is not configured")
    loop = asyncio.get_running_loop()
    try:
        audio = await loop.run_in_executor(
            None,
            lambda: synthesizer.synthesize(req.text, voice=req.voice, fmt=req.format, sample_rate=req.sampleRate),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SynthesisError as e:
        logger.error("TTS failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    return {
        "audioBase64": base64.b64encode(audio).decode("ascii"),
        "format": req.format or synthesizer.format,
        "sampleRate": req.sampleRate or synthesizer.sample_rate,
    }


app.websocket("/ws/asr")(
    build_ws_asr_handler(registry, bridge, synthesizer=synthesizer, get_metrics=streaming_metrics)
)


@app.on_event("shutdown")
def shutdown():
    registry.clear_all()


if __name__ == "__main__":
    uvicorn.run(app, host=config.HOST, port=config.PORT)
