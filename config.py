"""
Production configuration via environment variables.
Load with python-dotenv; no hardcoded credentials or endpoints beyond local defaults.
"""
import os

from dotenv import load_dotenv

# Load .env if present (production env is usually set by the orchestrator)
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


# ----- Server -----
PORT = int(os.environ.get("PORT", "8001"))
HOST = os.environ.get("HOST", "0.0.0.0")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ----- Recognizer (Whisper adapter) -----
# Whisper size (tiny, base, small, medium, large-v3) or a local checkpoint path
WHISPER_MODEL = os.environ.get("WHISPER_MODEL", "base")
ASR_LANGUAGE = os.environ.get("ASR_LANGUAGE", "zh")
ASR_FORMAT = os.environ.get("ASR_FORMAT", "pcm")
ASR_SAMPLE_RATE = int(os.environ.get("ASR_SAMPLE_RATE", "16000"))
# Adapter windowing: transcribe every ASR_WINDOW_SECONDS, keep ASR_OVERLAP_SECONDS for the next window
ASR_WINDOW_SECONDS = float(os.environ.get("ASR_WINDOW_SECONDS", "2.0"))
ASR_OVERLAP_SECONDS = float(os.environ.get("ASR_OVERLAP_SECONDS", "0.5"))

# ----- Device -----
# auto | cuda | cpu
DEVICE = os.environ.get("DEVICE", "auto")
def resolve_device() -> str:
    if DEVICE != "auto":
        return DEVICE
    try:
        import torch
        return "cuda" if torch.cuda.is_available() else "cpu"
    except Exception:
        return "cpu"

# ----- Session policy (thresholds, not physical limits) -----
MIN_AUDIO_SECONDS = float(os.environ.get("MIN_AUDIO_SECONDS", "0.3"))
KWS_RECOGNIZE_INTERVAL = int(os.environ.get("KWS_RECOGNIZE_INTERVAL", "8"))  # chunks (~0.4 s)
KWS_KEEP_SECONDS = float(os.environ.get("KWS_KEEP_SECONDS", "0.5"))
PROGRESS_INTERVAL_CHUNKS = int(os.environ.get("PROGRESS_INTERVAL_CHUNKS", "10"))
ENABLE_DEDUPLICATION = _env_bool("ENABLE_DEDUPLICATION", "true")

# ----- Conversational backend (robot) -----
ROBOT_WS_URL = os.environ.get("ROBOT_WS_URL", "ws://localhost:8080/api/v1/robot/memory/ws")
ROBOT_PERSONA_ID = os.environ.get("ROBOT_PERSONA_ID", "394f8467-b114-4ef3-8647-077d2eab5a9d")
ROBOT_SCENE = os.environ.get("ROBOT_SCENE", "chat")
ROBOT_INPUT_TYPE = os.environ.get("ROBOT_INPUT_TYPE", "listening")
ROBOT_TIMEOUT_SECONDS = float(os.environ.get("ROBOT_TIMEOUT_SECONDS", "120"))
ROBOT_MAX_ATTEMPTS = int(os.environ.get("ROBOT_MAX_ATTEMPTS", "3"))
ROBOT_OPEN_TIMEOUT_SECONDS = float(os.environ.get("ROBOT_OPEN_TIMEOUT_SECONDS", "10"))

# ----- Synthesizer (empty TTS_URL disables synthesis) -----
TTS_URL = os.environ.get("TTS_URL", "")
TTS_TOKEN = os.environ.get("TTS_TOKEN", "")
TTS_APP_KEY = os.environ.get("TTS_APP_KEY", "")
TTS_VOICE = os.environ.get("TTS_VOICE", "xiaoyun")
TTS_FORMAT = os.environ.get("TTS_FORMAT", "pcm")
TTS_SAMPLE_RATE = int(os.environ.get("TTS_SAMPLE_RATE", "16000"))
TTS_TIMEOUT_SECONDS = float(os.environ.get("TTS_TIMEOUT_SECONDS", "30"))

# ----- CORS (production: set to specific origins) -----
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")
def get_cors_origins() -> list:
    """Return list of allowed CORS origins from env."""
    if CORS_ORIGINS == "*":
        return ["*"]
    return [o.strip() for o in CORS_ORIGINS.split(",") if o.strip()]
