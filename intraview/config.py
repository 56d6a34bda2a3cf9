"""Configuration management from environment variables"""

import os
import sys
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _optional_int(name):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return int(value)


class Config:
    """Application configuration from environment variables"""

    # =========================================================================
    # CREDENTIALS
    # =========================================================================
    # A local relay server hides the API key; when it is set no key is sent
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
    LOCAL_RELAY_SERVER_URL = os.getenv("LOCAL_RELAY_SERVER_URL", "")

    # Logger (set by main.py once telemetry is initialized)
    LOGGER = None

    # =========================================================================
    # REALTIME API
    # =========================================================================
    REALTIME_URL = os.getenv("REALTIME_URL", "wss://api.openai.com/v1/realtime")
    REALTIME_MODEL = os.getenv("REALTIME_MODEL", "gpt-4o-realtime-preview-2024-10-01")
    REALTIME_VOICE = os.getenv("REALTIME_VOICE", "alloy")
    TRANSCRIPTION_MODEL = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")

    # "none" = push-to-talk, "server_vad" = conversation mode
    TURN_MODE = os.getenv("TURN_MODE", "none")

    # Seconds before a websocket send is considered dead
    SEND_TIMEOUT = 5.0

    # =========================================================================
    # AUDIO (hardcoded - the realtime API speaks 24kHz mono PCM16)
    # =========================================================================
    SAMPLE_RATE = 24000
    CHANNELS = 1
    CHUNK_SIZE = 2400  # 100ms frames

    MIC_DEVICE_INDEX = _optional_int("MIC_DEVICE_INDEX")
    SPEAKER_DEVICE_INDEX = _optional_int("SPEAKER_DEVICE_INDEX")

    # =========================================================================
    # LOGGING CONFIGURATION
    # =========================================================================
    SHOW_AUDIO_DELTA_LOGS = os.getenv("SHOW_AUDIO_DELTA_LOGS", "false").lower() == "true"
    SHOW_TURN_LOGS = os.getenv("SHOW_TURN_LOGS", "true").lower() == "true"

    # OTEL defaults come from env so telemetry can start before the first session
    OTEL_ENABLED = os.getenv("OTEL_ENABLED", "false").lower() == "true"
    OTEL_EXPORTER_ENDPOINT = os.getenv("OTEL_EXPORTER_ENDPOINT", "http://localhost:4318")

    # Environment
    ENV = os.getenv("ENV", "development")

    @classmethod
    def validate(cls):
        """Validate required configuration"""
        if not cls.OPENAI_API_KEY and not cls.LOCAL_RELAY_SERVER_URL:
            print("✗ Missing OPENAI_API_KEY (or LOCAL_RELAY_SERVER_URL)")
            print("   Set one of them in the environment or in a .env file")
            sys.exit(1)

        if cls.TURN_MODE not in ("none", "server_vad"):
            print(f"✗ Invalid TURN_MODE '{cls.TURN_MODE}' (expected 'none' or 'server_vad')")
            sys.exit(1)

    @classmethod
    def realtime_url(cls) -> str:
        """Websocket URL for the realtime session, relay server first"""
        if cls.LOCAL_RELAY_SERVER_URL:
            url = cls.LOCAL_RELAY_SERVER_URL
            if url.startswith("http"):
                url = "ws" + url[len("http"):]
            return url
        return f"{cls.REALTIME_URL}?model={cls.REALTIME_MODEL}"
