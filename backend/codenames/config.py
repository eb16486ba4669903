import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Rooms (memory only)
    DEFAULT_MAX_PLAYERS = int(os.environ.get("DEFAULT_MAX_PLAYERS", "4"))
    ROOM_MAX_AGE_SEC = int(os.environ.get("ROOM_MAX_AGE_SEC", str(12 * 60 * 60)))
    ROOM_SWEEP_INTERVAL_SEC = int(os.environ.get("ROOM_SWEEP_INTERVAL_SEC", "300"))

    # Game
    NAME_MAX_LENGTH = int(os.environ.get("NAME_MAX_LENGTH", "4"))
    CLUE_MAX_LENGTH = int(os.environ.get("CLUE_MAX_LENGTH", "20"))
    WORD_MAX_LENGTH = int(os.environ.get("WORD_MAX_LENGTH", "10"))

    # Theme word generation (OpenAI-compatible chat completions)
    AI_API_URL = os.environ.get("AI_API_URL", "https://ark.cn-beijing.volces.com/api/v3/chat/completions")
    AI_API_KEY = os.environ.get("AI_API_KEY", "")
    AI_MODEL = os.environ.get("AI_MODEL", "doubao-seed-1-8-251228")
    AI_TIMEOUT_SEC = float(os.environ.get("AI_TIMEOUT_SEC", "30"))
    AI_MAX_ATTEMPTS = int(os.environ.get("AI_MAX_ATTEMPTS", "3"))
