import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Socket.IO ("" picks a default per platform)
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Game
    TURN_TIME_SEC = int(os.environ.get("TURN_TIME_SEC", "10"))
    MIN_TURN_TIME_SEC = int(os.environ.get("MIN_TURN_TIME_SEC", "5"))
    MAX_TURN_TIME_SEC = int(os.environ.get("MAX_TURN_TIME_SEC", "60"))
    WINS_TO_END_GAME = int(os.environ.get("WINS_TO_END_GAME", "3"))
    MIN_PLAYERS = int(os.environ.get("MIN_PLAYERS", "2"))
    ROOM_CODE_LENGTH = int(os.environ.get("ROOM_CODE_LENGTH", "6"))
    TIMER_TICK_SEC = float(os.environ.get("TIMER_TICK_SEC", "1"))

    # Room cleanup
    ROOM_TIMEOUT_SEC = int(os.environ.get("ROOM_TIMEOUT_SEC", str(30 * 60)))
    EMPTY_ROOM_TIMEOUT_SEC = int(os.environ.get("EMPTY_ROOM_TIMEOUT_SEC", str(5 * 60)))
    # 0 disables the periodic sweep.
    CLEANUP_INTERVAL_SEC = int(os.environ.get("CLEANUP_INTERVAL_SEC", str(5 * 60)))
