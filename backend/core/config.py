# backend/core/config.py
import os
from typing import List
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - HOST / PORT where uvicorn binds
        - DEFAULT_ROOM_ID the room used when a client sends no room code
        - HEARTBEAT_INTERVAL_MS how often active rooms get a fresh snapshot
        - ROOM_TTL_MS how long an empty, untouched room survives the sweep
    """

    # Load environment variables from the .env file
    load_dotenv()

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    DEFAULT_ROOM_ID: str = os.getenv("DEFAULT_ROOM_ID", "DEMO")
    ROOM_ID_MAX_LENGTH: int = int(os.getenv("ROOM_ID_MAX_LENGTH", "8"))

    DEFAULT_DURATION_MS: int = int(os.getenv("DEFAULT_DURATION_MS", "180000"))
    MIN_DURATION_MS: int = int(os.getenv("MIN_DURATION_MS", "1000"))

    HEARTBEAT_INTERVAL_MS: int = int(os.getenv("HEARTBEAT_INTERVAL_MS", "100"))
    SWEEP_INTERVAL_MS: int = int(os.getenv("SWEEP_INTERVAL_MS", str(5 * 60_000)))
    ROOM_TTL_MS: int = int(os.getenv("ROOM_TTL_MS", str(4 * 60 * 60_000)))

    CORS_ORIGINS: List[str] = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
    ]

settings = Settings()
