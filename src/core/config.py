from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ═══════════════════════════════════════════════════
    # FastAPI Application Settings
    # ═══════════════════════════════════════════════════
    APP_NAME: str = "GPS Race Rooms"
    VERSION: str = "1.0.0"
    ENV: str = "development"  # "development" | "production"
    DEBUG: bool = True

    # ═══════════════════════════════════════════════════
    # Server Configuration
    # ═══════════════════════════════════════════════════
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ═══════════════════════════════════════════════════
    # Room Rules & Limits
    # ═══════════════════════════════════════════════════
    MAX_PLAYERS_PER_ROOM: int = 6
    MIN_PLAYERS_TO_START: int = 2
    DEFAULT_SEARCH_RADIUS_KM: float = 0.1
    ROOM_CODE_LENGTH: int = 6
    ROOM_CODE_MAX_ATTEMPTS: int = 100

    # ═══════════════════════════════════════════════════
    # Eviction Sweep
    # ═══════════════════════════════════════════════════
    SWEEP_INTERVAL_SEC: float = 10.0
    ACTIVE_PLAYER_TIMEOUT_SEC: int = 30
    SETUP_PLAYER_TIMEOUT_SEC: int = 120
    EMPTY_ROOM_TTL_SEC: int = 300
    ROOM_MAX_AGE_SEC: int = 3600

    # ═══════════════════════════════════════════════════
    # Race Client
    # ═══════════════════════════════════════════════════
    RACE_API_URL: str = "http://localhost:8000"
    CLIENT_TIMEOUT_SEC: float = 5.0
    POLL_INTERVAL_SEC: float = 1.0
    CLOCK_TICK_SEC: float = 1.0

    # ═══════════════════════════════════════════════════
    # CORS Configuration
    # ═══════════════════════════════════════════════════
    CORS_ORIGINS: list[str] = ["*"]
    CORS_CREDENTIALS: bool = True
    CORS_METHODS: list[str] = ["*"]
    CORS_HEADERS: list[str] = ["*"]

    class Config:
        env_file = ".env"
        extra = "ignore"


_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Singleton Settings instance.

    Used through FastAPI dependency injection:

    @app.get("/info")
    def info(settings: Settings = Depends(get_settings)):
        return {"env": settings.ENV}
    """
    global _settings
    if not _settings:
        _settings = Settings()
    return _settings
