import os
from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DB_SSL: bool = _as_bool(os.getenv("DB_SSL", "false"))
    DB_ECHO: bool = _as_bool(os.getenv("DB_ECHO", "false"))
    DB_STATEMENT_TIMEOUT_MS: int = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "30000"))
    DEFAULT_PAGE_LIMIT: int = int(os.getenv("DEFAULT_PAGE_LIMIT", "1000"))
    DIVISION_PAGE_LIMIT: int = int(os.getenv("DIVISION_PAGE_LIMIT", "100"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS: list[str] = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()
    ]
    SEED_DATA_DIR: str = os.getenv("SEED_DATA_DIR", "data")

settings = Settings()
