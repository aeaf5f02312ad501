from typing import List, Optional

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    ENV: str = "local"  # Environment setting
    LOG_LEVEL: str = "INFO"

    # Storage: "database" (SQLAlchemy) or "memory" (process-local)
    STORAGE_BACKEND: str = "database"
    DATABASE_URL: str = "sqlite:///./aniverse.db"

    # Perplexity (OpenAI-compatible chat completions)
    PERPLEXITY_API_KEY: Optional[str] = None
    PERPLEXITY_BASE_URL: str = "https://api.perplexity.ai"
    PERPLEXITY_MODEL: str = "sonar"
    UPSTREAM_TIMEOUT_SECONDS: float = 30.0
    CHAT_HISTORY_WINDOW: int = 10

    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"

settings = Settings()
