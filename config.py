import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> List[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]


class Settings:
    """Application settings loaded from environment variables (and .env).

    Values are read when the instance is created, so tests can change the
    environment and call ``get_settings.cache_clear()``.
    """

    def __init__(self):
        self.app_env: str = os.getenv("APP_ENV", "development")
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.allowed_origins: List[str] = _env_list("ALLOWED_ORIGINS", "*")

        self.database_url: str = os.getenv("DATABASE_URL", "sqlite:///./chat.db")

        # LLM
        self.llm_provider: str = os.getenv("LLM_PROVIDER", "openai").strip().lower()
        self.openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
        self.openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")
        self.gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY")
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
        self.llm_max_retries: int = max(1, int(os.getenv("LLM_MAX_RETRIES", "1")))
        self.llm_retry_delay: float = float(os.getenv("LLM_RETRY_DELAY", "2"))
        self.request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "60"))
        self.system_prompt: str = os.getenv("SYSTEM_PROMPT", "You are a helpful assistant.")

        # Context / memory
        self.max_context_tokens: int = int(os.getenv("MAX_CONTEXT_TOKENS", "2000"))
        self.memory_fetch_limit: int = int(os.getenv("MEMORY_FETCH_LIMIT", "50"))
        self.memory_include_user_turns: bool = _env_bool("MEMORY_INCLUDE_USER_TURNS", False)
        self.memory_max_rows: int = int(os.getenv("MEMORY_MAX_ROWS", "0"))

        # Storage
        self.storage_backend: str = os.getenv("STORAGE_BACKEND", "local").strip().lower()
        self.upload_dir: str = os.getenv("UPLOAD_DIR", "uploads")
        self.public_base_url: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
        self.cloudinary_cloud_name: Optional[str] = os.getenv("CLOUDINARY_CLOUD_NAME")
        self.cloudinary_api_key: Optional[str] = os.getenv("CLOUDINARY_API_KEY")
        self.cloudinary_api_secret: Optional[str] = os.getenv("CLOUDINARY_API_SECRET")
        self.cloudinary_folder: str = os.getenv("CLOUDINARY_FOLDER", "uploads")

        # Upload processing
        self.summary_enabled: bool = _env_bool("SUMMARY_ENABLED", True)
        self.summary_min_chars: int = int(os.getenv("SUMMARY_MIN_CHARS", "5"))
        self.tesseract_cmd: Optional[str] = os.getenv("TESSERACT_CMD")
        self.ocr_lang: str = os.getenv("OCR_LANG", "eng")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
