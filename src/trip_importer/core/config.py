from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    database_url: str = "sqlite:///./trip_importer.db"
    log_level: str = "INFO"

    ai_enabled: bool = False
    ai_api_key: str | None = None
    ai_base_url: str = "https://openrouter.ai/api/v1"
    ai_model: str = "google/gemini-2.0-flash-001"
    ai_timeout_seconds: float = 25.0
    ai_max_chars: int = 12000

    tesseract_lang: str = "por+eng"

    import_batch_size: int = 5
    max_item_warnings: int = 20
    min_text_chars_for_ai: int = 20
    low_quality_text_chars: int = 80
    allowed_extensions: tuple[str, ...] = (
        "txt",
        "html",
        "eml",
        "pdf",
        "png",
        "jpg",
        "jpeg",
        "webp",
    )


settings = Settings()
