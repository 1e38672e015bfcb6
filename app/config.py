import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./data/db.sqlite3"
    api_key: str = ""  # empty = no auth check (local dev)
    log_level: str = "INFO"

    ai_provider: str = "openai"  # openai | groq
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = ""
    groq_api_key: str = ""
    groq_model: str = "llama-3.3-70b-versatile"
    groq_base_url: str = "https://api.groq.com/openai/v1"
    ai_timeout_seconds: float = 30.0

    analysis_poll_interval_seconds: float = 0.5
    analysis_wait_timeout_seconds: float = 35.0
    analysis_claim_ttl_seconds: float = 120.0

    data_dir: str = "./data"
    storage_url_prefix: str = "/storage"
    max_image_size_bytes: int = 5 * 1024 * 1024  # 5MB
    max_images: int = 5

    session_cookie_name: str = "diagnosis_session"
    session_cookie_secure: bool = False
    cors_origins: list[str] = ["http://localhost:8000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def storage_dir(self) -> str:
        return os.path.join(self.data_dir, "storage")


settings = Settings()
