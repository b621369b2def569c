"""
Settings for the Habitual agents backend, read from the environment (and `.env`).
"""
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Habitual Agents API"
    app_version: str = "1.0.0"
    git_commit: Optional[str] = None
    build_date: Optional[str] = None
    debug: bool = False
    log_level: str = "INFO"

    database_url: str

    # Bearer tokens
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    # Comma-separated, e.g. CORS_ORIGINS="http://localhost:5173,http://localhost:3000"
    cors_origins_raw: str = Field(default="http://localhost:5173", validation_alias="CORS_ORIGINS")

    # Hosted model
    openai_api_key: Optional[str] = None
    model_id: Optional[str] = None  # falls back to gpt-4o
    llm_timeout_seconds: float = 20.0  # hosting platform kills requests shortly after this
    llm_max_tokens: int = 2048
    llm_temperature: float = 0.2
    chat_history_window: int = 12

    # Sandboxed agent files, local deployments only
    filesystem_tools_enabled: bool = False
    agent_data_root: str = "data"

    default_page_size: int = 20
    max_page_size: int = 100

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_origins_raw.split(",") if o.strip()]


settings = Settings()
