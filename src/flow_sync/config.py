from __future__ import annotations

from typing import ClassVar, final

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


@final
class Settings(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )
    app_name: str = "Flow Sync"

    database_url: str = "sqlite:///./flow_sync.db"

    tasks_api_base_url: str = "https://tasks.example.com/tasks/v1"
    # Bearer token for the remote task service; empty means "not logged in".
    tasks_api_token: str = Field(
        default="",
        validation_alias=AliasChoices("TASKS_API_TOKEN", "TASKS_TOKEN"),
    )
    tasks_api_timeout_seconds: float = 15.0
    # Max results requested per page when downloading modified tasks.
    sync_page_size: int = 100

    # Sync only runs when enabled and the configured account matches the caller.
    sync_enabled: bool = False
    sync_account: str = ""

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _validate_sync_settings(self) -> "Settings":  # pyright: ignore[reportUnusedFunction]
        errors: list[str] = []
        if self.tasks_api_timeout_seconds <= 0:
            errors.append("TASKS_API_TIMEOUT_SECONDS must be positive")
        if self.sync_page_size <= 0:
            errors.append("SYNC_PAGE_SIZE must be positive")
        if self.sync_enabled and not self.tasks_api_base_url.strip():
            errors.append("TASKS_API_BASE_URL must be set when SYNC_ENABLED=true")
        if errors:
            raise ValueError("Invalid sync settings: " + "; ".join(errors))
        self.sync_account = self.sync_account.strip()
        return self


settings = Settings()
