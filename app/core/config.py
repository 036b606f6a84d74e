"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Backend-specific requirements (e.g. Firestore
credentials) are validated at load time.
"""

from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment and .env.

    All settings have defaults; the in-memory backend needs no other
    configuration, which is what tests and local development use.
    """

    # App
    app_name: str = "assignment-tracker"
    app_version: str = "1.0.0"
    debug: bool = False

    # Entity store: "memory" (in-process) or "firestore" (Firestore REST API)
    database_backend: str = "memory"

    # Firebase / Firestore: use key (env) or path (file).
    firebase_service_account_key: SecretStr | None = None
    firebase_service_account_path: str | None = None  # Path to JSON file
    # Optimistic-concurrency retries for guarded writes (updateTime precondition).
    firestore_max_write_retries: int = 5

    # CORS
    allowed_origins: str = "http://localhost:3000,http://localhost:8080"

    # Request / middleware
    request_timeout_seconds: int = 60
    request_id_header: str = "X-Request-ID"

    # List endpoints (0 = unlimited)
    task_list_default_limit: int = 100
    user_list_default_limit: int = 0

    # Synchronization engine
    # True: primary write + reconciliation commit atomically (store transaction).
    sync_transactional: bool = False
    sync_max_attempts: int = 3
    sync_retry_backoff_seconds: float = 0.05
    sync_timeout_seconds: float = 5.0
    # Total reconciliation time per request; must stay below request_timeout_seconds.
    sync_budget_seconds: float = 30.0
    # Re-check the assignee pending set when a single task is read and fix it.
    sync_repair_on_read: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_backend(self) -> "Settings":
        """Validate the entity store backend and sync limits.

        - Firestore: FIREBASE_SERVICE_ACCOUNT_KEY or FIREBASE_SERVICE_ACCOUNT_PATH required.
        """
        if self.database_backend == "firestore":
            has_key = (
                self.firebase_service_account_key
                and self.firebase_service_account_key.get_secret_value()
            )
            if not has_key and not self.firebase_service_account_path:
                raise ValueError(
                    "When database_backend is 'firestore', set FIREBASE_SERVICE_ACCOUNT_KEY (full JSON string) "
                    "or FIREBASE_SERVICE_ACCOUNT_PATH (path to JSON file)."
                )
        elif self.database_backend != "memory":
            raise ValueError(
                f"database_backend must be 'memory' or 'firestore', got: {self.database_backend!r}"
            )
        if self.sync_max_attempts < 1:
            raise ValueError("SYNC_MAX_ATTEMPTS must be at least 1")
        if self.sync_timeout_seconds <= 0:
            raise ValueError("SYNC_TIMEOUT_SECONDS must be positive")
        if not 0 < self.sync_budget_seconds < self.request_timeout_seconds:
            raise ValueError("SYNC_BUDGET_SECONDS must be positive and below REQUEST_TIMEOUT_SECONDS")
        if self.task_list_default_limit < 0 or self.user_list_default_limit < 0:
            raise ValueError("List default limits must be >= 0 (0 = unlimited)")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
