from __future__ import annotations

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    app_version: str = "2026-10-01.v1"
    database_url: str = "sqlite:///./rentroll_sync.db"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Calendar ----
    # Business calendar: "today" is always computed in this zone, never server-local.
    business_timezone: str = "America/Los_Angeles"

    # ---- Storage ----
    write_chunk_size: int = 1000

    # ---- Overdue sweeps ----
    makeready_cushion_days: int = 1
    makeready_error_days: int = 7
    application_overdue_days: int = 7
    application_error_days: int = 14
    moveout_overdue_error_days: int = 7

    # ---- Reporting ----
    known_property_codes: list[str] = ["SB", "RS", "OB", "CV", "WO"]
    report_base_url: str = ""

    # ---- Celery ----
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")

        if not 1 <= int(self.write_chunk_size) <= 1000:
            raise ValueError("write_chunk_size must be between 1 and 1000")

        try:
            ZoneInfo(self.business_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"business_timezone is not a known zone: {self.business_timezone}") from e


settings = Settings()
