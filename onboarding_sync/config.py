"""Onboarding Sync — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class OnboardingSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # ── Planning Center People ─────────────────────────────────
    pco_app_id: str = ""
    pco_secret: str = ""
    pco_base_url: str = "https://api.planningcenteronline.com"

    # ── Rate Governor ──────────────────────────────────────────
    rate_limit_default: int = 100
    rate_limit_window_seconds: float = 20.0
    rate_limit_low_water_mark: int = 10
    rate_limit_buffer_ms: int = 100
    rate_limit_fallback_wait_seconds: float = 20.0
    rate_limit_max_retries: int = 5
    rate_limit_header_prefix: str = "X-PCO-API-Request-Rate"

    # ── Field sync ─────────────────────────────────────────────
    field_definitions_page_size: int = 100

    # ── Team requirements ──────────────────────────────────────
    team_requirements_path: str | None = None

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def has_pco_credentials(self) -> bool:
        return bool(self.pco_app_id and self.pco_secret)


settings = OnboardingSettings()
