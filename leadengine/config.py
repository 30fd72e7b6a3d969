"""
leadengine/config.py — Central configuration loaded from environment variables.
All modules import settings from here; never read os.environ directly elsewhere.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────────────────────────
    database_url: str = Field(..., description="PostgreSQL (or SQLite) connection URI")

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Python log level name")
    log_format: Literal["text", "json"] = Field(
        default="text",
        description="'text' for humans, 'json' for log aggregators",
    )

    # ── Admin authorization ───────────────────────────────────────────────────
    admin_api_token: Optional[str] = Field(
        default=None,
        description="Static bearer token accepted as an admin principal (ops / scripts)",
    )
    supabase_url: Optional[str] = Field(
        default=None,
        description="Hosted auth base URL; bearer tokens are verified against /auth/v1/user",
    )
    supabase_anon_key: Optional[str] = Field(
        default=None,
        description="Public API key sent alongside user tokens to the auth endpoint",
    )
    auth_timeout_seconds: float = Field(default=5.0, gt=0)

    # ── Notifications ─────────────────────────────────────────────────────────
    smtp_host: str = Field(default="smtp.gmail.com")
    smtp_port: int = Field(default=465, gt=0)
    smtp_user: Optional[str] = Field(default=None, description="SMTP login / sender address")
    smtp_password: Optional[str] = Field(default=None, description="SMTP (app) password")
    notification_from: str = Field(
        default="MetroWest Home AI <leads@metrowesthome.ai>",
        description="From header used on lead notifications",
    )
    admin_notification_email: Optional[str] = Field(
        default=None,
        description="Where quote-request alerts are sent; unset disables admin alerts",
    )
    dashboard_url: str = Field(default="https://metrowesthome.ai/contractor-dashboard")
    notifier_dry_run: bool = Field(
        default=True,
        description="If True, log notifications instead of actually sending",
    )

    # ── Scoring & assignment ──────────────────────────────────────────────────
    min_auto_assign_score: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Minimum overall lead score (0–100) for automatic assignment",
    )
    min_auto_assign_score_with_quote: int = Field(
        default=30,
        ge=0,
        le=100,
        description="Lower bar applied when the homeowner explicitly asked for a quote",
    )
    auto_assign_enabled: bool = Field(default=True)
    auto_assign_strategy: Literal["round_robin", "next_in_line"] = Field(
        default="next_in_line",
        description="Strategy used when a qualifying lead is assigned automatically",
    )

    high_value_lead_score: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Overall score at or above which dashboards count a lead as high value",
    )

    # ── Batch recalculation ───────────────────────────────────────────────────
    recalc_batch_size: int = Field(
        default=10,
        gt=0,
        le=500,
        description="Leads rescored per transaction by the recalculation job",
    )
    recalc_batch_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Statement timeout applied to each batch (PostgreSQL only)",
    )


# Singleton — import this everywhere
settings = Settings()
