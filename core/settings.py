"""
Card gateway settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials load independently.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    # Only idempotent reads are retried; charges and refunds never are
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    ip_allowlist: list[str] | None = None


class TapSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    base_url: str = "https://api.tap.company/v2"
    redirect_url: Optional[str] = None
    post_url: Optional[str] = None


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="tap", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    tap: TapSettings = Field(default_factory=TapSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
