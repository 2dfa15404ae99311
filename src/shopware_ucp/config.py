"""Configuration surface for the UCP checkout broker.

Settings are read once at startup (environment, ``.env``) and injected into
the registry and the adapters. Nothing below the composition root reads the
process environment.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_UCP_VERSION = "2026-01-11"


class MollieSettings(BaseModel):
    """Mollie redirect processor configuration."""
    mode: Literal["live", "mock"] = "mock"
    api_key: str = ""
    api_base: str = "https://api.mollie.com/v2"
    profile_id: str = ""
    test_mode: bool = True
    webhook_url: str = ""
    supported_methods: List[str] = Field(default_factory=lambda: [
        "ideal",
        "creditcard",
        "bancontact",
        "paypal",
        "applepay",
        "klarnapaylater",
    ])
    countries: List[str] = Field(default_factory=lambda: ["NL", "BE", "DE", "AT", "FR"])


class StripeSettings(BaseModel):
    """Stripe card gateway configuration."""
    api_key: str = ""
    api_base: str = "https://api.stripe.com/v1"
    public_key: str = ""


class TokenizerSettings(BaseModel):
    """Business tokenizer configuration."""
    psp_type: Literal["mock", "mollie", "stripe"] = "mock"
    public_key: str = ""
    supported_brands: List[str] = Field(default_factory=lambda: ["visa", "mastercard", "amex"])
    supports_3ds: bool = True


class GooglePaySettings(BaseModel):
    """Google Pay wallet configuration."""
    merchant_id: str = ""
    merchant_name: str = ""
    environment: Literal["TEST", "PRODUCTION"] = "TEST"
    gateway: str = "mollie"
    gateway_merchant_id: str = ""
    allowed_card_networks: List[str] = Field(default_factory=lambda: [
        "VISA",
        "MASTERCARD",
        "AMEX",
        "DISCOVER",
    ])
    allowed_auth_methods: List[str] = Field(default_factory=lambda: ["PAN_ONLY", "CRYPTOGRAM_3DS"])


class UCPSettings(BaseSettings):
    """Main broker configuration."""

    environment: Literal["dev", "sandbox", "prod"] = "dev"

    # Protocol
    ucp_version: str = DEFAULT_UCP_VERSION
    default_currency: str = "EUR"

    # Public URL of this service, used in processor callbacks
    server_url: str = "http://localhost:3000"
    return_url_template: str = "{server_url}/checkout/return?session={session_id}"
    webhook_url_template: str = "{server_url}/webhooks/{handler_id}"

    # Outbound HTTP
    http_timeout_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Processors
    mollie: MollieSettings = Field(default_factory=MollieSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)
    tokenizer: TokenizerSettings = Field(default_factory=TokenizerSettings)
    google_pay: GooglePaySettings = Field(default_factory=GooglePaySettings)

    # Capabilities offered to platforms during negotiation
    capabilities: List[str] = Field(default_factory=lambda: [
        "dev.ucp.shopping.checkout",
        "dev.ucp.shopping.fulfillment",
        "dev.ucp.shopping.discount",
    ])

    class Config:
        env_prefix = "UCP_"
        env_nested_delimiter = "__"
        env_file = ".env"
        extra = "ignore"

    @field_validator("server_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("default_currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("default_currency must be a three-letter ISO 4217 code")
        return v

    def return_url(self, session_id: str) -> str:
        """Customer return URL after a processor redirect."""
        return self.return_url_template.format(
            server_url=self.server_url, session_id=session_id
        )

    def webhook_url(self, handler_id: str) -> str:
        """Processor notification URL for a handler."""
        return self.webhook_url_template.format(
            server_url=self.server_url, handler_id=handler_id
        )


@lru_cache
def load_settings(env_file: Optional[str] = None) -> UCPSettings:
    """Load UCPSettings once per process so every adapter sees the same values."""
    env_path = Path(env_file) if env_file else None
    return UCPSettings(_env_file=env_path)


__all__ = [
    "DEFAULT_UCP_VERSION",
    "MollieSettings",
    "StripeSettings",
    "TokenizerSettings",
    "GooglePaySettings",
    "UCPSettings",
    "load_settings",
]
