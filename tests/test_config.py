"""Tests for UCPSettings."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from shopware_ucp.config import UCPSettings, load_settings


class TestUCPSettings:
    """Tests for environment loading and URL templates."""

    def test_defaults(self):
        settings = UCPSettings(_env_file=None)

        assert settings.mollie.mode == "mock"
        assert settings.tokenizer.psp_type == "mock"
        assert settings.google_pay.environment == "TEST"
        assert settings.default_currency == "EUR"

    def test_nested_environment(self, monkeypatch):
        monkeypatch.setenv("UCP_MOLLIE__MODE", "live")
        monkeypatch.setenv("UCP_MOLLIE__API_KEY", "live_abc")
        monkeypatch.setenv("UCP_TOKENIZER__PSP_TYPE", "stripe")
        monkeypatch.setenv("UCP_SERVER_URL", "https://ucp.shop.test/")

        settings = UCPSettings(_env_file=None)

        assert settings.mollie.mode == "live"
        assert settings.mollie.api_key == "live_abc"
        assert settings.tokenizer.psp_type == "stripe"
        assert settings.server_url == "https://ucp.shop.test"

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("UCP_DEFAULT_CURRENCY=usd\nUCP_GOOGLE_PAY__MERCHANT_ID=BCR2DN4T\n")

        load_settings.cache_clear()
        try:
            settings = load_settings(str(env_file))
        finally:
            load_settings.cache_clear()

        assert settings.default_currency == "USD"
        assert settings.google_pay.merchant_id == "BCR2DN4T"

    @pytest.mark.parametrize("currency", ["EURO", "E1", ""])
    def test_invalid_currency(self, currency):
        with pytest.raises(ValidationError):
            UCPSettings(_env_file=None, default_currency=currency)

    def test_invalid_processor_mode(self):
        with pytest.raises(ValidationError):
            UCPSettings(_env_file=None, mollie={"mode": "sandbox"})

    def test_url_templates(self, settings):
        assert settings.return_url("cs_1") == "https://broker.test/checkout/return?session=cs_1"
        assert settings.webhook_url("google-pay") == "https://broker.test/webhooks/google-pay"
