"""Tests for settings validation"""
import pytest
from pydantic import ValidationError

from snapfeed.config import Settings

REAL_SECRETS = {
    "ACCESS_TOKEN_SECRET": "k3x9-access",
    "REFRESH_TOKEN_SECRET": "k3x9-refresh",
    "BLOB_URL_SECRET": "k3x9-blob",
}


def test_production_refuses_placeholder_secret():
    secrets = {**REAL_SECRETS, "REFRESH_TOKEN_SECRET": "change-this-refresh-secret"}

    with pytest.raises(ValidationError) as exc_info:
        Settings(APP_ENV="production", **secrets)

    assert "REFRESH_TOKEN_SECRET" in str(exc_info.value)


def test_production_with_real_secrets():
    assert Settings(APP_ENV="prod", **REAL_SECRETS).is_production


def test_placeholders_allowed_outside_production():
    settings = Settings(
        APP_ENV="dev",
        ACCESS_TOKEN_SECRET="change-this-access-secret",
        REFRESH_TOKEN_SECRET="change-this-refresh-secret",
        BLOB_URL_SECRET="change-this-blob-secret",
    )
    assert not settings.is_production
