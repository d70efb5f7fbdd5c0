"""
Unit tests for application settings.

Tests cover:
- Environment variable overrides with the FOOD_API_ prefix
- Validation of log level, environment, SameSite and encryption key
- Computed properties (cookie security, token lifetime, storage URL)
"""

import pytest
from pydantic import ValidationError

from api.src.config import Settings, clear_settings_cache, get_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestSettings:
    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("FOOD_API_MONGODB_DATABASE", "food_test")
        monkeypatch.setenv("FOOD_API_DELIVERY_BASE_FEE", "30")

        settings = get_settings()

        assert settings.mongodb_database == "food_test"
        assert settings.delivery_base_fee == 30.0

    def test_settings_are_cached(self):
        assert get_settings() is get_settings()

    def test_log_level_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    def test_invalid_environment(self):
        with pytest.raises(ValidationError):
            Settings(environment="qa")

    def test_invalid_samesite(self):
        with pytest.raises(ValidationError):
            Settings(auth_cookie_samesite="sometimes")

    def test_invalid_encryption_key(self):
        with pytest.raises(ValidationError):
            Settings(field_encryption_key="not-a-fernet-key")

    def test_short_jwt_secret_rejected(self):
        with pytest.raises(ValidationError):
            Settings(jwt_secret_key="short")


class TestComputedProperties:
    def test_cookie_secure_follows_environment(self):
        assert Settings(environment="production").cookie_secure
        assert not Settings(environment="development").cookie_secure

    def test_cookie_secure_override(self):
        assert not Settings(environment="production", auth_cookie_secure=False).cookie_secure

    def test_token_max_age(self):
        assert Settings(jwt_access_token_expire_minutes=60).token_max_age_seconds == 3600

    def test_storage_public_url(self):
        settings = Settings(storage_endpoint="http://minio:9000/", storage_bucket="images")
        assert settings.storage_public_url == "http://minio:9000/images"

        settings = Settings(storage_public_base_url="https://cdn.example.com/")
        assert settings.storage_public_url == "https://cdn.example.com"
