import os

import pytest
from pydantic import ValidationError

from mock_completions.config import Settings, get_settings


class TestSettings:
    def setup_method(self):
        """Clear environment variables and cache before each test."""
        get_settings.cache_clear()
        self.original_env = dict(os.environ)
        for key in (
            "DEFAULT_ENCODING",
            "LOGPROBS_SEED",
            "HOST",
            "PORT",
            "LOG_LEVEL",
            "METRICS_ENABLED",
            "MAX_LOG_TEXT_CHARS",
            "DEBUG",
        ):
            os.environ.pop(key, None)

    def teardown_method(self):
        """Restore environment after each test."""
        os.environ.clear()
        os.environ.update(self.original_env)
        get_settings.cache_clear()

    def test_default_settings(self):
        settings = Settings()

        assert settings.default_encoding == "cl100k_base"
        assert settings.logprobs_seed is None
        assert settings.port == 8000
        assert settings.log_level == "INFO"
        assert settings.metrics_enabled is True
        assert settings.max_log_text_chars == 512
        assert settings.debug is False

    def test_settings_from_env(self):
        env_vars = {
            "DEFAULT_ENCODING": "p50k_base",
            "LOGPROBS_SEED": "99",
            "HOST": "127.0.0.1",
            "PORT": "9000",
            "LOG_LEVEL": "debug",
            "METRICS_ENABLED": "false",
            "MAX_LOG_TEXT_CHARS": "64",
            "DEBUG": "true",
        }
        os.environ.update(env_vars)

        settings = Settings()

        assert settings.default_encoding == "p50k_base"
        assert settings.logprobs_seed == 99
        assert settings.host == "127.0.0.1"
        assert settings.port == 9000
        assert settings.log_level == "DEBUG"
        assert settings.metrics_enabled is False
        assert settings.max_log_text_chars == 64
        assert settings.debug is True

    def test_get_settings_caching(self):
        assert get_settings() is get_settings()

    def test_blank_seed_is_unset(self):
        os.environ["LOGPROBS_SEED"] = "  "
        assert Settings().logprobs_seed is None

    def test_metrics_enabled_various_values(self):
        test_cases = [
            ("true", True),
            ("TRUE", True),
            ("1", True),
            ("false", False),
            ("0", False),
            ("", False),
            ("anything_else", False),
        ]

        for env_value, expected in test_cases:
            os.environ["METRICS_ENABLED"] = env_value
            settings = Settings()
            assert (
                settings.metrics_enabled is expected
            ), f"Failed for '{env_value}' - expected {expected}, got {settings.metrics_enabled}"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(log_level="verbose")

    def test_invalid_default_encoding(self):
        with pytest.raises(ValidationError):
            Settings(default_encoding="gpt2-ish")
