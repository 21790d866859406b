"""Tests for configuration validation (progression/config.py)"""
import pytest
from unittest.mock import patch

from progression import config
from progression.exceptions import ConfigurationError


def test_defaults_validate():
    with patch.object(config, "LEVEL_UP_BONUS_MODE", "recheck"):
        config.validate_config()


def test_unknown_level_up_bonus_mode():
    with patch.object(config, "LEVEL_UP_BONUS_MODE", "double"):
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_config()

    assert exc_info.value.config_key == "LEVEL_UP_BONUS_MODE"


def test_non_positive_k_factor():
    with patch.object(config, "RATING_K_FACTOR", 0):
        with pytest.raises(ConfigurationError):
            config.validate_config()


def test_missing_database_url():
    with patch.object(config, "DATABASE_URL", ""):
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate_config()

    assert exc_info.value.config_key == "DATABASE_URL"


def test_rollover_batch_size_must_be_positive():
    with patch.object(config, "LEAGUE_ROLLOVER_BATCH_SIZE", 0):
        with pytest.raises(ConfigurationError):
            config.validate_config()


def test_optional_int_reads_blank_as_none(monkeypatch):
    monkeypatch.setenv("RATING_FLOOR", " ")
    assert config._optional_int("RATING_FLOOR") is None

    monkeypatch.setenv("RATING_FLOOR", "800")
    assert config._optional_int("RATING_FLOOR") == 800
