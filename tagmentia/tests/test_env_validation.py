import logging
import pytest
from types import SimpleNamespace

from tagmentia.core.config import validate_config


def _cfg(**overrides):
    values = dict(
        DATABASE_URL="sqlite://",
        SUPABASE_JWT_SECRET="jwt-secret",
        STRIPE_SECRET_KEY="sk_test_123",
        LIMITS_CACHE_TTL_SECONDS=300,
        CONFIG_STRICT=False,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_complete_config_passes(caplog):
    with caplog.at_level(logging.WARNING):
        assert validate_config(strict=True, settings_obj=_cfg()) is True
    assert caplog.records == []


def test_missing_keys_warn_in_lenient_mode(caplog):
    logger = logging.getLogger("tagmentia.test")
    with caplog.at_level(logging.WARNING, logger="tagmentia.test"):
        validate_config(strict=False, settings_obj=_cfg(STRIPE_SECRET_KEY=None), logger=logger)
    assert "STRIPE_SECRET_KEY" in caplog.text


def test_missing_keys_raise_in_strict_mode():
    with pytest.raises(RuntimeError) as exc:
        validate_config(strict=True, settings_obj=_cfg(DATABASE_URL=None, SUPABASE_JWT_SECRET=""))
    assert "DATABASE_URL" in str(exc.value)
    assert "SUPABASE_JWT_SECRET" in str(exc.value)


def test_secret_values_not_logged(caplog):
    logger = logging.getLogger("tagmentia.test")
    with caplog.at_level(logging.WARNING, logger="tagmentia.test"):
        validate_config(strict=False, settings_obj=_cfg(DATABASE_URL=None), logger=logger)
    assert "sk_test_123" not in caplog.text
    assert "jwt-secret" not in caplog.text


def test_non_positive_cache_ttl_rejected():
    with pytest.raises(RuntimeError):
        validate_config(strict=True, settings_obj=_cfg(LIMITS_CACHE_TTL_SECONDS=0))


def test_strict_mode_defaults_from_settings():
    with pytest.raises(RuntimeError):
        validate_config(settings_obj=_cfg(CONFIG_STRICT=True, DATABASE_URL=None))
