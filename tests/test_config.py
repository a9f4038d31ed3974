# -*- coding: utf-8 -*-
"""
Tests for LedgerConfig

Covers:
- Defaults
- Environment overrides with the GL_LEDGER_ prefix
- Invalid numeric values falling back to defaults
- Singleton accessors
"""

import pytest

from greenledger.config import LedgerConfig, get_config, reset_config, set_config


@pytest.fixture(autouse=True)
def _reset_singleton():
    reset_config()
    yield
    reset_config()


class TestDefaults:

    def test_calculation_defaults(self):
        config = LedgerConfig()
        assert config.tier2plus_multiplier == 1.3
        assert config.fallback_emission_factor == 1.0
        assert config.global_average_grid_factor == 0.42
        assert config.default_precursor_factor == 2.0

    def test_audit_and_signing_defaults(self):
        config = LedgerConfig()
        assert config.audit_retention_days == 2555
        assert config.signature_elevated_roles == ("owner", "director", "auditor")
        assert config.signature_strict_standards == ("k_esg", "maff_esg")
        assert config.external_search_enabled is False


class TestFromEnv:
    """Test LedgerConfig.from_env."""

    def test_no_overrides(self, monkeypatch):
        monkeypatch.delenv("GL_LEDGER_TIER2PLUS_MULTIPLIER", raising=False)
        assert LedgerConfig.from_env().tier2plus_multiplier == 1.3

    def test_numeric_and_string_overrides(self, monkeypatch):
        monkeypatch.setenv("GL_LEDGER_TIER2PLUS_MULTIPLIER", "1.5")
        monkeypatch.setenv("GL_LEDGER_AUDIT_RETENTION_DAYS", "365")
        monkeypatch.setenv("GL_LEDGER_REPORTS_DIR", "/var/reports")
        config = LedgerConfig.from_env()
        assert config.tier2plus_multiplier == 1.5
        assert config.audit_retention_days == 365
        assert config.reports_dir == "/var/reports"

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("1", True), ("YES", True), ("false", False), ("off", False),
    ])
    def test_booleans(self, monkeypatch, raw, expected):
        monkeypatch.setenv("GL_LEDGER_EXTERNAL_SEARCH_ENABLED", raw)
        assert LedgerConfig.from_env().external_search_enabled is expected

    def test_invalid_numbers_keep_defaults(self, monkeypatch):
        monkeypatch.setenv("GL_LEDGER_CACHE_MAX_SIZE", "lots")
        monkeypatch.setenv("GL_LEDGER_RESIDUAL_MIX_FACTOR", "n/a")
        config = LedgerConfig.from_env()
        assert config.cache_max_size == 10000
        assert config.residual_mix_factor == 0.42

    def test_lists(self, monkeypatch):
        monkeypatch.setenv("GL_LEDGER_SIGNATURE_STRICT_STANDARDS", "k_esg, eu_cbam ,")
        assert LedgerConfig.from_env().signature_strict_standards == ("k_esg", "eu_cbam")

    def test_empty_list_keeps_default(self, monkeypatch):
        monkeypatch.setenv("GL_LEDGER_SIGNATURE_ELEVATED_ROLES", " , ")
        assert LedgerConfig.from_env().signature_elevated_roles == (
            "owner", "director", "auditor",
        )


class TestSingleton:

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_set_and_reset(self):
        custom = LedgerConfig(tier2plus_multiplier=2.0)
        set_config(custom)
        assert get_config() is custom
        reset_config()
        assert get_config() is not custom
