# -*- coding: utf-8 -*-
"""
GreenLedger Configuration

Centralized configuration for the GreenLedger reporting pipeline covering:
- Persistence and cache connections
- Factor cache TTLs and fallback constants
- Tier 2+ calculation multiplier
- Report output directory and default format
- Audit retention policy
- Signing authority (authorized, elevated and strict-standard roles)
- External emission-factor search (SerpAPI)

All settings can be overridden via environment variables with the
``GL_LEDGER_`` prefix (e.g. ``GL_LEDGER_TIER2PLUS_MULTIPLIER``). List values
are comma separated.

Example:
    >>> from greenledger.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.tier2plus_multiplier, cfg.audit_retention_days)

Author: GreenLang Platform Team
Date: March 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Optional, Tuple

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "GL_LEDGER_"


# ---------------------------------------------------------------------------
# LedgerConfig
# ---------------------------------------------------------------------------


@dataclass
class LedgerConfig:
    """Complete configuration for the GreenLedger reporting pipeline.

    Attributes:
        database_url: SQLAlchemy database URL.
        redis_url: Redis URL; empty selects the in-process cache.
        cache_max_size: Maximum entries held by the in-process cache.
        factor_cache_ttl_seconds: TTL for resolved emission factors.
        grid_factor_cache_ttl_seconds: TTL for resolved grid factors.
        batch_status_ttl_seconds: TTL for batch report progress records.
        audit_summary_ttl_seconds: TTL for cached audit summaries.
        external_search_cache_ttl_seconds: TTL for external search results.
        tier2plus_multiplier: Multiplier applied to ``tier2plus`` activities.
        fallback_emission_factor: Conservative factor used when nothing resolves.
        global_average_grid_factor: Grid factor used when a region is unknown.
        residual_mix_factor: Residual-mix factor for market-based Scope 2.
        default_precursor_factor: kg CO2e/kg for unmatched precursor materials.
        reports_dir: Root directory for rendered report artifacts.
        default_report_format: ``pdf``, ``xlsx`` or ``both``.
        audit_retention_days: Audit log retention window in days.
        audit_cleanup_batch_size: Rows deleted per cleanup transaction.
        signature_authorized_roles: Roles allowed to sign any report.
        signature_elevated_roles: Roles allowed to sign strict-standard reports.
        signature_strict_standards: Standards requiring an elevated signer.
        signature_algorithm: Hash algorithm recorded with signatures.
        signature_version: Signature format version.
        external_search_enabled: Whether the resolver may query SerpAPI.
        serpapi_key: SerpAPI key; empty disables live search.
        serpapi_base_url: SerpAPI endpoint.
        serpapi_timeout_seconds: HTTP timeout for SerpAPI requests.
        external_search_rate_per_minute: Token bucket size for SerpAPI calls.
        log_level: Level applied to the ``greenledger`` logger.
    """

    # -- Persistence ---------------------------------------------------------
    database_url: str = "sqlite:///./greenledger.db"
    redis_url: str = ""

    # -- Caching -------------------------------------------------------------
    cache_max_size: int = 10000
    factor_cache_ttl_seconds: int = 3600
    grid_factor_cache_ttl_seconds: int = 86400
    batch_status_ttl_seconds: int = 3600
    audit_summary_ttl_seconds: int = 300
    external_search_cache_ttl_seconds: int = 86400

    # -- Calculation ---------------------------------------------------------
    tier2plus_multiplier: float = 1.3
    fallback_emission_factor: float = 1.0
    global_average_grid_factor: float = 0.42
    residual_mix_factor: float = 0.42
    default_precursor_factor: float = 2.0

    # -- Reports -------------------------------------------------------------
    reports_dir: str = "./reports"
    default_report_format: str = "pdf"

    # -- Audit ---------------------------------------------------------------
    audit_retention_days: int = 2555
    audit_cleanup_batch_size: int = 10000

    # -- Signatures ----------------------------------------------------------
    signature_authorized_roles: Tuple[str, ...] = (
        "owner", "director", "editor", "auditor",
    )
    signature_elevated_roles: Tuple[str, ...] = ("owner", "director", "auditor")
    signature_strict_standards: Tuple[str, ...] = ("k_esg", "maff_esg")
    signature_algorithm: str = "sha256"
    signature_version: str = "1.0"

    # -- External factor search ----------------------------------------------
    external_search_enabled: bool = False
    serpapi_key: str = ""
    serpapi_base_url: str = "https://serpapi.com/search"
    serpapi_timeout_seconds: float = 10.0
    external_search_rate_per_minute: int = 30

    # -- Logging -------------------------------------------------------------
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> LedgerConfig:
        """Build a LedgerConfig from environment variables.

        Every field can be overridden via ``GL_LEDGER_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).
        Tuple values are parsed from comma-separated strings.

        Returns:
            Populated LedgerConfig instance.
        """
        prefix = _ENV_PREFIX

        def _env(name: str, default: Any = None) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}", default)

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.lower() in ("true", "1", "yes")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val)
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%s, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _float(name: str, default: float) -> float:
            val = _env(name)
            if val is None:
                return default
            try:
                return float(val)
            except ValueError:
                logger.warning(
                    "Invalid float for %s%s=%s, using default %.2f",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val

        def _list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
            val = _env(name)
            if val is None:
                return default
            items = tuple(v.strip() for v in val.split(",") if v.strip())
            return items or default

        config = cls(
            database_url=_str("DATABASE_URL", cls.database_url),
            redis_url=_str("REDIS_URL", cls.redis_url),
            cache_max_size=_int("CACHE_MAX_SIZE", cls.cache_max_size),
            factor_cache_ttl_seconds=_int(
                "FACTOR_CACHE_TTL_SECONDS", cls.factor_cache_ttl_seconds,
            ),
            grid_factor_cache_ttl_seconds=_int(
                "GRID_FACTOR_CACHE_TTL_SECONDS", cls.grid_factor_cache_ttl_seconds,
            ),
            batch_status_ttl_seconds=_int(
                "BATCH_STATUS_TTL_SECONDS", cls.batch_status_ttl_seconds,
            ),
            audit_summary_ttl_seconds=_int(
                "AUDIT_SUMMARY_TTL_SECONDS", cls.audit_summary_ttl_seconds,
            ),
            external_search_cache_ttl_seconds=_int(
                "EXTERNAL_SEARCH_CACHE_TTL_SECONDS",
                cls.external_search_cache_ttl_seconds,
            ),
            tier2plus_multiplier=_float(
                "TIER2PLUS_MULTIPLIER", cls.tier2plus_multiplier,
            ),
            fallback_emission_factor=_float(
                "FALLBACK_EMISSION_FACTOR", cls.fallback_emission_factor,
            ),
            global_average_grid_factor=_float(
                "GLOBAL_AVERAGE_GRID_FACTOR", cls.global_average_grid_factor,
            ),
            residual_mix_factor=_float(
                "RESIDUAL_MIX_FACTOR", cls.residual_mix_factor,
            ),
            default_precursor_factor=_float(
                "DEFAULT_PRECURSOR_FACTOR", cls.default_precursor_factor,
            ),
            reports_dir=_str("REPORTS_DIR", cls.reports_dir),
            default_report_format=_str(
                "DEFAULT_REPORT_FORMAT", cls.default_report_format,
            ),
            audit_retention_days=_int(
                "AUDIT_RETENTION_DAYS", cls.audit_retention_days,
            ),
            audit_cleanup_batch_size=_int(
                "AUDIT_CLEANUP_BATCH_SIZE", cls.audit_cleanup_batch_size,
            ),
            signature_authorized_roles=_list(
                "SIGNATURE_AUTHORIZED_ROLES", cls.signature_authorized_roles,
            ),
            signature_elevated_roles=_list(
                "SIGNATURE_ELEVATED_ROLES", cls.signature_elevated_roles,
            ),
            signature_strict_standards=_list(
                "SIGNATURE_STRICT_STANDARDS", cls.signature_strict_standards,
            ),
            signature_algorithm=_str("SIGNATURE_ALGORITHM", cls.signature_algorithm),
            signature_version=_str("SIGNATURE_VERSION", cls.signature_version),
            external_search_enabled=_bool(
                "EXTERNAL_SEARCH_ENABLED", cls.external_search_enabled,
            ),
            serpapi_key=_str("SERPAPI_KEY", cls.serpapi_key),
            serpapi_base_url=_str("SERPAPI_BASE_URL", cls.serpapi_base_url),
            serpapi_timeout_seconds=_float(
                "SERPAPI_TIMEOUT_SECONDS", cls.serpapi_timeout_seconds,
            ),
            external_search_rate_per_minute=_int(
                "EXTERNAL_SEARCH_RATE_PER_MINUTE",
                cls.external_search_rate_per_minute,
            ),
            log_level=_str("LOG_LEVEL", cls.log_level),
        )

        logger.info(
            "LedgerConfig loaded: db=%s, redis=%s, tier2plus=%.2f, "
            "retention=%dd, reports_dir=%s, external_search=%s",
            config.database_url.split("://", 1)[0],
            "on" if config.redis_url else "off",
            config.tier2plus_multiplier,
            config.audit_retention_days,
            config.reports_dir,
            config.external_search_enabled,
        )
        return config


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[LedgerConfig] = None
_config_lock = threading.Lock()


def get_config() -> LedgerConfig:
    """Return the singleton LedgerConfig, creating from env if needed."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = LedgerConfig.from_env()
    return _config_instance


def set_config(config: LedgerConfig) -> None:
    """Replace the singleton LedgerConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("LedgerConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "LedgerConfig",
    "get_config",
    "set_config",
    "reset_config",
]
