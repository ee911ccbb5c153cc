# -*- coding: utf-8 -*-
"""
Carbon Credit Engine Configuration

Centralized configuration for the carbon credit calculation engine covering:
- Logging level
- Rounding precision for buffer and buffered-tonnage figures (4 places)
- Vintage year acceptance window (current year + 1)
- Data-quality thresholds (invalid below 0.5, warning below 0.7)
- Calculation history page sizes
- Provenance tracking (genesis hash, SHA-256 chain anchoring)
- Prometheus metrics export toggle

All settings can be overridden via environment variables with the
``GL_CREDITS_`` prefix (e.g. ``GL_CREDITS_LOG_LEVEL``,
``GL_CREDITS_DEFAULT_HISTORY_LIMIT``).

Environment Variable Reference (GL_CREDITS_ prefix):
    GL_CREDITS_LOG_LEVEL                       - Logging level
    GL_CREDITS_DECIMAL_PRECISION               - Decimal places for tonnage
    GL_CREDITS_MAX_VINTAGE_YEAR_OFFSET         - Years past current accepted
    GL_CREDITS_DATA_QUALITY_INVALID_THRESHOLD  - Mean score below which data is invalid
    GL_CREDITS_DATA_QUALITY_WARNING_THRESHOLD  - Sub-score below which a warning is raised
    GL_CREDITS_DEFAULT_HISTORY_LIMIT           - History rows when no limit given
    GL_CREDITS_MAX_HISTORY_LIMIT               - Upper bound on history rows
    GL_CREDITS_ENABLE_PROVENANCE               - Enable SHA-256 provenance chain
    GL_CREDITS_GENESIS_HASH                    - Genesis anchor for provenance
    GL_CREDITS_ENABLE_METRICS                  - Enable Prometheus metrics export

Example:
    >>> from carbon_credits.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.decimal_precision, cfg.data_quality_invalid_threshold)
    4 0.5

    >>> from carbon_credits.config import set_config, reset_config
    >>> from carbon_credits.config import CreditEngineConfig
    >>> set_config(CreditEngineConfig(enable_metrics=False))
    >>> reset_config()  # teardown

Author: GreenLang Platform Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_ENV_PREFIX = "GL_CREDITS_"

_VALID_LOG_LEVELS = frozenset(
    {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
)


@dataclass
class CreditEngineConfig:
    """Complete configuration for the carbon credit calculation engine.

    Attributes:
        log_level: Logging verbosity level.
        decimal_precision: Decimal places used when rounding the uncertainty
            buffer and buffered tonnage (round-half-up).
        max_vintage_year_offset: How many years past the current calendar
            year a vintage may be attributed to.
        data_quality_invalid_threshold: Overall data-quality mean below
            which an assessment is marked invalid.
        data_quality_warning_threshold: Sub-score below which a warning is
            attached to an assessment.
        default_history_limit: Rows returned by calculation history when the
            caller passes no positive limit.
        max_history_limit: Upper bound applied to any history limit.
        enable_provenance: Enable SHA-256 provenance chain.
        genesis_hash: Genesis anchor string for provenance chain.
        enable_metrics: Enable Prometheus metrics export.
    """

    # -- Logging -------------------------------------------------------------
    log_level: str = "INFO"

    # -- Calculation precision -----------------------------------------------
    decimal_precision: int = 4

    # -- Request acceptance --------------------------------------------------
    max_vintage_year_offset: int = 1

    # -- Data quality --------------------------------------------------------
    data_quality_invalid_threshold: float = 0.5
    data_quality_warning_threshold: float = 0.7

    # -- History -------------------------------------------------------------
    default_history_limit: int = 50
    max_history_limit: int = 1000

    # -- Provenance tracking -------------------------------------------------
    enable_provenance: bool = True
    genesis_hash: str = "GL-CREDITS-CALCULATION-GENESIS"

    # -- Metrics export ------------------------------------------------------
    enable_metrics: bool = True

    def __post_init__(self) -> None:
        """Validate configuration constraints after initialisation.

        Collects all validation errors before raising a single ValueError.

        Raises:
            ValueError: If any configuration value is outside its valid
                range or violates a constraint.
        """
        errors: list[str] = []

        normalised_log = self.log_level.upper()
        if normalised_log not in _VALID_LOG_LEVELS:
            errors.append(
                f"log_level must be one of {sorted(_VALID_LOG_LEVELS)}, "
                f"got '{self.log_level}'"
            )
        else:
            self.log_level = normalised_log

        if not (0 <= self.decimal_precision <= 12):
            errors.append(
                f"decimal_precision must be in [0, 12], "
                f"got {self.decimal_precision}"
            )

        if self.max_vintage_year_offset < 0:
            errors.append(
                f"max_vintage_year_offset must be >= 0, "
                f"got {self.max_vintage_year_offset}"
            )

        for field_name, value in [
            ("data_quality_invalid_threshold", self.data_quality_invalid_threshold),
            ("data_quality_warning_threshold", self.data_quality_warning_threshold),
        ]:
            if not (0.0 <= value <= 1.0):
                errors.append(
                    f"{field_name} must be in [0.0, 1.0], got {value}"
                )
        if self.data_quality_warning_threshold < self.data_quality_invalid_threshold:
            errors.append(
                f"data_quality_warning_threshold "
                f"({self.data_quality_warning_threshold}) must be >= "
                f"data_quality_invalid_threshold "
                f"({self.data_quality_invalid_threshold})"
            )

        if self.default_history_limit <= 0:
            errors.append(
                f"default_history_limit must be > 0, "
                f"got {self.default_history_limit}"
            )
        if self.max_history_limit < self.default_history_limit:
            errors.append(
                f"max_history_limit ({self.max_history_limit}) must be >= "
                f"default_history_limit ({self.default_history_limit})"
            )

        if not self.genesis_hash:
            errors.append("genesis_hash must not be empty")

        if errors:
            raise ValueError(
                "CreditEngineConfig validation failed:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )

        logger.debug(
            "CreditEngineConfig validated successfully: "
            "precision=%d, vintage_offset=%d, dq_invalid=%.2f, "
            "dq_warning=%.2f, history=%d/%d, provenance=%s, metrics=%s",
            self.decimal_precision,
            self.max_vintage_year_offset,
            self.data_quality_invalid_threshold,
            self.data_quality_warning_threshold,
            self.default_history_limit,
            self.max_history_limit,
            self.enable_provenance,
            self.enable_metrics,
        )

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> CreditEngineConfig:
        """Build a CreditEngineConfig from environment variables.

        Every field can be overridden via ``GL_CREDITS_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).
        Malformed numeric values fall back to the class-level default
        and emit a WARNING log.

        Returns:
            Populated CreditEngineConfig instance.

        Example:
            >>> import os
            >>> os.environ["GL_CREDITS_DEFAULT_HISTORY_LIMIT"] = "20"
            >>> CreditEngineConfig.from_env().default_history_limit
            20
        """
        prefix = _ENV_PREFIX

        def _env(name: str) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}")

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.strip().lower() in ("true", "1", "yes")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val.strip())
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%r, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _float(name: str, default: float) -> float:
            val = _env(name)
            if val is None:
                return default
            try:
                return float(val.strip())
            except ValueError:
                logger.warning(
                    "Invalid float for %s%s=%r, using default %f",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val.strip()

        config = cls(
            log_level=_str("LOG_LEVEL", cls.log_level),
            decimal_precision=_int("DECIMAL_PRECISION", cls.decimal_precision),
            max_vintage_year_offset=_int(
                "MAX_VINTAGE_YEAR_OFFSET", cls.max_vintage_year_offset,
            ),
            data_quality_invalid_threshold=_float(
                "DATA_QUALITY_INVALID_THRESHOLD",
                cls.data_quality_invalid_threshold,
            ),
            data_quality_warning_threshold=_float(
                "DATA_QUALITY_WARNING_THRESHOLD",
                cls.data_quality_warning_threshold,
            ),
            default_history_limit=_int(
                "DEFAULT_HISTORY_LIMIT", cls.default_history_limit,
            ),
            max_history_limit=_int(
                "MAX_HISTORY_LIMIT", cls.max_history_limit,
            ),
            enable_provenance=_bool(
                "ENABLE_PROVENANCE", cls.enable_provenance,
            ),
            genesis_hash=_str("GENESIS_HASH", cls.genesis_hash),
            enable_metrics=_bool("ENABLE_METRICS", cls.enable_metrics),
        )

        logger.info(
            "CreditEngineConfig loaded: precision=%d, vintage_offset=%d, "
            "dq_invalid=%.2f, dq_warning=%.2f, history=%d/%d, "
            "provenance=%s, metrics=%s",
            config.decimal_precision,
            config.max_vintage_year_offset,
            config.data_quality_invalid_threshold,
            config.data_quality_warning_threshold,
            config.default_history_limit,
            config.max_history_limit,
            config.enable_provenance,
            config.enable_metrics,
        )
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the configuration to a plain Python dictionary."""
        return {
            "log_level": self.log_level,
            "decimal_precision": self.decimal_precision,
            "max_vintage_year_offset": self.max_vintage_year_offset,
            "data_quality_invalid_threshold": self.data_quality_invalid_threshold,
            "data_quality_warning_threshold": self.data_quality_warning_threshold,
            "default_history_limit": self.default_history_limit,
            "max_history_limit": self.max_history_limit,
            "enable_provenance": self.enable_provenance,
            "genesis_hash": self.genesis_hash,
            "enable_metrics": self.enable_metrics,
        }


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[CreditEngineConfig] = None
_config_lock = threading.Lock()


def get_config() -> CreditEngineConfig:
    """Return the singleton CreditEngineConfig, creating from env if needed.

    Uses double-checked locking for thread safety with minimal
    contention on the hot path.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = CreditEngineConfig.from_env()
    return _config_instance


def set_config(config: CreditEngineConfig) -> None:
    """Replace the singleton CreditEngineConfig.

    Primarily intended for testing and dependency injection.

    Args:
        config: New CreditEngineConfig to install as the singleton.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info(
        "CreditEngineConfig replaced programmatically: "
        "precision=%d, provenance=%s, metrics=%s",
        config.decimal_precision,
        config.enable_provenance,
        config.enable_metrics,
    )


def reset_config() -> None:
    """Discard the singleton so the next get_config() re-reads the env."""
    global _config_instance
    with _config_lock:
        _config_instance = None
    logger.debug("CreditEngineConfig singleton reset")
