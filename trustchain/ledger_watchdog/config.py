# -*- coding: utf-8 -*-
"""
Ledger Consistency Watchdog Configuration

Centralized configuration for the ledger-consistency subsystem covering:
- Watchdog schedule (enabled flag, interval) and auto-heal toggle
- Alert destinations for the watchdog and the on-demand batch sync
- Ledger access (gateway URL, peer list, multi-peer consensus mode)
- Per-query timeouts for ledger and relational reads
- Concurrency and size bounds (simultaneous checks, batch size,
  sync discrepancy detail cap)
- Lifecycle status scoping (ledger-eligible and inactive statuses)
- Provenance, logging and genesis hash

All settings can be overridden via environment variables with the
``TC_WATCHDOG_`` prefix (e.g. ``TC_WATCHDOG_AUTO_HEAL=true``). The
configuration is read once at startup; there is no hot reload.

Example:
    >>> from trustchain.ledger_watchdog.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.enabled, cfg.interval_minutes)
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from trustchain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "TC_WATCHDOG_"

DEFAULT_INTERVAL_MINUTES = 60


def _split_csv(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


# ---------------------------------------------------------------------------
# LedgerWatchdogConfig
# ---------------------------------------------------------------------------


@dataclass
class LedgerWatchdogConfig:
    """Complete configuration for the ledger-consistency watchdog.

    Attributes:
        enabled: Whether ``WatchdogScheduler.start()`` schedules runs.
            When False, start() logs and returns without scheduling.
        auto_heal: Whether TAMPERED records are restored from ledger
            truth during scheduled audits.
        interval_minutes: Minutes between scheduled audit runs.
        alert_email: Destination handed to the alert collaborator for
            watchdog alerts.
        sync_alert_email: Destination for batch-sync discrepancy alerts.
            Falls back to ``alert_email`` when empty.
        multi_peer_enabled: Query every configured ledger peer and
            report inter-peer discrepancies next to the relational
            comparison.
        ledger_peers: Comma separated ledger peer gateway URLs used in
            multi-peer mode.
        ledger_gateway_url: Single ledger gateway URL used otherwise.
        ledger_timeout_seconds: Timeout applied to every ledger query.
        database_timeout_seconds: Timeout applied to every relational
            query issued by the integrity checker.
        database_url: SQLite database path for the relational store.
        max_concurrent_checks: Upper bound on entity checks (and thus
            ledger queries) in flight during one audit.
        max_batch_size: Maximum number of keys accepted by the bounded
            batch check; longer lists are truncated.
        sync_max_discrepancies: Maximum detailed discrepancies kept in
            a sync report. Aggregate counts are never truncated.
        eligible_statuses: Comma separated lifecycle statuses that imply
            the record must be present on the ledger.
        inactive_statuses: Comma separated lifecycle statuses excluded
            from the "active" scope of the batch sync.
        resolve_transaction_ids: Whether the registration transaction id
            is looked up for divergence display.
        enable_provenance: Whether SHA-256 provenance hashes are
            recorded for checks, audits, syncs and restorations.
        log_level: Logging level for the subsystem.
        genesis_hash: Seed string for the provenance chain.
    """

    # -- Schedule ------------------------------------------------------------
    enabled: bool = False
    auto_heal: bool = False
    interval_minutes: int = DEFAULT_INTERVAL_MINUTES

    # -- Alerting ------------------------------------------------------------
    alert_email: str = ""
    sync_alert_email: str = ""

    # -- Ledger access -------------------------------------------------------
    multi_peer_enabled: bool = False
    ledger_peers: str = ""
    ledger_gateway_url: str = ""

    # -- Timeouts ------------------------------------------------------------
    ledger_timeout_seconds: float = 10.0
    database_timeout_seconds: float = 10.0

    # -- Relational store ----------------------------------------------------
    database_url: str = "trustchain.db"

    # -- Bounds --------------------------------------------------------------
    max_concurrent_checks: int = 4
    max_batch_size: int = 50
    sync_max_discrepancies: int = 50

    # -- Lifecycle scoping ---------------------------------------------------
    eligible_statuses: str = "REGISTERED"
    inactive_statuses: str = "REJECTED,SUSPENDED"

    # -- Feature toggles -----------------------------------------------------
    resolve_transaction_ids: bool = True
    enable_provenance: bool = True

    # -- Logging -------------------------------------------------------------
    log_level: str = "INFO"

    # -- Genesis hash --------------------------------------------------------
    genesis_hash: str = "trustchain-ledger-watchdog-genesis"

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> LedgerWatchdogConfig:
        """Build a LedgerWatchdogConfig from environment variables.

        Every field can be overridden via ``TC_WATCHDOG_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).
        Invalid numbers log a warning and keep the default.

        Returns:
            Populated LedgerWatchdogConfig instance.
        """
        prefix = _ENV_PREFIX

        def _env(name: str, default: Any = None) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}", default)

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
                    "Invalid float for %s%s=%s, using default %f",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val

        interval = _int("INTERVAL_MINUTES", cls.interval_minutes)
        if interval < 1:
            logger.warning(
                "Non-positive %sINTERVAL_MINUTES=%d, using default %d",
                prefix, interval, DEFAULT_INTERVAL_MINUTES,
            )
            interval = DEFAULT_INTERVAL_MINUTES

        config = cls(
            enabled=_bool("ENABLED", cls.enabled),
            auto_heal=_bool("AUTO_HEAL", cls.auto_heal),
            interval_minutes=interval,
            alert_email=_str("ALERT_EMAIL", cls.alert_email),
            sync_alert_email=_str("SYNC_ALERT_EMAIL", cls.sync_alert_email),
            multi_peer_enabled=_bool(
                "MULTI_PEER_ENABLED", cls.multi_peer_enabled,
            ),
            ledger_peers=_str("LEDGER_PEERS", cls.ledger_peers),
            ledger_gateway_url=_str(
                "LEDGER_GATEWAY_URL", cls.ledger_gateway_url,
            ),
            ledger_timeout_seconds=_float(
                "LEDGER_TIMEOUT_SECONDS", cls.ledger_timeout_seconds,
            ),
            database_timeout_seconds=_float(
                "DATABASE_TIMEOUT_SECONDS", cls.database_timeout_seconds,
            ),
            database_url=_str("DATABASE_URL", cls.database_url),
            max_concurrent_checks=_int(
                "MAX_CONCURRENT_CHECKS", cls.max_concurrent_checks,
            ),
            max_batch_size=_int("MAX_BATCH_SIZE", cls.max_batch_size),
            sync_max_discrepancies=_int(
                "SYNC_MAX_DISCREPANCIES", cls.sync_max_discrepancies,
            ),
            eligible_statuses=_str(
                "ELIGIBLE_STATUSES", cls.eligible_statuses,
            ),
            inactive_statuses=_str(
                "INACTIVE_STATUSES", cls.inactive_statuses,
            ),
            resolve_transaction_ids=_bool(
                "RESOLVE_TRANSACTION_IDS", cls.resolve_transaction_ids,
            ),
            enable_provenance=_bool(
                "ENABLE_PROVENANCE", cls.enable_provenance,
            ),
            log_level=_str("LOG_LEVEL", cls.log_level),
            genesis_hash=_str("GENESIS_HASH", cls.genesis_hash),
        )

        logger.info(
            "LedgerWatchdogConfig loaded: enabled=%s, auto_heal=%s, "
            "interval=%dmin, multi_peer=%s (%d peers), "
            "timeouts=[ledger %.1fs / db %.1fs], "
            "concurrency=%d, batch=%d, sync_cap=%d, eligible=%s",
            config.enabled,
            config.auto_heal,
            config.interval_minutes,
            config.multi_peer_enabled,
            len(config.peer_urls),
            config.ledger_timeout_seconds,
            config.database_timeout_seconds,
            config.max_concurrent_checks,
            config.max_batch_size,
            config.sync_max_discrepancies,
            ",".join(config.eligible_status_set),
        )
        return config

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def __post_init__(self) -> None:
        """Validate all configuration constraints after initialization.

        Raises:
            ConfigurationError: If any constraint is violated (a ValueError).
        """
        errors: list[str] = []

        if self.interval_minutes < 1:
            errors.append("interval_minutes must be >= 1")

        if self.ledger_timeout_seconds <= 0.0:
            errors.append("ledger_timeout_seconds must be > 0.0")
        if self.database_timeout_seconds <= 0.0:
            errors.append("database_timeout_seconds must be > 0.0")

        if self.max_concurrent_checks < 1:
            errors.append("max_concurrent_checks must be >= 1")
        if self.max_batch_size < 1:
            errors.append("max_batch_size must be >= 1")
        if self.sync_max_discrepancies < 1:
            errors.append("sync_max_discrepancies must be >= 1")

        if not _split_csv(self.eligible_statuses):
            errors.append("eligible_statuses must name at least one status")
        overlap = set(_split_csv(self.eligible_statuses.upper())) & set(
            _split_csv(self.inactive_statuses.upper())
        )
        if overlap:
            errors.append(
                f"statuses cannot be both eligible and inactive: {sorted(overlap)}"
            )

        if self.multi_peer_enabled and len(_split_csv(self.ledger_peers)) == 1:
            errors.append(
                "multi_peer_enabled needs zero (injected client) or >= 2 ledger_peers"
            )

        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if self.log_level.upper() not in valid_levels:
            errors.append(
                f"log_level must be one of {valid_levels}, "
                f"got '{self.log_level}'"
            )

        if not self.genesis_hash:
            errors.append("genesis_hash must not be empty")

        if errors:
            msg = "; ".join(errors)
            logger.error("LedgerWatchdogConfig validation failed: %s", msg)
            raise ConfigurationError(
                f"LedgerWatchdogConfig validation failed: {msg}",
                context={"errors": errors},
            )

        logger.debug("LedgerWatchdogConfig validated successfully")

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60.0

    @property
    def peer_urls(self) -> List[str]:
        return list(_split_csv(self.ledger_peers))

    @property
    def eligible_status_set(self) -> Tuple[str, ...]:
        return tuple(s.upper() for s in _split_csv(self.eligible_statuses))

    @property
    def inactive_status_set(self) -> Tuple[str, ...]:
        return tuple(s.upper() for s in _split_csv(self.inactive_statuses))

    @property
    def effective_sync_alert_email(self) -> str:
        return self.sync_alert_email or self.alert_email

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the configuration to a plain dictionary.

        Returns:
            Dictionary with all configuration fields and their current
            values.
        """
        return {
            "enabled": self.enabled,
            "auto_heal": self.auto_heal,
            "interval_minutes": self.interval_minutes,
            "alert_email": self.alert_email,
            "sync_alert_email": self.sync_alert_email,
            "multi_peer_enabled": self.multi_peer_enabled,
            "ledger_peers": self.ledger_peers,
            "ledger_gateway_url": self.ledger_gateway_url,
            "ledger_timeout_seconds": self.ledger_timeout_seconds,
            "database_timeout_seconds": self.database_timeout_seconds,
            "database_url": self.database_url,
            "max_concurrent_checks": self.max_concurrent_checks,
            "max_batch_size": self.max_batch_size,
            "sync_max_discrepancies": self.sync_max_discrepancies,
            "eligible_statuses": self.eligible_statuses,
            "inactive_statuses": self.inactive_statuses,
            "resolve_transaction_ids": self.resolve_transaction_ids,
            "enable_provenance": self.enable_provenance,
            "log_level": self.log_level,
            "genesis_hash": self.genesis_hash,
        }


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[LedgerWatchdogConfig] = None
_config_lock = threading.Lock()


def get_config() -> LedgerWatchdogConfig:
    """Return the singleton LedgerWatchdogConfig, creating from env if needed.

    Returns:
        LedgerWatchdogConfig singleton instance.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = LedgerWatchdogConfig.from_env()
    return _config_instance


def set_config(config: LedgerWatchdogConfig) -> None:
    """Replace the singleton LedgerWatchdogConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("LedgerWatchdogConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "DEFAULT_INTERVAL_MINUTES",
    "LedgerWatchdogConfig",
    "get_config",
    "set_config",
    "reset_config",
]
