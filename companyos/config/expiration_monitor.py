"""
Expiration monitor configuration loader.

Loads checker thresholds and schedule settings from expiration_monitor.yml,
the single source of truth for when contracts, invoices and subscriptions
raise alerts.

Consumers:
  - Expiration checkers: urgency windows and skip statuses
  - Expiration orchestrator: per-tenant throttle interval
  - Expiration monitor job: recurring run cadence

Usage:
    from companyos.config.expiration_monitor import get_expiration_config

    config = get_expiration_config()
    config.invoices.renotify_cadence_days   # 7
    config.schedule.interval_minutes        # 60

EXPIRATION_MONITOR_CONFIG overrides the YAML path. The schedule values can
also be overridden with EXPIRATION_CHECK_INTERVAL_MINUTES and
EXPIRATION_CHECK_MIN_INTERVAL_MINUTES.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "expiration_monitor.yml"


class ExpirationConfigError(ValueError):
    """Raised when the expiration monitor config is invalid."""


@dataclass(frozen=True)
class ScheduleConfig:
    interval_minutes: int = 60
    min_interval_minutes: int = 5


@dataclass(frozen=True)
class ContractThresholds:
    high_within_days: int = 7
    normal_within_days: int = 30
    skip_statuses: frozenset = frozenset({"expired", "cancelled"})


@dataclass(frozen=True)
class InvoiceThresholds:
    high_after_days: int = 14
    urgent_after_days: int = 30
    renotify_cadence_days: Optional[int] = 7
    skip_statuses: frozenset = frozenset({"paid", "cancelled", "expired"})


@dataclass(frozen=True)
class SubscriptionThresholds:
    high_within_days: int = 1
    normal_within_days: int = 7
    require_auto_renew: bool = True
    active_statuses: frozenset = frozenset({"active"})


@dataclass(frozen=True)
class ExpirationMonitorConfig:
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    contracts: ContractThresholds = field(default_factory=ContractThresholds)
    invoices: InvoiceThresholds = field(default_factory=InvoiceThresholds)
    subscriptions: SubscriptionThresholds = field(default_factory=SubscriptionThresholds)


def _positive_int(section: str, key: str, value: Any, allow_none: bool = False) -> Optional[int]:
    if value is None and allow_none:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ExpirationConfigError(f"{section}.{key} must be a positive integer, got {value!r}")
    return value


def _status_set(section: str, key: str, value: Any, default: frozenset) -> frozenset:
    if value is None:
        return default
    if not isinstance(value, list):
        raise ExpirationConfigError(f"{section}.{key} must be a list of statuses")
    return frozenset(str(v).lower() for v in value)


def parse_config(raw: dict[str, Any]) -> ExpirationMonitorConfig:
    """Validate a raw YAML mapping and build the config."""
    raw = raw or {}
    schedule_raw = raw.get("schedule") or {}
    contracts_raw = raw.get("contracts") or {}
    invoices_raw = raw.get("invoices") or {}
    subs_raw = raw.get("subscriptions") or {}

    schedule = ScheduleConfig(
        interval_minutes=_positive_int(
            "schedule", "interval_minutes", schedule_raw.get("interval_minutes", 60)
        ),
        min_interval_minutes=_positive_int(
            "schedule", "min_interval_minutes", schedule_raw.get("min_interval_minutes", 5)
        ),
    )

    contracts = ContractThresholds(
        high_within_days=_positive_int(
            "contracts", "high_within_days", contracts_raw.get("high_within_days", 7)
        ),
        normal_within_days=_positive_int(
            "contracts", "normal_within_days", contracts_raw.get("normal_within_days", 30)
        ),
        skip_statuses=_status_set(
            "contracts", "skip_statuses", contracts_raw.get("skip_statuses"),
            ContractThresholds.skip_statuses,
        ),
    )
    if contracts.high_within_days > contracts.normal_within_days:
        raise ExpirationConfigError("contracts.high_within_days must not exceed normal_within_days")

    invoices = InvoiceThresholds(
        high_after_days=_positive_int(
            "invoices", "high_after_days", invoices_raw.get("high_after_days", 14)
        ),
        urgent_after_days=_positive_int(
            "invoices", "urgent_after_days", invoices_raw.get("urgent_after_days", 30)
        ),
        renotify_cadence_days=_positive_int(
            "invoices", "renotify_cadence_days",
            invoices_raw.get("renotify_cadence_days", 7), allow_none=True,
        ),
        skip_statuses=_status_set(
            "invoices", "skip_statuses", invoices_raw.get("skip_statuses"),
            InvoiceThresholds.skip_statuses,
        ),
    )
    if invoices.high_after_days > invoices.urgent_after_days:
        raise ExpirationConfigError("invoices.high_after_days must not exceed urgent_after_days")

    subscriptions = SubscriptionThresholds(
        high_within_days=_positive_int(
            "subscriptions", "high_within_days", subs_raw.get("high_within_days", 1)
        ),
        normal_within_days=_positive_int(
            "subscriptions", "normal_within_days", subs_raw.get("normal_within_days", 7)
        ),
        require_auto_renew=bool(subs_raw.get("require_auto_renew", True)),
        active_statuses=_status_set(
            "subscriptions", "active_statuses", subs_raw.get("active_statuses"),
            SubscriptionThresholds.active_statuses,
        ),
    )

    return ExpirationMonitorConfig(
        schedule=schedule,
        contracts=contracts,
        invoices=invoices,
        subscriptions=subscriptions,
    )


class ExpirationConfigLoader:
    """
    Thread-safe singleton loader for expiration_monitor.yml.
    """

    _instance: Optional["ExpirationConfigLoader"] = None
    _lock = Lock()

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized:
            return

        self._config_path = config_path
        self._config = ExpirationMonitorConfig()
        self._load_lock = Lock()

        self._load()
        self._initialized = True

    def _resolve_path(self) -> Path:
        if self._config_path:
            return Path(self._config_path)
        env_path = os.getenv("EXPIRATION_MONITOR_CONFIG")
        if env_path:
            return Path(env_path)
        return _DEFAULT_CONFIG_PATH

    def _apply_env_overrides(self, config: ExpirationMonitorConfig) -> ExpirationMonitorConfig:
        interval = os.getenv("EXPIRATION_CHECK_INTERVAL_MINUTES")
        min_interval = os.getenv("EXPIRATION_CHECK_MIN_INTERVAL_MINUTES")
        if not interval and not min_interval:
            return config
        try:
            schedule = ScheduleConfig(
                interval_minutes=int(interval) if interval else config.schedule.interval_minutes,
                min_interval_minutes=(
                    int(min_interval) if min_interval else config.schedule.min_interval_minutes
                ),
            )
        except ValueError as e:
            raise ExpirationConfigError(f"Invalid schedule override: {e}") from e
        return ExpirationMonitorConfig(
            schedule=schedule,
            contracts=config.contracts,
            invoices=config.invoices,
            subscriptions=config.subscriptions,
        )

    def _load(self) -> None:
        with self._load_lock:
            path = self._resolve_path()
            logger.info("Loading expiration monitor config from %s", path)

            with open(path, "r") as f:
                raw = yaml.safe_load(f) or {}

            self._config = self._apply_env_overrides(parse_config(raw))
            logger.info(
                "Loaded expiration monitor config",
                extra={
                    "interval_minutes": self._config.schedule.interval_minutes,
                    "renotify_cadence_days": self._config.invoices.renotify_cadence_days,
                },
            )

    def reload(self) -> None:
        """Re-read the YAML from disk (e.g. after a config change)."""
        self._load()

    @property
    def config(self) -> ExpirationMonitorConfig:
        return self._config

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (tests)."""
        with cls._lock:
            cls._instance = None


def get_expiration_config() -> ExpirationMonitorConfig:
    return ExpirationConfigLoader().config
