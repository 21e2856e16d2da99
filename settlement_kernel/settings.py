"""
Settings loader (``settlement_kernel.settings``).

Responsibility
--------------
Loads ``settings.yaml`` into a frozen ``KernelSettings`` dataclass.  This is
the single place that reads configuration files or environment variables;
every other component receives a ``KernelSettings`` instance or calls
``get_settings()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown ``default_cycle``  -> ``ValueError``.
* Unknown ``local_timezone``  -> ``zoneinfo.ZoneInfoNotFoundError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import yaml

from settlement_kernel.domain.enums import SettlementCycle

SETTINGS_ENV_VAR = "SETTLEMENT_KERNEL_SETTINGS"

_DEFAULT_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass(frozen=True)
class KernelSettings:
    """Immutable runtime settings for the settlement kernel."""

    default_cycle: SettlementCycle = SettlementCycle.MONTHLY
    local_timezone: str = "UTC"
    completed_status_tokens: tuple[str, ...] = ("CONCLUIDO", "COMPLETED")
    cancelled_status_tokens: tuple[str, ...] = ("CANCELADO", "REJEITADO")
    default_commission_rate: Decimal = Decimal("10")
    ledger_default_limit: int = 150
    pharmacy_ledger_limit: int = 120
    admin_ledger_limit: int = 300
    settlement_note: str = "Settlement recorded from the admin panel"
    reset_note: str = "Commission debt reset by admin"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict (empty if blank)."""
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    return data or {}


def parse_settings(data: dict[str, Any]) -> KernelSettings:
    """Build ``KernelSettings`` from a parsed YAML mapping.

    Keys absent from ``data`` keep their dataclass defaults.
    """
    defaults = KernelSettings()
    cycle_raw = str(data.get("default_cycle", defaults.default_cycle.value)).upper()
    if cycle_raw not in SettlementCycle.__members__:
        raise ValueError(f"default_cycle must be MONTHLY or WEEKLY, got {cycle_raw}")

    local_timezone = str(data.get("local_timezone", defaults.local_timezone))
    if local_timezone.upper() != "UTC":
        # Raises ZoneInfoNotFoundError for unknown zone names
        ZoneInfo(local_timezone)

    return KernelSettings(
        default_cycle=SettlementCycle(cycle_raw),
        local_timezone=local_timezone,
        completed_status_tokens=tuple(
            str(t).upper()
            for t in data.get("completed_status_tokens", defaults.completed_status_tokens)
        ),
        cancelled_status_tokens=tuple(
            str(t).upper()
            for t in data.get("cancelled_status_tokens", defaults.cancelled_status_tokens)
        ),
        default_commission_rate=Decimal(
            str(data.get("default_commission_rate", defaults.default_commission_rate))
        ),
        ledger_default_limit=int(data.get("ledger_default_limit", defaults.ledger_default_limit)),
        pharmacy_ledger_limit=int(data.get("pharmacy_ledger_limit", defaults.pharmacy_ledger_limit)),
        admin_ledger_limit=int(data.get("admin_ledger_limit", defaults.admin_ledger_limit)),
        settlement_note=str(data.get("settlement_note", defaults.settlement_note)),
        reset_note=str(data.get("reset_note", defaults.reset_note)),
    )


def load_settings(path: Path | None = None) -> KernelSettings:
    """Load settings from ``path``, the env override, or the bundled YAML."""
    if path is None:
        env_path = os.environ.get(SETTINGS_ENV_VAR)
        path = Path(env_path) if env_path else _DEFAULT_SETTINGS_PATH
    return parse_settings(load_yaml_file(path))


@lru_cache(maxsize=1)
def get_settings() -> KernelSettings:
    """Process-wide settings, loaded once."""
    return load_settings()
