"""
Configuration Loader (``rental_config.loader``).

Responsibility
--------------
Loads a billing policy YAML file and parses it into a frozen
``BillingPolicy``.  Runtime callers go through
``rental_config.get_active_config()`` instead of calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from rental_config.schema import BillingPolicy

_SECTIONS = ("tax", "pricing", "overdue", "schedule")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a decimal from YAML; quoted strings are preferred."""
    if isinstance(value, bool):
        raise ValueError(f"{field}: expected a decimal, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{field}: expected a decimal, got {value!r}") from e


def parse_bool(value: Any, field: str) -> bool:
    """Accept only a real YAML boolean."""
    if not isinstance(value, bool):
        raise ValueError(f"{field}: expected true or false, got {value!r}")
    return value


def parse_billing_policy(data: dict[str, Any]) -> BillingPolicy:
    """
    Build a ``BillingPolicy`` from the parsed YAML document.

    The document groups keys by section::

        version: "1"
        tax:      {vat_rate, currency}
        pricing:  {catalog_price_band, enforce_catalog_band}
        overdue:  {due_soon_window_days, severe_overdue_days}
        schedule: {default_cycle_days, invoice_lookahead_days}

    Missing keys fall back to the ``BillingPolicy`` defaults.

    Raises:
        ValueError: on unknown sections or invalid values.
    """
    unknown = set(data) - set(_SECTIONS) - {"version"}
    if unknown:
        raise ValueError(f"Unknown billing policy sections: {sorted(unknown)}")

    tax = data.get("tax") or {}
    pricing = data.get("pricing") or {}
    overdue = data.get("overdue") or {}
    schedule = data.get("schedule") or {}

    kwargs: dict[str, Any] = {}
    if "version" in data:
        kwargs["version"] = str(data["version"])
    if "vat_rate" in tax:
        kwargs["vat_rate"] = parse_decimal(tax["vat_rate"], "tax.vat_rate")
    if "currency" in tax:
        kwargs["currency"] = str(tax["currency"])
    if "catalog_price_band" in pricing:
        kwargs["catalog_price_band"] = parse_decimal(
            pricing["catalog_price_band"], "pricing.catalog_price_band"
        )
    if "enforce_catalog_band" in pricing:
        kwargs["enforce_catalog_band"] = parse_bool(
            pricing["enforce_catalog_band"], "pricing.enforce_catalog_band"
        )
    if "due_soon_window_days" in overdue:
        kwargs["due_soon_window_days"] = int(overdue["due_soon_window_days"])
    if "severe_overdue_days" in overdue:
        kwargs["severe_overdue_days"] = int(overdue["severe_overdue_days"])
    if "default_cycle_days" in schedule:
        kwargs["default_cycle_days"] = int(schedule["default_cycle_days"])
    if "invoice_lookahead_days" in schedule:
        kwargs["invoice_lookahead_days"] = int(schedule["invoice_lookahead_days"])

    return BillingPolicy(**kwargs)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
