"""
Configuration Loader (``invoice_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into an
``InvoiceConfigurationSet``.  The single public entry point for runtime
config is ``invoice_config.get_active_config()``.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every parsed object is a frozen dataclass.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values (unknown bucket, duplicate rate, bad timeout)  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from invoice_config.schema import InvoiceConfigurationSet
from invoice_kernel.domain.settings import KernelSettings, Labels, LockPolicy
from invoice_kernel.domain.tax import TaxBucket


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_tax_buckets(data: dict[str, Any]) -> dict[TaxBucket, Decimal]:
    """
    Parse the bucket -> percentage mapping.

    Every bucket must be present exactly once and no two buckets may share
    a rate (a rate has to resolve to exactly one bucket).
    """
    rates: dict[TaxBucket, Decimal] = {}
    for name, raw_rate in data.items():
        try:
            bucket = TaxBucket(name)
        except ValueError:
            raise ValueError(f"Unknown tax bucket {name!r}") from None
        try:
            rate = Decimal(str(raw_rate))
        except InvalidOperation:
            raise ValueError(f"Tax bucket {name!r} has non-numeric rate {raw_rate!r}") from None
        if rate < 0:
            raise ValueError(f"Tax bucket {name!r} has negative rate {rate}")
        rates[bucket] = rate

    missing = [bucket.value for bucket in TaxBucket if bucket not in rates]
    if missing:
        raise ValueError(f"Missing tax buckets: {', '.join(missing)}")

    if len(set(rates.values())) != len(rates):
        raise ValueError("Tax buckets must have distinct rates")

    return rates


def parse_labels(data: dict[str, Any]) -> Labels:
    """Parse generated line-item labels; omitted keys keep their defaults."""
    defaults = Labels()
    return Labels(
        manual_receipt=data.get("manual_receipt", defaults.manual_receipt),
        cancellation_prefix=data.get("cancellation_prefix", defaults.cancellation_prefix),
        cash_deposit=data.get("cash_deposit", defaults.cash_deposit),
        cash_withdrawal=data.get("cash_withdrawal", defaults.cash_withdrawal),
        date_format=data.get("date_format", defaults.date_format),
    )


def parse_lock(data: dict[str, Any]) -> LockPolicy:
    timeout_ms = data.get("timeout_ms")
    if timeout_ms is not None:
        if not isinstance(timeout_ms, int) or isinstance(timeout_ms, bool) or timeout_ms <= 0:
            raise ValueError(f"lock.timeout_ms must be a positive integer, got {timeout_ms!r}")
    return LockPolicy(timeout_ms=timeout_ms)


def parse_configuration_set(data: dict[str, Any]) -> InvoiceConfigurationSet:
    """
    Parse an ``InvoiceConfigurationSet`` from a dict.

    Preconditions:
        - ``data`` contains ``config_id`` and ``tax_buckets``.

    Raises:
        KeyError: if required keys are missing.
        ValueError: if values are invalid.
    """
    strict = data.get("strict_tax_rates", True)
    if not isinstance(strict, bool):
        raise ValueError(f"strict_tax_rates must be a boolean, got {strict!r}")

    settings = KernelSettings(
        tax_bucket_rates=parse_tax_buckets(data["tax_buckets"]),
        strict_tax_rates=strict,
        labels=parse_labels(data.get("labels") or {}),
        lock=parse_lock(data.get("lock") or {}),
    )

    return InvoiceConfigurationSet(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        settings=settings,
        checksum=compute_checksum(data),
    )


def load_configuration_set(path: Path) -> InvoiceConfigurationSet:
    """Load and parse a configuration set from a YAML file."""
    return parse_configuration_set(load_yaml_file(path))
