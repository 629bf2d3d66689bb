"""
Settings loader (``workforce_config.loader``).

Responsibility
--------------
Reads the packaged ``defaults.yaml`` and an optional override file, merges
them, and parses the result into the frozen dataclasses of
``workforce_config.schema``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends only on PyYAML and
the kernel's exception types.  Runtime components never call it; the
composition root passes the resulting ``KernelSettings`` in.

Invariants enforced
-------------------
* Every parse error raises ``ConfigurationError`` naming the setting; no
  silent fallback for a malformed value.
* ``compute_checksum`` is deterministic for identical merged input.

Failure modes
-------------
* Missing override file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` wrapping ``yaml.YAMLError``.
* Wrong type or out-of-range value  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from workforce_config.schema import KernelSettings, RatePolicy, TransactionSettings
from workforce_kernel.exceptions import ConfigurationError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

ISOLATION_LEVELS = frozenset({
    "READ COMMITTED",
    "REPEATABLE READ",
    "SERIALIZABLE",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: missing file, invalid YAML, or a top level
            that is not a mapping.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")
    return data


def merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursive key-by-key merge; ``override`` wins on leaves."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _positive_int(data: dict[str, Any], key: str, setting: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(
            f"{setting} must be a positive integer, got {value!r}", setting=setting
        )
    return value


def _positive_number(data: dict[str, Any], key: str, setting: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigurationError(
            f"{setting} must be a positive number, got {value!r}", setting=setting
        )
    return float(value)


def parse_rate_policy(name: str, data: Any) -> RatePolicy:
    setting = f"rate_policies.{name}"
    if not isinstance(data, dict):
        raise ConfigurationError(f"{setting} must be a mapping", setting=setting)
    return RatePolicy(
        name=name,
        window_ms=_positive_int(data, "window_ms", f"{setting}.window_ms"),
        max_requests=_positive_int(data, "max_requests", f"{setting}.max_requests"),
        key_prefix=str(data.get("key_prefix") or name),
    )


def parse_transaction(data: Any) -> TransactionSettings:
    if not isinstance(data, dict):
        raise ConfigurationError("transaction must be a mapping", setting="transaction")
    isolation = str(data.get("read_only_isolation_level", "REPEATABLE READ")).upper()
    if isolation not in ISOLATION_LEVELS:
        raise ConfigurationError(
            f"Unsupported isolation level '{isolation}'",
            setting="transaction.read_only_isolation_level",
        )
    settings = TransactionSettings(
        max_attempts=_positive_int(data, "max_attempts", "transaction.max_attempts"),
        base_delay_ms=_positive_int(data, "base_delay_ms", "transaction.base_delay_ms"),
        max_delay_ms=_positive_int(data, "max_delay_ms", "transaction.max_delay_ms"),
        timeout_seconds=_positive_number(
            data, "timeout_seconds", "transaction.timeout_seconds"
        ),
        read_only_isolation_level=isolation,
    )
    if settings.max_delay_ms < settings.base_delay_ms:
        raise ConfigurationError(
            "transaction.max_delay_ms must not be below base_delay_ms",
            setting="transaction.max_delay_ms",
        )
    return settings


def parse_settings(data: dict[str, Any]) -> KernelSettings:
    """Build ``KernelSettings`` from an already merged mapping."""
    policies_raw = data.get("rate_policies") or {}
    if not isinstance(policies_raw, dict):
        raise ConfigurationError("rate_policies must be a mapping", setting="rate_policies")
    policies = {
        name: parse_rate_policy(name, body) for name, body in policies_raw.items()
    }

    currency = str(data.get("default_currency", "USD")).upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ConfigurationError(
            f"default_currency must be a 3-letter code, got {currency!r}",
            setting="default_currency",
        )

    terms = data.get("default_payment_terms_days", 30)
    if isinstance(terms, bool) or not isinstance(terms, int) or terms < 0:
        raise ConfigurationError(
            f"default_payment_terms_days must be a non-negative integer, got {terms!r}",
            setting="default_payment_terms_days",
        )

    return KernelSettings(
        rate_policies=policies,
        transaction=parse_transaction(data.get("transaction") or {}),
        grant_cache_ttl_seconds=_positive_number(
            data, "grant_cache_ttl_seconds", "grant_cache_ttl_seconds"
        ),
        default_currency=currency,
        default_payment_terms_days=terms,
        checksum=compute_checksum(data),
    )
