"""
Kernel settings schema.

Frozen dataclasses the loader fills from YAML.  Runtime components receive
these objects through their constructors; nothing reads configuration on
its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from workforce_kernel.exceptions import ConfigurationError


@dataclass(frozen=True)
class RatePolicy:
    """Fixed-window limit: ``max_requests`` per ``window_ms`` per key."""

    name: str
    window_ms: int
    max_requests: int
    key_prefix: str

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


@dataclass(frozen=True)
class TransactionSettings:
    """Retry, backoff and deadline for the transaction coordinator."""

    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 5000
    timeout_seconds: float = 10.0
    read_only_isolation_level: str = "REPEATABLE READ"


@dataclass(frozen=True)
class KernelSettings:
    """Everything the kernel reads from configuration."""

    rate_policies: dict[str, RatePolicy] = field(default_factory=dict)
    transaction: TransactionSettings = field(default_factory=TransactionSettings)
    grant_cache_ttl_seconds: float = 30.0
    default_currency: str = "USD"
    default_payment_terms_days: int = 30
    checksum: str = ""

    def rate_policy(self, name: str) -> RatePolicy:
        """Named policy, or ConfigurationError when it is not configured."""
        try:
            return self.rate_policies[name]
        except KeyError:
            raise ConfigurationError(
                f"No rate policy named '{name}'", setting="rate_policies"
            ) from None
