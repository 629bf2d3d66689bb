"""
Workforce configuration (``workforce_config``).

Public API
----------
* ``load_settings(path=None)`` -- the single entry point for kernel
  settings.  Reads the packaged defaults, merges the override file named
  by ``path`` or by the ``WORKFORCE_CONFIG`` environment variable, and
  returns a frozen ``KernelSettings``.
* ``KernelSettings``, ``RatePolicy``, ``TransactionSettings`` -- schema.

Malformed configuration raises ``ConfigurationError`` from
``workforce_kernel.exceptions``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from workforce_config.loader import DEFAULTS_PATH, load_yaml_file, merge, parse_settings
from workforce_config.schema import KernelSettings, RatePolicy, TransactionSettings

_logger = logging.getLogger("workforce_kernel.config")

CONFIG_ENV_VAR = "WORKFORCE_CONFIG"


def load_settings(path: str | Path | None = None) -> KernelSettings:
    """Load defaults plus the optional override file.

    Args:
        path: Override file.  Defaults to ``$WORKFORCE_CONFIG`` when set.

    Raises:
        ConfigurationError: missing override file or malformed value.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    override = path or os.environ.get(CONFIG_ENV_VAR)
    if override:
        data = merge(data, load_yaml_file(Path(override)))

    settings = parse_settings(data)
    _logger.info(
        "settings_loaded",
        extra={
            "override_path": str(override) if override else None,
            "checksum": settings.checksum,
            "rate_policies": sorted(settings.rate_policies),
        },
    )
    return settings


__all__ = [
    "CONFIG_ENV_VAR",
    "KernelSettings",
    "RatePolicy",
    "TransactionSettings",
    "load_settings",
]
