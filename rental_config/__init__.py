"""
rental_config -- single public entrypoint for billing configuration.

Responsibility:
    ``get_active_config()`` returns the active ``BillingPolicy``.  Services
    receive a policy through their constructor and default to this one;
    nothing else reads the YAML files or the environment.

Architecture position:
    Configuration.  Sits above ``rental_kernel`` and ``rental_engines``
    and below ``rental_modules``.  The kernel and engines never import
    from here.

Failure modes:
    - ``FileNotFoundError`` if ``RENTAL_BILLING_CONFIG`` names a missing file.
    - ``ValueError`` on invalid policy values.

Audit relevance:
    Every load emits a ``RENTAL_CONFIG_TRACE`` log entry with the source
    path, version and checksum of the policy document.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from rental_config.loader import compute_checksum, load_yaml_file, parse_billing_policy
from rental_config.schema import BillingPolicy

__all__ = [
    "BillingPolicy",
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "get_active_config",
    "load_billing_policy",
    "reset_active_config",
]

_logger = logging.getLogger("rental_kernel.config")

CONFIG_ENV_VAR = "RENTAL_BILLING_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "billing.yaml"

_active: BillingPolicy | None = None
_lock = threading.Lock()


def load_billing_policy(path: Path | None = None) -> BillingPolicy:
    """Load and validate a policy file (default: the packaged defaults)."""
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(source)
    policy = parse_billing_policy(data)

    _logger.info(
        "RENTAL_CONFIG_TRACE",
        extra={
            "trace_type": "RENTAL_CONFIG_TRACE",
            "config_path": str(source),
            "config_version": policy.version,
            "checksum": compute_checksum(data),
        },
    )
    return policy


def get_active_config(path: Path | None = None) -> BillingPolicy:
    """Return the active billing policy.

    Resolution order: explicit ``path``, then ``RENTAL_BILLING_CONFIG``,
    then the packaged defaults.  The policy loaded without an explicit
    path is cached until ``reset_active_config()``.
    """
    global _active
    if path is not None:
        return load_billing_policy(path)

    with _lock:
        if _active is None:
            env_path = os.environ.get(CONFIG_ENV_VAR)
            _active = load_billing_policy(Path(env_path) if env_path else None)
        return _active


def reset_active_config() -> None:
    """Drop the cached policy. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None
