"""
Configuration Loader (``joinery_config.loader``).

Responsibility
--------------
Loads a lifecycle YAML file and parses it into the frozen
``LifecycleConfig``.  Runtime callers go through
``joinery_config.get_active_config()``; the loader is its tooling.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; only the documented optional keys have defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  canonical JSON for configuration identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id`` / ``version``  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError`` from ``LifecycleConfig``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from joinery_config.schema import LifecycleConfig


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
    # YAML floats are read back through str so 0.01 stays exactly 0.01.
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field}: cannot parse decimal from {value!r}") from exc


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"{field}: expected true/false, got {value!r}")


def parse_lifecycle_config(data: dict[str, Any]) -> LifecycleConfig:
    """Parse a ``LifecycleConfig`` from a dict."""
    policy = data.get("lifecycle", {})
    return LifecycleConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        amount_tolerance=parse_decimal(
            policy.get("amount_tolerance", "0.01"), "amount_tolerance"
        ),
        long_cheque_term_days=int(policy.get("long_cheque_term_days", 90)),
        default_visit_time=str(policy.get("default_visit_time", "10:00")),
        require_service_discount_note=parse_bool(
            policy.get("require_service_discount_note", True),
            "require_service_discount_note",
        ),
        require_finance_discount_note=parse_bool(
            policy.get("require_finance_discount_note", False),
            "require_finance_discount_note",
        ),
        currency=str(policy.get("currency", "TRY")),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
