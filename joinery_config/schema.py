"""
LifecycleConfig schema.

The frozen runtime view of ``defaults.yaml`` (or an override file): amount
tolerance for agreement reconciliation, the long cheque term threshold,
the default service visit time and the discount-note policies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


@dataclass(frozen=True)
class LifecycleConfig:
    """Tunable lifecycle policy.  Built by the loader, never by callers."""

    config_id: str
    version: int
    amount_tolerance: Decimal = Decimal("0.01")
    long_cheque_term_days: int = 90
    default_visit_time: str = "10:00"
    require_service_discount_note: bool = True
    require_finance_discount_note: bool = False
    currency: str = "TRY"
    checksum: str = ""

    def __post_init__(self):
        problems = validate_values(self)
        if problems:
            raise ValueError(
                "Configuration validation failed:\n"
                + "\n".join(f"  - {p}" for p in problems)
            )


def validate_values(config: LifecycleConfig) -> list[str]:
    problems: list[str] = []
    if config.amount_tolerance < 0:
        problems.append(f"amount_tolerance must be >= 0 (got {config.amount_tolerance})")
    if config.long_cheque_term_days <= 0:
        problems.append(
            f"long_cheque_term_days must be > 0 (got {config.long_cheque_term_days})"
        )
    if not _TIME_RE.match(config.default_visit_time):
        problems.append(
            f"default_visit_time must be HH:MM (got {config.default_visit_time!r})"
        )
    if not config.currency:
        problems.append("currency is required")
    return problems
