"""Hourly rate resolution and money display helpers.

Priority order for rate resolution:

1. Task hourly rate
2. Project default hourly rate
3. Client default hourly rate
4. Team default rate
5. No rate available

All amounts are integer cents. Nothing in this module performs I/O or raises.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

SECONDS_PER_HOUR = 3600


class RateSourceKind(str, enum.Enum):
    TASK = "task"
    PROJECT = "project"
    CLIENT = "client"
    TEAM_DEFAULT = "team_default"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class RateCandidates:
    """Candidate rates known for a unit of billable work."""

    task_rate_cents: int | None = None
    project_rate_cents: int | None = None
    client_rate_cents: int | None = None
    team_default_rate_cents: int | None = None

    @classmethod
    def from_sources(
        cls,
        *,
        task: Any | None = None,
        project: Any | None = None,
        client: Any | None = None,
        team: Any | None = None,
    ) -> RateCandidates:
        """Assemble candidates from task/project/client/team rows, any of which may be missing."""

        return cls(
            task_rate_cents=getattr(task, "hourly_rate_cents", None),
            project_rate_cents=getattr(project, "default_hourly_rate_cents", None),
            client_rate_cents=getattr(client, "default_hourly_rate_cents", None),
            team_default_rate_cents=getattr(team, "default_hourly_rate_cents", None),
        )

    def ordered(self) -> tuple[tuple[RateSourceKind, int | None], ...]:
        return (
            (RateSourceKind.TASK, self.task_rate_cents),
            (RateSourceKind.PROJECT, self.project_rate_cents),
            (RateSourceKind.CLIENT, self.client_rate_cents),
            (RateSourceKind.TEAM_DEFAULT, self.team_default_rate_cents),
        )


@dataclass(frozen=True, slots=True)
class RateResolution:
    rate_cents: int | None
    source: RateSourceKind

    @property
    def is_resolved(self) -> bool:
        return self.source is not RateSourceKind.NONE


NO_RATE = RateResolution(rate_cents=None, source=RateSourceKind.NONE)


def resolve_effective_rate(candidates: RateCandidates) -> RateResolution:
    """Return the first present candidate rate and the source it came from.

    Zero cents is a present rate; only ``None`` counts as unset.
    """

    for source, rate_cents in candidates.ordered():
        if rate_cents is not None:
            return RateResolution(rate_cents=rate_cents, source=source)
    return NO_RATE


def format_cents_to_dollars(cents: int | None) -> str:
    """Format cents for display, e.g. ``15000`` -> ``"$150.00"``."""

    if cents is None:
        return "N/A"
    return f"${cents / 100:.2f}"


def format_rate_cents(cents: int | None) -> str:
    """Format an hourly rate, e.g. ``15000`` -> ``"$150.00/hr"``."""

    if cents is None:
        return "No rate set"
    return f"{format_cents_to_dollars(cents)}/hr"


def round_half_up(value: float | Decimal) -> int:
    return math.floor(value + (Decimal("0.5") if isinstance(value, Decimal) else 0.5))


def dollars_to_cents(dollars: float) -> int:
    return round_half_up(dollars * 100)


def cents_to_dollars(cents: int) -> float:
    return cents / 100


def billable_amount_cents(duration_seconds: int, rate_cents: int) -> int:
    """Amount for ``duration_seconds`` of work billed at ``rate_cents`` per hour."""

    amount = Decimal(duration_seconds) * Decimal(rate_cents) / Decimal(SECONDS_PER_HOUR)
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def hours_from_seconds(duration_seconds: int) -> Decimal:
    return (Decimal(duration_seconds) / Decimal(SECONDS_PER_HOUR)).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
