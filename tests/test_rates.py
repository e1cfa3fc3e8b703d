from __future__ import annotations

import itertools
from decimal import Decimal
from types import SimpleNamespace

import pytest

from ardine.core.rates import (
    NO_RATE,
    RateCandidates,
    RateResolution,
    RateSourceKind,
    billable_amount_cents,
    cents_to_dollars,
    dollars_to_cents,
    format_cents_to_dollars,
    format_rate_cents,
    hours_from_seconds,
    resolve_effective_rate,
)


@pytest.mark.parametrize(
    ("candidates", "expected"),
    [
        (
            RateCandidates(
                task_rate_cents=20000,
                project_rate_cents=15000,
                client_rate_cents=12000,
                team_default_rate_cents=10000,
            ),
            RateResolution(rate_cents=20000, source=RateSourceKind.TASK),
        ),
        (
            RateCandidates(project_rate_cents=15000, client_rate_cents=12000, team_default_rate_cents=10000),
            RateResolution(rate_cents=15000, source=RateSourceKind.PROJECT),
        ),
        (
            RateCandidates(client_rate_cents=12000, team_default_rate_cents=10000),
            RateResolution(rate_cents=12000, source=RateSourceKind.CLIENT),
        ),
        (
            RateCandidates(team_default_rate_cents=10000),
            RateResolution(rate_cents=10000, source=RateSourceKind.TEAM_DEFAULT),
        ),
        (RateCandidates(), NO_RATE),
    ],
)
def test_resolve_effective_rate_uses_first_present_candidate(
    candidates: RateCandidates,
    expected: RateResolution,
) -> None:
    assert resolve_effective_rate(candidates) == expected


def test_zero_rate_is_a_present_rate() -> None:
    resolution = resolve_effective_rate(RateCandidates(task_rate_cents=0, project_rate_cents=15000))

    assert resolution.rate_cents == 0
    assert resolution.source is RateSourceKind.TASK
    assert resolution.is_resolved is True


def test_no_rate_resolution_is_not_resolved() -> None:
    resolution = resolve_effective_rate(RateCandidates())

    assert resolution.rate_cents is None
    assert resolution.source is RateSourceKind.NONE
    assert resolution.is_resolved is False


def test_candidates_from_sources_tolerate_missing_rows() -> None:
    project = SimpleNamespace(default_hourly_rate_cents=None)
    client = SimpleNamespace(default_hourly_rate_cents=12000)

    candidates = RateCandidates.from_sources(task=None, project=project, client=client, team=None)

    assert candidates == RateCandidates(client_rate_cents=12000)
    assert resolve_effective_rate(candidates).source is RateSourceKind.CLIENT


def test_candidates_from_sources_read_task_and_default_rates() -> None:
    candidates = RateCandidates.from_sources(
        task=SimpleNamespace(hourly_rate_cents=17500),
        project=SimpleNamespace(default_hourly_rate_cents=15000),
        client=SimpleNamespace(default_hourly_rate_cents=12000),
        team=SimpleNamespace(default_hourly_rate_cents=10000),
    )

    assert candidates.ordered() == (
        (RateSourceKind.TASK, 17500),
        (RateSourceKind.PROJECT, 15000),
        (RateSourceKind.CLIENT, 12000),
        (RateSourceKind.TEAM_DEFAULT, 10000),
    )


@pytest.mark.parametrize(
    ("cents", "expected"),
    [
        (15000, "$150.00"),
        (0, "$0.00"),
        (5, "$0.05"),
        (123456, "$1234.56"),
        (None, "N/A"),
    ],
)
def test_format_cents_to_dollars(cents: int | None, expected: str) -> None:
    assert format_cents_to_dollars(cents) == expected


def test_format_rate_cents() -> None:
    assert format_rate_cents(15000) == "$150.00/hr"
    assert format_rate_cents(0) == "$0.00/hr"
    assert format_rate_cents(None) == "No rate set"


@pytest.mark.parametrize(
    ("dollars", "expected"),
    [
        (150, 15000),
        (150.5, 15050),
        (19.99, 1999),
        (19.999, 2000),
        (0.125, 13),
        (0, 0),
    ],
)
def test_dollars_to_cents_rounds_half_up(dollars: float, expected: int) -> None:
    assert dollars_to_cents(dollars) == expected


def test_cents_to_dollars() -> None:
    assert cents_to_dollars(15050) == 150.5
    assert cents_to_dollars(2000) == 20
    assert cents_to_dollars(0) == 0


def test_billable_amount_for_partial_hours() -> None:
    assert billable_amount_cents(3600, 15000) == 15000
    assert billable_amount_cents(5400, 15000) == 22500
    # 1 second at $100/hr is 2.777... cents
    assert billable_amount_cents(1, 10000) == 3
    assert billable_amount_cents(18, 100) == 1
    assert billable_amount_cents(7200, 0) == 0


def test_hours_from_seconds_is_quantized_to_hundredths() -> None:
    assert hours_from_seconds(5400) == Decimal("1.50")
    assert hours_from_seconds(1000) == Decimal("0.28")
    assert hours_from_seconds(0) == Decimal("0.00")


@pytest.mark.parametrize("rates", list(itertools.product([None, 0, 5000], repeat=4)))
def test_resolution_matches_first_non_null_candidate(rates: tuple[int | None, ...]) -> None:
    candidates = RateCandidates(*rates)
    sources = [RateSourceKind.TASK, RateSourceKind.PROJECT, RateSourceKind.CLIENT, RateSourceKind.TEAM_DEFAULT]

    expected = NO_RATE
    for source, rate_cents in zip(sources, rates):
        if rate_cents is not None:
            expected = RateResolution(rate_cents=rate_cents, source=source)
            break

    assert resolve_effective_rate(candidates) == expected
