"""Per-discipline athlete statistics, trend labels and division averages.

Every call rebuilds its view from the shoots it is handed; nothing here is
cached or mutated, so aggregations may run in parallel over one snapshot.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Mapping, Sequence

from .constants import (
    TREND_DECLINING,
    TREND_IMPROVING,
    TREND_MIN_SHOOTS,
    TREND_STABLE,
    TREND_THRESHOLD,
)
from .models import Athlete, Shoot
from .normalizer import ShootTotals, normalize_shoot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatsWindow:
    """Restricts the shoots in scope. ``days=None`` means all time."""

    days: int | None = None
    tournament_id: str | None = None

    def includes(self, shoot: Shoot, now: datetime) -> bool:
        if self.tournament_id is not None and shoot.tournament_id != self.tournament_id:
            return False
        if self.days is None:
            return True
        cutoff = _align_tz(now, shoot.date) - timedelta(days=self.days)
        return shoot.date >= cutoff


@dataclass(frozen=True)
class ShootPoint:
    shoot_id: str
    tournament_id: str
    date: datetime
    percentage: float
    score: str


@dataclass(frozen=True)
class DisciplineStat:
    discipline_id: str
    shoot_count: int
    total_targets: int
    total_possible: int
    average: float
    trend: str
    shoots: tuple[ShootPoint, ...]


def _align_tz(now: datetime, reference: datetime) -> datetime:
    # Naive shoot dates are compared against a naive "now" in UTC.
    if reference.tzinfo is None and now.tzinfo is not None:
        return now.astimezone(timezone.utc).replace(tzinfo=None)
    if reference.tzinfo is not None and now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def classify_trend(percentages: Sequence[float]) -> str:
    """Compare the mean of the later half of a chronological series with the earlier half.

    The split point is ``n // 2``, so for odd lengths the extra shoot falls
    into the second half.
    """
    n = len(percentages)
    if n < TREND_MIN_SHOOTS:
        return TREND_STABLE
    midpoint = n // 2
    first_half = percentages[:midpoint]
    second_half = percentages[midpoint:]
    difference = _mean(second_half) - _mean(first_half)
    if difference > TREND_THRESHOLD:
        return TREND_IMPROVING
    if difference < -TREND_THRESHOLD:
        return TREND_DECLINING
    return TREND_STABLE


def _chronological(shoots: Iterable[Shoot]) -> list[Shoot]:
    return sorted(shoots, key=lambda shoot: (shoot.date, shoot.id))


def build_discipline_stats(
    athlete_id: str,
    shoots: Iterable[Shoot],
    window: StatsWindow | None = None,
    *,
    now: datetime | None = None,
) -> list[DisciplineStat]:
    """
    Build one DisciplineStat per discipline the athlete shot within the window.

    Args:
      athlete_id: subject athlete; shoots of other athletes are ignored.
      shoots: any shoot collection (typically the athlete's history).
      window: optional time/tournament filter.
      now: reference time for ``window.days`` (defaults to current UTC time).

    The average is the weighted hit ratio over all shoots in the discipline;
    the trend compares per-shoot percentages in chronological order.
    """
    window = window or StatsWindow()
    now = now or datetime.now(timezone.utc)
    in_scope = [
        shoot
        for shoot in shoots
        if shoot.athlete_id == athlete_id and window.includes(shoot, now)
    ]

    grouped: dict[str, list[tuple[Shoot, ShootTotals]]] = {}
    for shoot in _chronological(in_scope):
        grouped.setdefault(shoot.discipline_id, []).append((shoot, normalize_shoot(shoot.scores)))

    stats: list[DisciplineStat] = []
    for discipline_id in sorted(grouped):
        entries = grouped[discipline_id]
        total_targets = sum(totals.total_targets for _, totals in entries)
        total_possible = sum(totals.total_possible for _, totals in entries)
        average = (100.0 * total_targets / total_possible) if total_possible > 0 else 0.0
        points = tuple(
            ShootPoint(
                shoot_id=shoot.id,
                tournament_id=shoot.tournament_id,
                date=shoot.date,
                percentage=totals.percentage,
                score=totals.score_label,
            )
            for shoot, totals in entries
        )
        stats.append(
            DisciplineStat(
                discipline_id=discipline_id,
                shoot_count=len(entries),
                total_targets=total_targets,
                total_possible=total_possible,
                average=average,
                trend=classify_trend([point.percentage for point in points]),
                shoots=points,
            )
        )
    logger.debug(f"Built {len(stats)} discipline stats for athlete {athlete_id}")
    return stats


def _division_members(
    effective_division: str, athletes: Mapping[str, Athlete]
) -> set[str]:
    return {
        athlete_id
        for athlete_id, athlete in athletes.items()
        if athlete.effective_division == effective_division
    }


def build_all_division_averages(
    effective_division: str | None,
    shoots: Iterable[Shoot],
    athletes: Mapping[str, Athlete],
) -> dict[str, dict[str, float]]:
    """Return ``{tournament_id: {discipline_id: average_percentage}}`` for one division.

    Each average is the plain mean of shoot percentages, not a hit ratio.
    """
    if not effective_division:
        return {}
    members = _division_members(effective_division, athletes)
    sums: dict[str, dict[str, list[float]]] = {}
    for shoot in shoots:
        if shoot.athlete_id not in members:
            continue
        bucket = sums.setdefault(shoot.tournament_id, {}).setdefault(shoot.discipline_id, [])
        bucket.append(normalize_shoot(shoot.scores).percentage)
    return {
        tournament_id: {
            discipline_id: _mean(values) for discipline_id, values in per_discipline.items()
        }
        for tournament_id, per_discipline in sums.items()
    }


def build_division_averages(
    tournament_id: str,
    effective_division: str | None,
    shoots: Iterable[Shoot],
    athletes: Mapping[str, Athlete],
) -> dict[str, float]:
    """Division averages per discipline for a single tournament."""
    scoped = (shoot for shoot in shoots if shoot.tournament_id == tournament_id)
    return build_all_division_averages(effective_division, scoped, athletes).get(
        tournament_id, {}
    )
