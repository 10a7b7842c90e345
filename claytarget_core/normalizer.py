"""Per-shoot totals derived from station scores.

``normalize_shoot`` is the single projection used by every consumer; stored
totals are never trusted.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Mapping

from .constants import PERCENTAGE_TOLERANCE
from .errors import ConfigurationError, InvariantViolation
from .models import DisciplineConfig, Shoot, StationScore, Tournament

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShootTotals:
    total_targets: int
    total_possible: int
    percentage: float

    @property
    def score_label(self) -> str:
        return f"{self.total_targets}/{self.total_possible}"


def normalize_shoot(scores: Iterable[StationScore]) -> ShootTotals:
    """Sum hits and possible targets; 0% when nothing was possible."""
    total_targets = 0
    total_possible = 0
    for score in scores:
        total_targets += int(score.targets)
        total_possible += int(score.max_targets)
    percentage = (100.0 * total_targets / total_possible) if total_possible > 0 else 0.0
    return ShootTotals(
        total_targets=total_targets,
        total_possible=total_possible,
        percentage=percentage,
    )


def verify_stored_totals(
    stored: Mapping[str, float | int | None],
    scores: Iterable[StationScore],
) -> ShootTotals:
    """Compare stored ``totalTargets``/``totalPossible``/``percentage`` with derived ones.

    Missing keys are not checked. Returns the derived totals on success.

    Raises:
        InvariantViolation: a stored value disagrees with the scores.
    """
    derived = normalize_shoot(scores)
    mismatches: list[str] = []

    stored_targets = stored.get("totalTargets")
    if stored_targets is not None and int(stored_targets) != derived.total_targets:
        mismatches.append(f"totalTargets={stored_targets} (derived {derived.total_targets})")

    stored_possible = stored.get("totalPossible")
    if stored_possible is not None and int(stored_possible) != derived.total_possible:
        mismatches.append(f"totalPossible={stored_possible} (derived {derived.total_possible})")

    stored_pct = stored.get("percentage")
    if stored_pct is not None and not math.isclose(
        float(stored_pct), derived.percentage, abs_tol=PERCENTAGE_TOLERANCE
    ):
        mismatches.append(f"percentage={stored_pct} (derived {derived.percentage})")

    if mismatches:
        logger.warning(f"Stored shoot totals diverge from scores: {mismatches}")
        raise InvariantViolation(
            "stored totals diverge from scores: " + ", ".join(mismatches),
            kind="stored_totals_mismatch",
        )
    return derived


def build_score_completion(
    shoots: Iterable[Shoot],
    discipline_id: str,
    config: DisciplineConfig | None = None,
) -> dict[str, bool]:
    """Map athlete id -> True for athletes with scores in the discipline.

    Without ``config`` any recorded score counts. With a config that knows its
    expected targets, an athlete counts only once their recorded possible
    targets reach that number.
    """
    possible: dict[str, int] = {}
    for shoot in shoots:
        if shoot.discipline_id == discipline_id and shoot.has_scores:
            totals = normalize_shoot(shoot.scores)
            possible[shoot.athlete_id] = possible.get(shoot.athlete_id, 0) + totals.total_possible
    expected = config.expected_targets() if config is not None else None
    if expected is None:
        return {athlete_id: True for athlete_id in possible}
    return {athlete_id: True for athlete_id, total in possible.items() if total >= expected}


def build_tournament_completion(
    tournament: Tournament, shoots: Iterable[Shoot], discipline_id: str
) -> dict[str, bool]:
    """Completion map for one tournament using its configured discipline.

    Raises:
        ConfigurationError: the tournament lists disciplines and this is not one of them.
    """
    config = tournament.discipline(discipline_id)
    if config is None and tournament.disciplines:
        raise ConfigurationError(
            f"discipline {discipline_id} is not configured for tournament {tournament.id}",
            kind="unknown_discipline",
        )
    scoped = (shoot for shoot in shoots if shoot.tournament_id == tournament.id)
    return build_score_completion(scoped, discipline_id, config)
