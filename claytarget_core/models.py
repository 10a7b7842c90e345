"""Input records supplied by the persistence layer.

Shoot totals are deliberately absent: they are always derived from the
station scores through ``normalizer.normalize_shoot``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal

from .constants import (
    DEFAULT_FIXED_ROUNDS,
    DEFAULT_SHOOT_OFF_FORMAT,
    DEFAULT_TARGETS_PER_ROUND,
    DISCIPLINE_FIVE_STAND,
    DISCIPLINE_SKEET,
    DISCIPLINE_SPORTING_CLAYS,
    DISCIPLINE_TRAP,
    TARGETS_PER_TRAP_ROUND,
)
from .divisions import calculate_division, effective_division

TournamentStatus = Literal["upcoming", "active", "finalizing", "completed"]


@dataclass(frozen=True)
class StationScore:
    targets: int
    max_targets: int
    round_number: int = 1
    station_number: int = 1


@dataclass(frozen=True)
class Shoot:
    """One athlete's attempt at one discipline in one tournament."""

    id: str
    athlete_id: str
    tournament_id: str
    discipline_id: str
    date: datetime
    scores: tuple[StationScore, ...] = ()

    @property
    def has_scores(self) -> bool:
        return len(self.scores) > 0


@dataclass(frozen=True)
class Athlete:
    id: str
    name: str
    grade: str | None = None
    first_year_competition: bool | None = None
    division_override: str | None = None
    team_id: str | None = None
    team_name: str | None = None
    is_active: bool = True

    @property
    def calculated_division(self) -> str | None:
        return calculate_division(self.grade, self.first_year_competition)

    @property
    def effective_division(self) -> str | None:
        return effective_division(self.calculated_division, self.division_override)


@dataclass(frozen=True)
class DisciplineConfig:
    discipline_id: str
    kind: str
    rounds: int | None = None
    targets: int | None = None
    stations: int | None = None

    def expected_targets(self) -> int | None:
        """Targets thrown in one complete shoot of this discipline."""
        if self.kind in {DISCIPLINE_TRAP, DISCIPLINE_SKEET}:
            return self.rounds * TARGETS_PER_TRAP_ROUND if self.rounds else None
        if self.kind in {DISCIPLINE_FIVE_STAND, DISCIPLINE_SPORTING_CLAYS}:
            return self.targets
        return None


@dataclass(frozen=True)
class ShootOffConfig:
    enable_shoot_offs: bool = True
    triggers: frozenset[str] = frozenset()
    format: str = DEFAULT_SHOOT_OFF_FORMAT
    targets_per_round: int = DEFAULT_TARGETS_PER_ROUND
    start_station: str | None = None
    requires_perfect: bool = False
    fixed_rounds: int = DEFAULT_FIXED_ROUNDS


@dataclass(frozen=True)
class Tournament:
    id: str
    name: str
    start_date: date
    end_date: date
    status: TournamentStatus = "upcoming"
    disciplines: tuple[DisciplineConfig, ...] = ()
    shoot_off_config: ShootOffConfig = field(default_factory=ShootOffConfig)

    def discipline(self, discipline_id: str) -> DisciplineConfig | None:
        for config in self.disciplines:
            if config.discipline_id == discipline_id:
                return config
        return None
