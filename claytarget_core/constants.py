"""Scoring and shoot-off design constants shared across the engine."""
from __future__ import annotations

from typing import Callable, Dict

# Trend classification
TREND_MIN_SHOOTS = 4
TREND_THRESHOLD = 5.0

TREND_IMPROVING = "improving"
TREND_DECLINING = "declining"
TREND_STABLE = "stable"

# Shoot-off trigger keys and the leaderboard ranks they cover.
TRIGGER_FIRST = "1st"
TRIGGER_SECOND = "2nd"
TRIGGER_THIRD = "3rd"
TRIGGER_TOP5 = "top5"
TRIGGER_TOP10 = "top10"

TRIGGER_RANK_RULES: Dict[str, Callable[[int], bool]] = {
    TRIGGER_FIRST: lambda rank: rank == 1,
    TRIGGER_SECOND: lambda rank: rank == 2,
    TRIGGER_THIRD: lambda rank: rank == 3,
    TRIGGER_TOP5: lambda rank: rank <= 5,
    TRIGGER_TOP10: lambda rank: rank <= 10,
}

# Shoot-off formats
FORMAT_SUDDEN_DEATH = "sudden_death"
FORMAT_FIXED_ROUNDS = "fixed_rounds"
FORMAT_PROGRESSIVE = "progressive"
SHOOT_OFF_FORMATS = frozenset({FORMAT_SUDDEN_DEATH, FORMAT_FIXED_ROUNDS, FORMAT_PROGRESSIVE})

DEFAULT_SHOOT_OFF_FORMAT = FORMAT_SUDDEN_DEATH
DEFAULT_TARGETS_PER_ROUND = 2
MIN_TARGETS_PER_ROUND = 1
MAX_TARGETS_PER_ROUND = 10
DEFAULT_FIXED_ROUNDS = 3

# Disciplines
TARGETS_PER_TRAP_ROUND = 25
DISCIPLINE_TRAP = "trap"
DISCIPLINE_SKEET = "skeet"
DISCIPLINE_FIVE_STAND = "five_stand"
DISCIPLINE_SPORTING_CLAYS = "sporting_clays"
DISCIPLINE_KINDS = frozenset(
    {DISCIPLINE_TRAP, DISCIPLINE_SKEET, DISCIPLINE_FIVE_STAND, DISCIPLINE_SPORTING_CLAYS}
)

# Stored-vs-derived percentage comparison tolerance.
PERCENTAGE_TOLERANCE = 1e-6

