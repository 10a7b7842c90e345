from .divisions import DivisionAssignment, assign_division, calculate_division, effective_division
from .errors import (
    ConfigurationError,
    InvariantViolation,
    NotFoundError,
    ScoreValidationError,
    ScoringError,
    StateConflictError,
)
from .ledger import ShootOffLedger
from .models import Athlete, DisciplineConfig, Shoot, ShootOffConfig, StationScore, Tournament
from .normalizer import (
    ShootTotals,
    build_score_completion,
    build_tournament_completion,
    normalize_shoot,
    verify_stored_totals,
)
from .shootoff import (
    ShootOff,
    ShootOffOutcome,
    ShootOffParticipant,
    ShootOffRound,
    ShootOffStatus,
    cancel_shoot_off,
    create_round,
    create_shoot_off,
    declare_winner,
    official_placements,
    start_shoot_off,
    submit_round_scores,
)
from .statistics import (
    DisciplineStat,
    StatsWindow,
    build_all_division_averages,
    build_discipline_stats,
    build_division_averages,
    classify_trend,
)
from .ties import RankedTotal, TieCandidate, detect_ties, detect_tournament_ties, rank_totals
from .validation import InputSanitizer

__all__ = [
    "Athlete",
    "DisciplineConfig",
    "Shoot",
    "ShootOffConfig",
    "StationScore",
    "Tournament",
    "ScoringError",
    "ScoreValidationError",
    "StateConflictError",
    "InvariantViolation",
    "ConfigurationError",
    "NotFoundError",
    "DivisionAssignment",
    "assign_division",
    "calculate_division",
    "effective_division",
    "ShootTotals",
    "normalize_shoot",
    "verify_stored_totals",
    "build_score_completion",
    "build_tournament_completion",
    "DisciplineStat",
    "StatsWindow",
    "classify_trend",
    "build_discipline_stats",
    "build_division_averages",
    "build_all_division_averages",
    "RankedTotal",
    "TieCandidate",
    "rank_totals",
    "detect_ties",
    "detect_tournament_ties",
    "ShootOff",
    "ShootOffOutcome",
    "ShootOffParticipant",
    "ShootOffRound",
    "ShootOffStatus",
    "create_shoot_off",
    "start_shoot_off",
    "create_round",
    "submit_round_scores",
    "declare_winner",
    "cancel_shoot_off",
    "official_placements",
    "ShootOffLedger",
    "InputSanitizer",
]
