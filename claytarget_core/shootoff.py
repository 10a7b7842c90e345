"""Shoot-off lifecycle (pure, no persistence).

A shoot-off resolves one tied leaderboard position by elimination rounds.

Architecture:
- ``ShootOff`` holds participants and rounds; its status follows the table in
  ``_TRANSITIONS`` and nothing else.
- Operations (start, create_round, submit_round_scores, declare_winner,
  cancel) check every precondition against the current entity, then apply
  their changes to a deepcopy and return it inside a ``ShootOffOutcome``.
  A rejected call raises and leaves the caller's entity untouched.
- Elimination is delegated to an ``EliminationPolicy`` chosen by format.

State transitions:
- pending -> in_progress (start), pending -> cancelled
- in_progress -> completed (declare_winner), in_progress -> cancelled
- completed and cancelled are terminal
"""
from __future__ import annotations

import logging
import uuid
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Mapping, Protocol, Sequence

from .constants import (
    FORMAT_FIXED_ROUNDS,
    FORMAT_PROGRESSIVE,
    FORMAT_SUDDEN_DEATH,
    MAX_TARGETS_PER_ROUND,
    MIN_TARGETS_PER_ROUND,
    SHOOT_OFF_FORMATS,
)
from .errors import (
    ConfigurationError,
    NotFoundError,
    ScoreValidationError,
    StateConflictError,
)
from .models import ShootOffConfig

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


class ShootOffStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


_TRANSITIONS: dict[ShootOffStatus, frozenset[ShootOffStatus]] = {
    ShootOffStatus.PENDING: frozenset({ShootOffStatus.IN_PROGRESS, ShootOffStatus.CANCELLED}),
    ShootOffStatus.IN_PROGRESS: frozenset({ShootOffStatus.COMPLETED, ShootOffStatus.CANCELLED}),
    ShootOffStatus.COMPLETED: frozenset(),
    ShootOffStatus.CANCELLED: frozenset(),
}


def can_transition(current: ShootOffStatus, target: ShootOffStatus) -> bool:
    return target in _TRANSITIONS[current]


@dataclass
class ShootOffParticipant:
    id: str
    athlete_id: str
    athlete_name: str
    tied_score: int
    eliminated: bool = False
    eliminated_in_round: int | None = None
    # round_number -> targets hit
    scores: dict[int, int] = field(default_factory=dict)
    final_place: int | None = None

    @property
    def total_hits(self) -> int:
        return sum(self.scores.values())


@dataclass
class ShootOffRound:
    id: str
    shoot_off_id: str
    round_number: int
    targets: int
    participant_ids: tuple[str, ...]
    created_at: datetime
    # participant_id -> targets hit
    scores: dict[str, int] = field(default_factory=dict)
    eliminated_ids: tuple[str, ...] = ()
    completed_at: datetime | None = None

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None


@dataclass
class ShootOff:
    id: str
    tournament_id: str
    position: int
    format: str
    targets_per_round: int
    created_at: datetime
    discipline_id: str | None = None
    fixed_rounds: int = 1
    description: str = ""
    status: ShootOffStatus = ShootOffStatus.PENDING
    participants: list[ShootOffParticipant] = field(default_factory=list)
    rounds: list[ShootOffRound] = field(default_factory=list)
    winner_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    version: int = 0

    def active_participants(self) -> list[ShootOffParticipant]:
        return [p for p in self.participants if not p.eliminated]

    def participant(self, participant_id: str) -> ShootOffParticipant | None:
        for p in self.participants:
            if p.id == participant_id:
                return p
        return None

    def round(self, round_id: str) -> ShootOffRound | None:
        for r in self.rounds:
            if r.id == round_id:
                return r
        return None

    @property
    def latest_round(self) -> ShootOffRound | None:
        return max(self.rounds, key=lambda r: r.round_number) if self.rounds else None

    @property
    def athlete_ids(self) -> frozenset[str]:
        return frozenset(p.athlete_id for p in self.participants)

    @property
    def ready_for_winner(self) -> bool:
        return (
            self.status is ShootOffStatus.IN_PROGRESS
            and self.winner_id is None
            and len(self.active_participants()) == 1
        )


@dataclass
class ShootOffOutcome:
    """Result of applying a shoot-off operation."""

    shoot_off: ShootOff
    round: ShootOffRound | None = None
    eliminated: tuple[str, ...] = ()
    remaining: int = 0
    ready_for_winner: bool = False


# ==================== ELIMINATION POLICIES ====================


class EliminationPolicy(Protocol):
    def eliminate(self, shoot_off: ShootOff, round_: ShootOffRound) -> list[str]:
        """Participant ids to eliminate after ``round_`` was scored."""
        ...

    def next_round_targets(self, shoot_off: ShootOff) -> int:
        ...


def _lowest_scorers(scores: Mapping[str, int]) -> list[str]:
    """Everyone at the minimum, or nobody if that would be everyone."""
    if not scores:
        return []
    lowest = min(scores.values())
    at_minimum = [pid for pid, value in scores.items() if value == lowest]
    if len(at_minimum) == len(scores):
        return []
    return at_minimum


class SuddenDeathPolicy:
    def eliminate(self, shoot_off: ShootOff, round_: ShootOffRound) -> list[str]:
        return _lowest_scorers(round_.scores)

    def next_round_targets(self, shoot_off: ShootOff) -> int:
        return shoot_off.targets_per_round


class ProgressivePolicy(SuddenDeathPolicy):
    """Sudden-death elimination; each fully tied round adds a target to the next."""

    def next_round_targets(self, shoot_off: ShootOff) -> int:
        last = shoot_off.latest_round
        if last is None:
            return shoot_off.targets_per_round
        if last.is_complete and not last.eliminated_ids:
            return min(last.targets + 1, MAX_TARGETS_PER_ROUND)
        return last.targets


class FixedRoundsPolicy:
    """No eliminations before ``fixed_rounds``; then everyone below the best cumulative total."""

    def eliminate(self, shoot_off: ShootOff, round_: ShootOffRound) -> list[str]:
        if round_.round_number < shoot_off.fixed_rounds:
            return []
        totals: dict[str, int] = {}
        for pid in round_.participant_ids:
            participant = shoot_off.participant(pid)
            if participant is not None:
                totals[pid] = participant.total_hits
        if not totals:
            return []
        best = max(totals.values())
        return [pid for pid, total in totals.items() if total < best]

    def next_round_targets(self, shoot_off: ShootOff) -> int:
        return shoot_off.targets_per_round


_POLICIES: dict[str, EliminationPolicy] = {
    FORMAT_SUDDEN_DEATH: SuddenDeathPolicy(),
    FORMAT_PROGRESSIVE: ProgressivePolicy(),
    FORMAT_FIXED_ROUNDS: FixedRoundsPolicy(),
}


def policy_for(shoot_off_format: str) -> EliminationPolicy:
    try:
        return _POLICIES[shoot_off_format]
    except KeyError:
        raise ConfigurationError(
            f"unknown shoot-off format: {shoot_off_format!r}", kind="invalid_format"
        ) from None


# ==================== OPERATIONS ====================


def validate_shoot_off_config(config: ShootOffConfig) -> None:
    """Raise ConfigurationError unless shoot-offs can be created with ``config``."""
    if not config.enable_shoot_offs:
        raise ConfigurationError("shoot-offs are disabled for this tournament", kind="disabled")
    if config.format not in SHOOT_OFF_FORMATS:
        raise ConfigurationError(
            f"unknown shoot-off format: {config.format!r}", kind="invalid_format"
        )
    targets = config.targets_per_round
    if (
        not isinstance(targets, int)
        or isinstance(targets, bool)
        or not MIN_TARGETS_PER_ROUND <= targets <= MAX_TARGETS_PER_ROUND
    ):
        raise ConfigurationError(
            f"targets per round must be between {MIN_TARGETS_PER_ROUND} and "
            f"{MAX_TARGETS_PER_ROUND}, got {targets!r}",
            kind="invalid_targets_per_round",
        )
    if config.format == FORMAT_FIXED_ROUNDS and config.fixed_rounds < 1:
        raise ConfigurationError(
            f"fixed_rounds must be at least 1, got {config.fixed_rounds!r}",
            kind="invalid_fixed_rounds",
        )


def _reject(shoot_off: ShootOff, operation: str, message: str, kind: str) -> StateConflictError:
    logger.warning(
        f"Rejected {operation} on shoot-off {shoot_off.id} "
        f"(status={shoot_off.status.value}): {message}"
    )
    return StateConflictError(
        message,
        current_status=shoot_off.status.value,
        operation=operation,
        kind=kind,
    )


def _require_transition(shoot_off: ShootOff, target: ShootOffStatus, operation: str) -> None:
    if not can_transition(shoot_off.status, target):
        raise _reject(
            shoot_off,
            operation,
            f"cannot {operation} a shoot-off with status {shoot_off.status.value}",
            "invalid_transition",
        )


def _require_status(shoot_off: ShootOff, status: ShootOffStatus, operation: str) -> None:
    if shoot_off.status is not status:
        raise _reject(
            shoot_off,
            operation,
            f"shoot-off must be {status.value} to {operation}, not {shoot_off.status.value}",
            "invalid_status",
        )


def _next(shoot_off: ShootOff) -> ShootOff:
    new = deepcopy(shoot_off)
    new.version += 1
    return new


def create_shoot_off(
    tournament_id: str,
    position: int,
    participant_athlete_ids: Sequence[str],
    tied_score: int,
    config: ShootOffConfig,
    discipline_id: str | None = None,
    *,
    athlete_names: Mapping[str, str] | None = None,
    shoot_off_id: str | None = None,
    clock: Clock = utcnow,
) -> ShootOff:
    """Create a pending shoot-off for athletes tied at ``position``.

    Raises:
        ConfigurationError: shoot-offs disabled or misconfigured.
        ScoreValidationError: bad position, fewer than two distinct athletes.
    """
    validate_shoot_off_config(config)
    if not isinstance(position, int) or isinstance(position, bool) or position < 1:
        raise ScoreValidationError(
            f"position must be a positive integer, got {position!r}",
            field="position",
            constraint="ge_1",
        )
    athlete_ids = [str(a).strip() for a in participant_athlete_ids]
    if any(not a for a in athlete_ids):
        raise ScoreValidationError(
            "athlete ids cannot be empty", field="athleteIds", constraint="non_empty"
        )
    if len(set(athlete_ids)) != len(athlete_ids):
        raise ScoreValidationError(
            "athlete ids must be unique", field="athleteIds", constraint="unique"
        )
    if len(athlete_ids) < 2:
        raise ScoreValidationError(
            "a shoot-off needs at least 2 athletes", field="athleteIds", constraint="min_2"
        )

    names = athlete_names or {}
    shoot_off_id = shoot_off_id or _new_id()
    participants = [
        ShootOffParticipant(
            id=_new_id(),
            athlete_id=athlete_id,
            athlete_name=names.get(athlete_id, athlete_id),
            tied_score=int(tied_score),
        )
        for athlete_id in athlete_ids
    ]
    description = (
        f"{ordinal(position)} Place Shoot-Off - "
        f"{len(participants)} athletes tied at {tied_score} points"
    )
    shoot_off = ShootOff(
        id=shoot_off_id,
        tournament_id=tournament_id,
        position=position,
        format=config.format,
        targets_per_round=config.targets_per_round,
        fixed_rounds=config.fixed_rounds,
        discipline_id=discipline_id,
        description=description,
        participants=participants,
        created_at=clock(),
    )
    logger.info(f"Created shoot-off {shoot_off.id}: {description}")
    return shoot_off


def start_shoot_off(shoot_off: ShootOff, *, clock: Clock = utcnow) -> ShootOffOutcome:
    """pending -> in_progress. Round 1 is not created here."""
    _require_transition(shoot_off, ShootOffStatus.IN_PROGRESS, "start")
    new = _next(shoot_off)
    new.status = ShootOffStatus.IN_PROGRESS
    new.started_at = clock()
    logger.info(f"Started shoot-off {new.id}")
    return ShootOffOutcome(shoot_off=new, remaining=len(new.active_participants()))


def create_round(
    shoot_off: ShootOff,
    *,
    round_id: str | None = None,
    clock: Clock = utcnow,
) -> ShootOffOutcome:
    """Open the next round for the currently active participants."""
    _require_status(shoot_off, ShootOffStatus.IN_PROGRESS, "create a round")
    if shoot_off.winner_id is not None:
        raise _reject(shoot_off, "create a round", "a winner has already been declared",
                      "winner_already_declared")
    latest = shoot_off.latest_round
    if latest is not None and not latest.is_complete:
        raise _reject(
            shoot_off,
            "create a round",
            f"round {latest.round_number} must be completed before creating a new one",
            "round_in_progress",
        )
    active = shoot_off.active_participants()
    if len(active) < 2:
        raise _reject(
            shoot_off,
            "create a round",
            f"need at least 2 active participants, have {len(active)}",
            "not_enough_active",
        )

    targets = policy_for(shoot_off.format).next_round_targets(shoot_off)
    new = _next(shoot_off)
    round_ = ShootOffRound(
        id=round_id or _new_id(),
        shoot_off_id=new.id,
        round_number=(latest.round_number if latest else 0) + 1,
        targets=targets,
        participant_ids=tuple(p.id for p in active),
        created_at=clock(),
    )
    new.rounds.append(round_)
    logger.info(
        f"Shoot-off {new.id}: round {round_.round_number} created "
        f"({len(active)} participants, {targets} targets)"
    )
    return ShootOffOutcome(shoot_off=new, round=round_, remaining=len(active))


def _validate_round_scores(round_: ShootOffRound, scores: Mapping[str, int]) -> dict[str, int]:
    roster = set(round_.participant_ids)
    for participant_id in scores:
        if participant_id not in roster:
            raise ScoreValidationError(
                f"participant {participant_id} is not active in round {round_.round_number}",
                field=f"scores.{participant_id}",
                constraint="not_in_round",
            )
    missing = [pid for pid in round_.participant_ids if pid not in scores]
    if missing:
        raise ScoreValidationError(
            f"missing scores for participants: {', '.join(missing)}",
            field="scores",
            constraint="missing",
        )
    cleaned: dict[str, int] = {}
    for participant_id in round_.participant_ids:
        value = scores[participant_id]
        if not isinstance(value, int) or isinstance(value, bool):
            raise ScoreValidationError(
                f"score for {participant_id} must be an integer, got {value!r}",
                field=f"scores.{participant_id}",
                constraint="integer",
            )
        if value < 0 or value > round_.targets:
            raise ScoreValidationError(
                f"targets must be between 0 and {round_.targets}, got {value}",
                field=f"scores.{participant_id}",
                constraint="range",
            )
        cleaned[participant_id] = value
    return cleaned


def submit_round_scores(
    shoot_off: ShootOff,
    round_id: str,
    scores_by_participant: Mapping[str, int],
    *,
    clock: Clock = utcnow,
) -> ShootOffOutcome:
    """Record one score per round participant, then apply the elimination policy.

    When a single participant remains the outcome is flagged
    ``ready_for_winner``; the winner is still declared explicitly.
    """
    round_ = shoot_off.round(round_id)
    if round_ is None:
        raise NotFoundError(f"round {round_id} not found in shoot-off {shoot_off.id}")
    _require_status(shoot_off, ShootOffStatus.IN_PROGRESS, "submit scores")
    if round_.is_complete:
        raise _reject(
            shoot_off,
            "submit scores",
            f"round {round_.round_number} is already completed",
            "round_completed",
        )
    cleaned = _validate_round_scores(round_, scores_by_participant)

    new = _next(shoot_off)
    new_round = new.round(round_id)
    new_round.scores = dict(cleaned)
    new_round.completed_at = clock()
    for participant_id, value in cleaned.items():
        new.participant(participant_id).scores[new_round.round_number] = value

    eliminated = policy_for(new.format).eliminate(new, new_round)
    for participant_id in eliminated:
        participant = new.participant(participant_id)
        participant.eliminated = True
        participant.eliminated_in_round = new_round.round_number
    new_round.eliminated_ids = tuple(eliminated)

    remaining = len(new.active_participants())
    if eliminated:
        logger.info(
            f"Shoot-off {new.id}: round {new_round.round_number} eliminated "
            f"{len(eliminated)}, {remaining} remaining"
        )
    else:
        logger.info(
            f"Shoot-off {new.id}: round {new_round.round_number} scored with no "
            f"elimination, {remaining} remaining"
        )
    return ShootOffOutcome(
        shoot_off=new,
        round=new_round,
        eliminated=tuple(eliminated),
        remaining=remaining,
        ready_for_winner=new.ready_for_winner,
    )


def _participant_sort_key(p: ShootOffParticipant) -> tuple[str, str]:
    return (p.athlete_name.lower(), p.athlete_id)


def _assign_final_places(shoot_off: ShootOff, winner: ShootOffParticipant) -> None:
    winner.final_place = 1
    by_round: dict[int, list[ShootOffParticipant]] = {}
    for p in shoot_off.participants:
        if p is winner:
            continue
        # Eliminations without a recorded round rank behind every scored round.
        key = p.eliminated_in_round if p.eliminated_in_round is not None else -1
        by_round.setdefault(key, []).append(p)
    place = 2
    for round_number in sorted(by_round, reverse=True):
        group = sorted(by_round[round_number], key=_participant_sort_key)
        for p in group:
            p.final_place = place
        place += len(group)


def declare_winner(
    shoot_off: ShootOff,
    winner_participant_id: str,
    *,
    clock: Clock = utcnow,
) -> ShootOffOutcome:
    """Complete the shoot-off with its single remaining participant as winner.

    Eliminated participants are placed from the most recent elimination
    round backwards; participants eliminated together share a place.
    """
    _require_status(shoot_off, ShootOffStatus.IN_PROGRESS, "declare a winner")
    if shoot_off.winner_id is not None:
        raise _reject(shoot_off, "declare a winner", "a winner has already been declared",
                      "winner_already_declared")
    active = shoot_off.active_participants()
    if len(active) != 1:
        raise _reject(
            shoot_off,
            "declare a winner",
            f"exactly one active participant is required, have {len(active)}",
            "not_single_active",
        )
    candidate = shoot_off.participant(winner_participant_id)
    if candidate is None:
        raise NotFoundError(
            f"participant {winner_participant_id} not found in shoot-off {shoot_off.id}"
        )
    if candidate.id != active[0].id:
        raise ScoreValidationError(
            "cannot declare an eliminated participant as winner",
            field="winnerParticipantId",
            constraint="eliminated",
        )

    new = _next(shoot_off)
    winner = new.participant(winner_participant_id)
    _assign_final_places(new, winner)
    new.winner_id = winner.athlete_id
    new.status = ShootOffStatus.COMPLETED
    new.completed_at = clock()
    logger.info(f"Shoot-off {new.id}: winner {winner.athlete_id}")
    return ShootOffOutcome(shoot_off=new, remaining=1)


def cancel_shoot_off(shoot_off: ShootOff, *, clock: Clock = utcnow) -> ShootOffOutcome:
    """Cancel; rounds already played are kept but are not official results."""
    _require_transition(shoot_off, ShootOffStatus.CANCELLED, "cancel")
    new = _next(shoot_off)
    new.status = ShootOffStatus.CANCELLED
    new.cancelled_at = clock()
    logger.info(f"Cancelled shoot-off {new.id}")
    return ShootOffOutcome(shoot_off=new, remaining=len(new.active_participants()))


def official_placements(shoot_off: ShootOff) -> list[ShootOffParticipant]:
    """Participants ordered by final place; empty unless the shoot-off completed."""
    if shoot_off.status is not ShootOffStatus.COMPLETED:
        return []
    return sorted(
        shoot_off.participants,
        key=lambda p: (p.final_place if p.final_place is not None else 10**6,
                       *_participant_sort_key(p)),
    )
