"""In-memory shoot-off registry with serialised mutation.

Mutations of one shoot-off run under that shoot-off's lock, and each accepts
an optional ``expected_version`` so a caller working from a stale snapshot is
rejected instead of double-eliminating or skipping an elimination.
Reads return copies.
"""
from __future__ import annotations

import logging
import threading
from copy import deepcopy
from typing import Callable, Mapping, Sequence

from .errors import NotFoundError, StateConflictError
from .models import ShootOffConfig
from .shootoff import (
    Clock,
    ShootOff,
    ShootOffOutcome,
    ShootOffRound,
    cancel_shoot_off,
    create_round,
    create_shoot_off,
    declare_winner,
    start_shoot_off,
    submit_round_scores,
    utcnow,
)
from .ties import covers_tie

logger = logging.getLogger(__name__)


class ShootOffLedger:
    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._shoot_offs: dict[str, ShootOff] = {}
        self._round_index: dict[str, str] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    # ---- reads ----

    def get(self, shoot_off_id: str) -> ShootOff:
        with self._registry_lock:
            shoot_off = self._shoot_offs.get(shoot_off_id)
        if shoot_off is None:
            raise NotFoundError(f"shoot-off {shoot_off_id} not found")
        return deepcopy(shoot_off)

    def list_for_tournament(self, tournament_id: str) -> list[ShootOff]:
        with self._registry_lock:
            matches = [so for so in self._shoot_offs.values() if so.tournament_id == tournament_id]
        return [deepcopy(so) for so in sorted(matches, key=lambda so: (so.position, so.created_at))]

    def find_round(self, round_id: str) -> tuple[ShootOff, ShootOffRound]:
        with self._registry_lock:
            shoot_off_id = self._round_index.get(round_id)
        if shoot_off_id is None:
            raise NotFoundError(f"round {round_id} not found")
        shoot_off = self.get(shoot_off_id)
        return shoot_off, shoot_off.round(round_id)

    # ---- mutations ----

    def create_shoot_off(
        self,
        tournament_id: str,
        position: int,
        participant_athlete_ids: Sequence[str],
        tied_score: int,
        config: ShootOffConfig,
        discipline_id: str | None = None,
        *,
        athlete_names: Mapping[str, str] | None = None,
    ) -> ShootOff:
        """Register a new pending shoot-off unless a live one already covers the tie."""
        shoot_off = create_shoot_off(
            tournament_id,
            position,
            participant_athlete_ids,
            tied_score,
            config,
            discipline_id,
            athlete_names=athlete_names,
            clock=self._clock,
        )
        with self._registry_lock:
            for existing in self._shoot_offs.values():
                if covers_tie(existing, tournament_id, position, shoot_off.athlete_ids, discipline_id):
                    logger.warning(
                        f"Shoot-off {existing.id} already covers position {position} "
                        f"in tournament {tournament_id}"
                    )
                    raise StateConflictError(
                        f"shoot-off {existing.id} already covers this tie",
                        current_status=existing.status.value,
                        operation="create",
                        kind="duplicate_shoot_off",
                    )
            self._shoot_offs[shoot_off.id] = shoot_off
            self._locks[shoot_off.id] = threading.Lock()
        return deepcopy(shoot_off)

    def discard(self, shoot_off_id: str) -> ShootOff:
        """Drop a shoot-off, its lock and its round index entries once persisted."""
        with self._lock_for(shoot_off_id):
            with self._registry_lock:
                shoot_off = self._shoot_offs.pop(shoot_off_id)
                self._locks.pop(shoot_off_id, None)
                for round_ in shoot_off.rounds:
                    self._round_index.pop(round_.id, None)
        logger.debug(f"Discarded shoot-off {shoot_off_id} from ledger")
        return shoot_off

    def _lock_for(self, shoot_off_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(shoot_off_id)
        if lock is None:
            raise NotFoundError(f"shoot-off {shoot_off_id} not found")
        return lock

    def _mutate(
        self,
        shoot_off_id: str,
        expected_version: int | None,
        operation: Callable[[ShootOff], ShootOffOutcome],
    ) -> ShootOffOutcome:
        with self._lock_for(shoot_off_id):
            current = self._shoot_offs.get(shoot_off_id)
            if current is None:
                raise NotFoundError(f"shoot-off {shoot_off_id} not found")
            if expected_version is not None and expected_version != current.version:
                raise StateConflictError(
                    f"shoot-off {shoot_off_id} is at version {current.version}, "
                    f"expected {expected_version}",
                    current_status=current.status.value,
                    kind="stale_version",
                )
            outcome = operation(current)
            with self._registry_lock:
                self._shoot_offs[shoot_off_id] = outcome.shoot_off
                for round_ in outcome.shoot_off.rounds:
                    self._round_index[round_.id] = shoot_off_id
        return ShootOffOutcome(
            shoot_off=deepcopy(outcome.shoot_off),
            round=deepcopy(outcome.round),
            eliminated=outcome.eliminated,
            remaining=outcome.remaining,
            ready_for_winner=outcome.ready_for_winner,
        )

    def start_shoot_off(
        self, shoot_off_id: str, *, expected_version: int | None = None
    ) -> ShootOffOutcome:
        return self._mutate(
            shoot_off_id,
            expected_version,
            lambda so: start_shoot_off(so, clock=self._clock),
        )

    def create_round(
        self, shoot_off_id: str, *, expected_version: int | None = None
    ) -> ShootOffOutcome:
        return self._mutate(
            shoot_off_id,
            expected_version,
            lambda so: create_round(so, clock=self._clock),
        )

    def submit_round_scores(
        self,
        round_id: str,
        scores_by_participant: Mapping[str, int],
        *,
        expected_version: int | None = None,
    ) -> ShootOffOutcome:
        with self._registry_lock:
            shoot_off_id = self._round_index.get(round_id)
        if shoot_off_id is None:
            raise NotFoundError(f"round {round_id} not found")
        return self._mutate(
            shoot_off_id,
            expected_version,
            lambda so: submit_round_scores(so, round_id, scores_by_participant, clock=self._clock),
        )

    def declare_winner(
        self,
        shoot_off_id: str,
        winner_participant_id: str,
        *,
        expected_version: int | None = None,
    ) -> ShootOffOutcome:
        return self._mutate(
            shoot_off_id,
            expected_version,
            lambda so: declare_winner(so, winner_participant_id, clock=self._clock),
        )

    def cancel_shoot_off(
        self, shoot_off_id: str, *, expected_version: int | None = None
    ) -> ShootOffOutcome:
        return self._mutate(
            shoot_off_id,
            expected_version,
            lambda so: cancel_shoot_off(so, clock=self._clock),
        )
