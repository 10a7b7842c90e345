"""Leaderboard ranking and shoot-off tie detection.

Detection only proposes ties; creating the shoot-off is a separate operator
action. Running it twice over the same input gives the same candidates.
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from .constants import TRIGGER_RANK_RULES
from .errors import ConfigurationError, ScoreValidationError
from .models import Athlete, Shoot, Tournament
from .normalizer import normalize_shoot
from .shootoff import ShootOff, ShootOffStatus, ordinal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedTotal:
    rank: int
    athlete_id: str
    athlete_name: str
    total_targets: int
    total_possible: int
    team_name: str | None = None

    @property
    def is_perfect(self) -> bool:
        return self.total_possible > 0 and self.total_targets == self.total_possible


@dataclass(frozen=True)
class TieCandidate:
    position: int
    athletes: tuple[RankedTotal, ...]
    tied_score: int
    description: str
    fingerprint: str
    discipline_id: str | None = None

    @property
    def athlete_ids(self) -> tuple[str, ...]:
        return tuple(a.athlete_id for a in self.athletes)


def _total_sort_key(row: RankedTotal) -> tuple[int, str, str]:
    return (-row.total_targets, row.athlete_name.lower(), row.athlete_id)


def rank_totals(
    shoots: Iterable[Shoot],
    athletes: Mapping[str, Athlete] | None = None,
    *,
    division: str | None = None,
    discipline_id: str | None = None,
) -> list[RankedTotal]:
    """
    Sum targets hit per athlete and rank them.

    Only shoots with at least one score count. ``division`` filters on the
    athletes' effective division and therefore needs ``athletes``.
    Identical totals share the rank of the first row in their band.
    """
    athletes = athletes or {}
    if division is not None and not athletes:
        raise ScoreValidationError(
            "division filtering requires the athletes mapping",
            field="athletes",
            constraint="required",
        )

    hits: dict[str, int] = {}
    possible: dict[str, int] = {}
    for shoot in shoots:
        if not shoot.has_scores:
            continue
        if discipline_id is not None and shoot.discipline_id != discipline_id:
            continue
        if division is not None:
            athlete = athletes.get(shoot.athlete_id)
            if athlete is None or athlete.effective_division != division:
                continue
        totals = normalize_shoot(shoot.scores)
        hits[shoot.athlete_id] = hits.get(shoot.athlete_id, 0) + totals.total_targets
        possible[shoot.athlete_id] = possible.get(shoot.athlete_id, 0) + totals.total_possible

    rows = []
    for athlete_id, total in hits.items():
        athlete = athletes.get(athlete_id)
        rows.append(
            RankedTotal(
                rank=0,
                athlete_id=athlete_id,
                athlete_name=athlete.name if athlete else athlete_id,
                total_targets=total,
                total_possible=possible[athlete_id],
                team_name=athlete.team_name if athlete else None,
            )
        )
    rows.sort(key=_total_sort_key)

    ranked: list[RankedTotal] = []
    for index, row in enumerate(rows):
        if ranked and ranked[-1].total_targets == row.total_targets:
            rank = ranked[-1].rank
        else:
            rank = index + 1
        ranked.append(
            RankedTotal(
                rank=rank,
                athlete_id=row.athlete_id,
                athlete_name=row.athlete_name,
                total_targets=row.total_targets,
                total_possible=row.total_possible,
                team_name=row.team_name,
            )
        )
    return ranked


def _fingerprint(payload: dict) -> str:
    raw = json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
    return f"tie:{hashlib.sha1(raw.encode('utf-8')).hexdigest()}"


def _validate_triggers(triggers: Iterable[str]) -> frozenset[str]:
    resolved = frozenset(triggers)
    unknown = sorted(resolved - TRIGGER_RANK_RULES.keys())
    if unknown:
        raise ConfigurationError(
            f"unknown shoot-off triggers: {unknown}", kind="invalid_triggers"
        )
    return resolved


def _is_triggered(rank: int, triggers: frozenset[str]) -> bool:
    return any(TRIGGER_RANK_RULES[trigger](rank) for trigger in triggers)


def covers_tie(
    shoot_off: ShootOff,
    tournament_id: str,
    position: int,
    athlete_ids: Iterable[str],
    discipline_id: str | None = None,
) -> bool:
    """True when a live shoot-off already resolves this tie."""
    return (
        shoot_off.status is not ShootOffStatus.CANCELLED
        and shoot_off.tournament_id == tournament_id
        and shoot_off.position == position
        and shoot_off.discipline_id == discipline_id
        and shoot_off.athlete_ids >= frozenset(athlete_ids)
    )


def _bands(ranked_totals: Sequence[RankedTotal]) -> list[list[RankedTotal]]:
    rows = sorted(ranked_totals, key=_total_sort_key)
    bands: list[list[RankedTotal]] = []
    for row in rows:
        if bands and bands[-1][0].total_targets == row.total_targets:
            bands[-1].append(row)
        else:
            bands.append([row])
    return bands


def detect_ties(
    tournament_id: str,
    ranked_totals: Sequence[RankedTotal],
    triggers: Iterable[str],
    existing_shoot_offs: Iterable[ShootOff] = (),
    *,
    requires_perfect: bool = False,
    discipline_id: str | None = None,
) -> list[TieCandidate]:
    """
    Find tied score bands whose starting rank matches a trigger.

    Args:
      tournament_id: tournament the ranking belongs to.
      ranked_totals: per-athlete totals (see ``rank_totals``); ranks are
        re-derived from the totals so the input order does not matter.
      triggers: subset of ``{"1st", "2nd", "3rd", "top5", "top10"}``.
      existing_shoot_offs: shoot-offs already created; a non-cancelled one at
        the same position covering every tied athlete suppresses the tie.
      requires_perfect: only report ties at a perfect score.
      discipline_id: scope for discipline leaderboards (None = overall).
    """
    active_triggers = _validate_triggers(triggers)
    existing = list(existing_shoot_offs)
    candidates: list[TieCandidate] = []
    position = 1
    for band in _bands(ranked_totals):
        rank = position
        position += len(band)
        if len(band) < 2 or not _is_triggered(rank, active_triggers):
            continue
        if requires_perfect and not all(row.is_perfect for row in band):
            continue
        athlete_ids = [row.athlete_id for row in band]
        if any(covers_tie(so, tournament_id, rank, athlete_ids, discipline_id) for so in existing):
            logger.debug(f"Tie at {ordinal(rank)} already covered by a shoot-off")
            continue
        tied_score = band[0].total_targets
        members = tuple(
            RankedTotal(
                rank=rank,
                athlete_id=row.athlete_id,
                athlete_name=row.athlete_name,
                total_targets=row.total_targets,
                total_possible=row.total_possible,
                team_name=row.team_name,
            )
            for row in band
        )
        candidates.append(
            TieCandidate(
                position=rank,
                athletes=members,
                tied_score=tied_score,
                description=(
                    f"Tied for {ordinal(rank)} place - "
                    f"{len(band)} athletes at {tied_score} points"
                ),
                fingerprint=_fingerprint(
                    {
                        "tournament": tournament_id,
                        "discipline": discipline_id,
                        "position": rank,
                        "score": tied_score,
                        "athletes": sorted(athlete_ids),
                    }
                ),
                discipline_id=discipline_id,
            )
        )
    return candidates


def detect_tournament_ties(
    tournament: Tournament,
    shoots: Iterable[Shoot],
    athletes: Mapping[str, Athlete] | None = None,
    existing_shoot_offs: Iterable[ShootOff] = (),
    *,
    discipline_id: str | None = None,
) -> list[TieCandidate]:
    """Rank a tournament's shoots and detect ties with its own shoot-off settings."""
    config = tournament.shoot_off_config
    if not config.enable_shoot_offs:
        return []
    scoped = [shoot for shoot in shoots if shoot.tournament_id == tournament.id]
    ranked = rank_totals(scoped, athletes, discipline_id=discipline_id)
    return detect_ties(
        tournament.id,
        ranked,
        config.triggers,
        existing_shoot_offs,
        requires_perfect=config.requires_perfect,
        discipline_id=discipline_id,
    )
