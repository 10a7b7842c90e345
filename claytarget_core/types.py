"""Type definitions for payloads exchanged with the API/persistence layer."""
from __future__ import annotations

from typing import List, Optional, TypedDict, Union


class StationScorePayload(TypedDict, total=False):
    """One station/round score row as stored by the persistence layer."""
    roundNumber: int
    stationNumber: int
    targets: int  # Targets hit
    maxTargets: int  # Targets possible (older rows call this totalTargets)
    totalTargets: int


class ShootOffConfigPayload(TypedDict, total=False):
    """
    Tournament shoot-off settings as edited on the tournament form.

    shootOffTriggers may arrive either as a list or as the JSON-encoded
    string the tournament table stores.
    """
    enableShootOffs: bool
    shootOffTriggers: Union[List[str], str, None]
    shootOffFormat: str  # 'sudden_death' | 'fixed_rounds' | 'progressive'
    shootOffTargetsPerRound: int
    shootOffStartStation: Optional[str]
    shootOffRequiresPerfect: bool
    shootOffFixedRounds: int


class DisciplineConfigPayload(TypedDict, total=False):
    disciplineId: str
    kind: str  # 'trap' | 'skeet' | 'five_stand' | 'sporting_clays'
    rounds: Optional[int]
    targets: Optional[int]
    stations: Optional[int]


class ShootOffRequestPayload(TypedDict, total=False):
    """Operator request to open a shoot-off for a detected tie."""
    position: int
    athleteIds: List[str]
    disciplineId: Optional[str]


class RoundScorePayload(TypedDict):
    participantId: str
    targets: int


class RoundSubmissionPayload(TypedDict):
    scores: List[RoundScorePayload]
