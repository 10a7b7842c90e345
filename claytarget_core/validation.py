"""
Input validation schemas using Pydantic v2
Validates score rows, tournament shoot-off settings and operator requests
"""

import json
import logging
from typing import Dict, List, Optional, Self, Sequence, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .constants import (
    DEFAULT_FIXED_ROUNDS,
    DEFAULT_SHOOT_OFF_FORMAT,
    DEFAULT_TARGETS_PER_ROUND,
    DISCIPLINE_FIVE_STAND,
    DISCIPLINE_KINDS,
    DISCIPLINE_SKEET,
    DISCIPLINE_SPORTING_CLAYS,
    DISCIPLINE_TRAP,
    MAX_TARGETS_PER_ROUND,
    MIN_TARGETS_PER_ROUND,
    SHOOT_OFF_FORMATS,
    TRIGGER_RANK_RULES,
)
from .errors import ConfigurationError, ScoreValidationError
from .models import DisciplineConfig, ShootOffConfig, StationScore
from .types import (
    DisciplineConfigPayload,
    RoundSubmissionPayload,
    ShootOffConfigPayload,
    ShootOffRequestPayload,
    StationScorePayload,
)

logger = logging.getLogger(__name__)

# ==================== SCHEMAS ====================


class ValidatedStationScore(BaseModel):
    """One station score row"""

    roundNumber: int = Field(1, ge=1, le=100, description="Round number (1-based)")
    stationNumber: int = Field(1, ge=1, le=100, description="Station number (1-based)")
    targets: int = Field(..., ge=0, le=1000, description="Targets hit")
    maxTargets: int = Field(
        ...,
        ge=0,
        le=1000,
        validation_alias=AliasChoices("maxTargets", "totalTargets"),
        description="Targets possible at this station",
    )

    @model_validator(mode="after")
    def validate_hits_within_possible(self) -> Self:
        if self.targets > self.maxTargets:
            raise ValueError(
                f"targets ({self.targets}) cannot exceed maxTargets ({self.maxTargets})"
            )
        return self

    def to_station_score(self) -> StationScore:
        return StationScore(
            targets=self.targets,
            max_targets=self.maxTargets,
            round_number=self.roundNumber,
            station_number=self.stationNumber,
        )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ValidatedShootOffConfig(BaseModel):
    """Tournament shoot-off settings"""

    enableShootOffs: bool = True
    shootOffTriggers: List[str] = Field(default_factory=list)
    shootOffFormat: str = Field(DEFAULT_SHOOT_OFF_FORMAT, description="Elimination format")
    shootOffTargetsPerRound: int = Field(
        DEFAULT_TARGETS_PER_ROUND,
        ge=MIN_TARGETS_PER_ROUND,
        le=MAX_TARGETS_PER_ROUND,
        description="Targets per shoot-off round (1-10)",
    )
    shootOffStartStation: Optional[str] = Field(None, max_length=50)
    shootOffRequiresPerfect: bool = False
    shootOffFixedRounds: int = Field(DEFAULT_FIXED_ROUNDS, ge=1, le=25)

    @field_validator("shootOffTriggers", mode="before")
    @classmethod
    def decode_triggers(cls, v: Union[List[str], str, None]) -> List[str]:
        """Accept the JSON string stored on the tournament row"""
        if v is None:
            return []
        if isinstance(v, str):
            stripped = v.strip()
            if not stripped:
                return []
            try:
                decoded = json.loads(stripped)
            except json.JSONDecodeError:
                raise ValueError("shootOffTriggers must be a list or a JSON-encoded list")
            if not isinstance(decoded, list):
                raise ValueError("shootOffTriggers must decode to a list")
            return decoded
        return v

    @field_validator("shootOffTriggers")
    @classmethod
    def validate_triggers(cls, v: List[str]) -> List[str]:
        allowed = set(TRIGGER_RANK_RULES)
        for trigger in v:
            if trigger not in allowed:
                raise ValueError(f"trigger must be one of {sorted(allowed)}, got {trigger}")
        # Keep first occurrence order, drop duplicates.
        return list(dict.fromkeys(v))

    @field_validator("shootOffFormat")
    @classmethod
    def validate_format(cls, v: str) -> str:
        v = v.strip()
        if v not in SHOOT_OFF_FORMATS:
            raise ValueError(f"shootOffFormat must be one of {sorted(SHOOT_OFF_FORMATS)}, got {v}")
        return v

    @field_validator("shootOffStartStation")
    @classmethod
    def blank_station_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        return v or None

    def to_config(self) -> ShootOffConfig:
        return ShootOffConfig(
            enable_shoot_offs=self.enableShootOffs,
            triggers=frozenset(self.shootOffTriggers),
            format=self.shootOffFormat,
            targets_per_round=self.shootOffTargetsPerRound,
            start_station=self.shootOffStartStation,
            requires_perfect=self.shootOffRequiresPerfect,
            fixed_rounds=self.shootOffFixedRounds,
        )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ValidatedDisciplineConfig(BaseModel):
    """Per-discipline tournament configuration"""

    disciplineId: str = Field(..., min_length=1, max_length=64)
    kind: str
    rounds: Optional[int] = Field(None, ge=1, le=50)
    targets: Optional[int] = Field(None, ge=1, le=1000)
    stations: Optional[int] = Field(None, ge=1, le=100)

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in DISCIPLINE_KINDS:
            raise ValueError(f"kind must be one of {sorted(DISCIPLINE_KINDS)}, got {v}")
        return v

    @model_validator(mode="after")
    def validate_required_fields(self) -> Self:
        """Required fields depend on the discipline kind"""
        if self.kind in {DISCIPLINE_TRAP, DISCIPLINE_SKEET}:
            if self.rounds is None:
                raise ValueError(f"{self.kind} requires rounds")
        elif self.kind == DISCIPLINE_FIVE_STAND:
            if self.targets is None:
                raise ValueError("five_stand requires targets")
        elif self.kind == DISCIPLINE_SPORTING_CLAYS:
            if self.targets is None or self.stations is None:
                raise ValueError("sporting_clays requires targets and stations")
        return self

    def to_config(self) -> DisciplineConfig:
        return DisciplineConfig(
            discipline_id=self.disciplineId,
            kind=self.kind,
            rounds=self.rounds,
            targets=self.targets,
            stations=self.stations,
        )


class ValidatedShootOffRequest(BaseModel):
    """Operator request to create a shoot-off"""

    position: int = Field(..., ge=1, le=1000)
    athleteIds: List[str] = Field(..., min_length=2, max_length=500)
    disciplineId: Optional[str] = Field(None, max_length=64)

    @field_validator("athleteIds")
    @classmethod
    def validate_athlete_ids(cls, v: List[str]) -> List[str]:
        cleaned = [InputSanitizer.sanitize_string(a, 64) for a in v]
        if any(not a for a in cleaned):
            raise ValueError("athleteIds cannot contain empty ids")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("athleteIds must be unique")
        return cleaned


class ValidatedRoundScore(BaseModel):
    participantId: str = Field(..., min_length=1, max_length=64)
    targets: int = Field(..., ge=0, le=MAX_TARGETS_PER_ROUND)


class ValidatedRoundSubmission(BaseModel):
    """Scores for one shoot-off round"""

    scores: List[ValidatedRoundScore] = Field(..., min_length=1)

    @field_validator("scores")
    @classmethod
    def validate_unique_participants(
        cls, v: List[ValidatedRoundScore]
    ) -> List[ValidatedRoundScore]:
        seen = set()
        for entry in v:
            if entry.participantId in seen:
                raise ValueError(f"duplicate score for participant {entry.participantId}")
            seen.add(entry.participantId)
        return v

    def as_mapping(self) -> Dict[str, int]:
        return {entry.participantId: entry.targets for entry in self.scores}


# ==================== SANITIZER / PARSERS ====================


def _first_error(exc: ValidationError) -> tuple[str, str, str]:
    errors = exc.errors()
    if not errors:
        return "", "invalid", str(exc)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    return loc, first.get("type", "invalid"), first.get("msg", str(exc))


class InputSanitizer:
    """Utility class for input sanitization and payload parsing"""

    @staticmethod
    def sanitize_string(value: str, max_length: int = 255) -> str:
        """Sanitize string input"""
        if not isinstance(value, str):
            return str(value)[:max_length]

        # Strip whitespace
        value = value.strip()

        # Limit length
        value = value[:max_length]

        # Remove null bytes
        value = value.replace("\0", "")

        return value

    @staticmethod
    def parse_station_scores(
        rows: Sequence[StationScorePayload],
    ) -> tuple[StationScore, ...]:
        """
        Validate raw score rows

        Raises:
            ScoreValidationError: first invalid row/field
        """
        parsed = []
        for i, row in enumerate(rows):
            try:
                parsed.append(ValidatedStationScore.model_validate(row).to_station_score())
            except ValidationError as e:
                loc, constraint, msg = _first_error(e)
                logger.warning(f"Score row {i} rejected: {msg}")
                raise ScoreValidationError(
                    f"score {i}: {msg}",
                    field=f"scores[{i}].{loc}" if loc else f"scores[{i}]",
                    constraint=constraint,
                ) from e
        return tuple(parsed)

    @staticmethod
    def parse_shoot_off_config(payload: ShootOffConfigPayload) -> ShootOffConfig:
        """
        Validate tournament shoot-off settings

        Raises:
            ConfigurationError: settings cannot drive a shoot-off
        """
        try:
            return ValidatedShootOffConfig.model_validate(payload).to_config()
        except ValidationError as e:
            loc, _, msg = _first_error(e)
            logger.warning(f"Shoot-off configuration rejected: {loc}: {msg}")
            raise ConfigurationError(f"invalid shoot-off configuration: {loc}: {msg}") from e

    @staticmethod
    def parse_discipline_config(payload: DisciplineConfigPayload) -> DisciplineConfig:
        try:
            return ValidatedDisciplineConfig.model_validate(payload).to_config()
        except ValidationError as e:
            loc, constraint, msg = _first_error(e)
            logger.warning(f"Discipline configuration rejected: {msg}")
            raise ScoreValidationError(
                f"invalid discipline configuration: {msg}",
                field=loc or "discipline",
                constraint=constraint,
            ) from e

    @staticmethod
    def parse_shoot_off_request(payload: ShootOffRequestPayload) -> ValidatedShootOffRequest:
        try:
            return ValidatedShootOffRequest.model_validate(payload)
        except ValidationError as e:
            loc, constraint, msg = _first_error(e)
            logger.warning(f"Shoot-off request rejected: {msg}")
            raise ScoreValidationError(
                f"invalid shoot-off request: {msg}", field=loc, constraint=constraint
            ) from e

    @staticmethod
    def parse_round_submission(payload: RoundSubmissionPayload) -> Dict[str, int]:
        """Return participant id -> targets hit"""
        try:
            return ValidatedRoundSubmission.model_validate(payload).as_mapping()
        except ValidationError as e:
            loc, constraint, msg = _first_error(e)
            logger.warning(f"Round submission rejected: {msg}")
            raise ScoreValidationError(
                f"invalid round submission: {msg}", field=loc, constraint=constraint
            ) from e


# ==================== EXPORT ====================

__all__ = [
    "ValidatedStationScore",
    "ValidatedShootOffConfig",
    "ValidatedDisciplineConfig",
    "ValidatedShootOffRequest",
    "ValidatedRoundSubmission",
    "InputSanitizer",
]
