from datetime import datetime

import pytest

from claytarget_core import (
    ConfigurationError,
    NotFoundError,
    ScoreValidationError,
    ShootOffConfig,
    ShootOffStatus,
    StateConflictError,
    cancel_shoot_off,
    create_round,
    create_shoot_off,
    declare_winner,
    official_placements,
    start_shoot_off,
    submit_round_scores,
)

NAMES = {"ath-a": "Avery", "ath-b": "Blake", "ath-c": "Casey", "ath-d": "Drew"}


def fixed_clock():
    return datetime(2025, 4, 12, 16, 30)


def _pid(shoot_off, athlete_id):
    return next(p.id for p in shoot_off.participants if p.athlete_id == athlete_id)


def _scores(shoot_off, **by_athlete):
    return {_pid(shoot_off, f"ath-{k}"): v for k, v in by_athlete.items()}


def _started(athletes=("ath-a", "ath-b", "ath-c", "ath-d"), **config):
    shoot_off = create_shoot_off(
        "t1",
        1,
        list(athletes),
        48,
        ShootOffConfig(**config),
        athlete_names=NAMES,
        clock=fixed_clock,
    )
    return start_shoot_off(shoot_off, clock=fixed_clock).shoot_off


def _play(shoot_off, **by_athlete):
    opened = create_round(shoot_off, clock=fixed_clock)
    return submit_round_scores(
        opened.shoot_off, opened.round.id, _scores(opened.shoot_off, **by_athlete), clock=fixed_clock
    )


def test_create_shoot_off_builds_pending_entity():
    shoot_off = create_shoot_off(
        "t1", 1, ["ath-a", "ath-b", "ath-c"], 48, ShootOffConfig(), athlete_names=NAMES,
        clock=fixed_clock,
    )
    assert shoot_off.status is ShootOffStatus.PENDING
    assert shoot_off.format == "sudden_death"
    assert shoot_off.targets_per_round == 2
    assert shoot_off.description == "1st Place Shoot-Off - 3 athletes tied at 48 points"
    assert [p.athlete_name for p in shoot_off.participants] == ["Avery", "Blake", "Casey"]
    assert all(p.tied_score == 48 and not p.eliminated for p in shoot_off.participants)
    assert shoot_off.rounds == []
    assert shoot_off.created_at == fixed_clock()


def test_create_shoot_off_rejects_bad_input():
    with pytest.raises(ScoreValidationError) as exc:
        create_shoot_off("t1", 1, ["ath-a"], 48, ShootOffConfig())
    assert exc.value.constraint == "min_2"
    with pytest.raises(ScoreValidationError) as exc:
        create_shoot_off("t1", 1, ["ath-a", "ath-a"], 48, ShootOffConfig())
    assert exc.value.constraint == "unique"
    with pytest.raises(ScoreValidationError):
        create_shoot_off("t1", 0, ["ath-a", "ath-b"], 48, ShootOffConfig())


def test_create_shoot_off_checks_configuration():
    with pytest.raises(ConfigurationError) as exc:
        create_shoot_off("t1", 1, ["ath-a", "ath-b"], 48, ShootOffConfig(enable_shoot_offs=False))
    assert exc.value.kind == "disabled"
    with pytest.raises(ConfigurationError) as exc:
        create_shoot_off("t1", 1, ["ath-a", "ath-b"], 48, ShootOffConfig(format="coin_toss"))
    assert exc.value.kind == "invalid_format"
    with pytest.raises(ConfigurationError) as exc:
        create_shoot_off("t1", 1, ["ath-a", "ath-b"], 48, ShootOffConfig(targets_per_round=11))
    assert exc.value.kind == "invalid_targets_per_round"


def test_start_does_not_create_round():
    shoot_off = _started()
    assert shoot_off.status is ShootOffStatus.IN_PROGRESS
    assert shoot_off.started_at == fixed_clock()
    assert shoot_off.rounds == []


def test_lowest_scorers_are_eliminated():
    shoot_off = _started()
    outcome = _play(shoot_off, a=2, b=2, c=1, d=1)
    assert outcome.remaining == 2
    assert not outcome.ready_for_winner
    eliminated = {p.athlete_id for p in outcome.shoot_off.participants if p.eliminated}
    assert eliminated == {"ath-c", "ath-d"}
    assert all(
        p.eliminated_in_round == 1 for p in outcome.shoot_off.participants if p.eliminated
    )
    assert outcome.round.round_number == 1
    assert outcome.round.completed_at == fixed_clock()


def test_all_tied_round_eliminates_nobody_and_next_round_keeps_roster():
    shoot_off = _play(_started(), a=2, b=2, c=1, d=1).shoot_off
    outcome = _play(shoot_off, a=2, b=2)
    assert outcome.eliminated == ()
    assert outcome.remaining == 2

    round_three = create_round(outcome.shoot_off, clock=fixed_clock).round
    assert round_three.round_number == 3
    assert set(round_three.participant_ids) == {
        _pid(shoot_off, "ath-a"),
        _pid(shoot_off, "ath-b"),
    }


def test_full_shoot_off_to_winner_with_shared_places():
    shoot_off = _play(_started(), a=2, b=2, c=1, d=1).shoot_off
    shoot_off = _play(shoot_off, a=2, b=2).shoot_off
    outcome = _play(shoot_off, a=2, b=1)
    assert outcome.ready_for_winner
    assert outcome.remaining == 1

    done = declare_winner(outcome.shoot_off, _pid(shoot_off, "ath-a"), clock=fixed_clock).shoot_off
    assert done.status is ShootOffStatus.COMPLETED
    assert done.winner_id == "ath-a"
    assert done.completed_at == fixed_clock()
    places = [(p.athlete_id, p.final_place) for p in official_placements(done)]
    assert places == [("ath-a", 1), ("ath-b", 2), ("ath-c", 3), ("ath-d", 3)]


def test_declare_winner_with_two_active_is_rejected_without_change():
    shoot_off = _play(_started(), a=2, b=2, c=1, d=1).shoot_off
    with pytest.raises(StateConflictError) as exc:
        declare_winner(shoot_off, _pid(shoot_off, "ath-a"), clock=fixed_clock)
    assert exc.value.kind == "not_single_active"
    assert shoot_off.status is ShootOffStatus.IN_PROGRESS
    assert shoot_off.winner_id is None


def test_declare_eliminated_participant_is_rejected():
    shoot_off = _play(_started(("ath-a", "ath-b")), a=2, b=0).shoot_off
    with pytest.raises(ScoreValidationError) as exc:
        declare_winner(shoot_off, _pid(shoot_off, "ath-b"), clock=fixed_clock)
    assert exc.value.constraint == "eliminated"
    with pytest.raises(NotFoundError):
        declare_winner(shoot_off, "nobody", clock=fixed_clock)


def test_round_scores_are_validated_and_leave_state_untouched():
    opened = create_round(_started(), clock=fixed_clock)
    shoot_off, round_id = opened.shoot_off, opened.round.id
    version = shoot_off.version

    with pytest.raises(ScoreValidationError) as exc:
        submit_round_scores(shoot_off, round_id, _scores(shoot_off, a=2, b=1, c=1))
    assert exc.value.constraint == "missing"

    with pytest.raises(ScoreValidationError) as exc:
        submit_round_scores(shoot_off, round_id, _scores(shoot_off, a=3, b=1, c=1, d=0))
    assert exc.value.constraint == "range"

    bad = _scores(shoot_off, a=2, b=1, c=1, d=0)
    bad["stranger"] = 1
    with pytest.raises(ScoreValidationError) as exc:
        submit_round_scores(shoot_off, round_id, bad)
    assert exc.value.constraint == "not_in_round"

    with pytest.raises(NotFoundError):
        submit_round_scores(shoot_off, "missing-round", _scores(shoot_off, a=2, b=1, c=1, d=0))

    assert shoot_off.version == version
    assert shoot_off.round(round_id).scores == {}
    assert not any(p.eliminated for p in shoot_off.participants)


def test_round_cannot_be_opened_twice_or_rescored():
    opened = create_round(_started(), clock=fixed_clock)
    with pytest.raises(StateConflictError) as exc:
        create_round(opened.shoot_off, clock=fixed_clock)
    assert exc.value.kind == "round_in_progress"

    scored = submit_round_scores(
        opened.shoot_off,
        opened.round.id,
        _scores(opened.shoot_off, a=2, b=2, c=1, d=1),
        clock=fixed_clock,
    )
    with pytest.raises(StateConflictError) as exc:
        submit_round_scores(
            scored.shoot_off, opened.round.id, _scores(scored.shoot_off, a=2, b=2)
        )
    assert exc.value.kind == "round_completed"


def test_round_needs_in_progress_status():
    pending = create_shoot_off("t1", 1, ["ath-a", "ath-b"], 48, ShootOffConfig(), clock=fixed_clock)
    with pytest.raises(StateConflictError) as exc:
        create_round(pending, clock=fixed_clock)
    assert exc.value.current_status == "pending"


def test_cancel_from_pending_and_in_progress():
    pending = create_shoot_off("t1", 1, ["ath-a", "ath-b"], 48, ShootOffConfig(), clock=fixed_clock)
    cancelled = cancel_shoot_off(pending, clock=fixed_clock).shoot_off
    assert cancelled.status is ShootOffStatus.CANCELLED
    assert cancelled.cancelled_at == fixed_clock()

    running = _play(_started(), a=2, b=2, c=1, d=1).shoot_off
    cancelled = cancel_shoot_off(running, clock=fixed_clock).shoot_off
    assert cancelled.status is ShootOffStatus.CANCELLED
    assert len(cancelled.rounds) == 1
    assert official_placements(cancelled) == []


def test_terminal_states_reject_every_transition():
    running = _play(_started(("ath-a", "ath-b")), a=2, b=1).shoot_off
    completed = declare_winner(running, _pid(running, "ath-a"), clock=fixed_clock).shoot_off
    cancelled = cancel_shoot_off(running, clock=fixed_clock).shoot_off
    for terminal in (completed, cancelled):
        with pytest.raises(StateConflictError):
            start_shoot_off(terminal)
        with pytest.raises(StateConflictError):
            cancel_shoot_off(terminal)
        with pytest.raises(StateConflictError):
            create_round(terminal)
        with pytest.raises(StateConflictError):
            declare_winner(terminal, _pid(running, "ath-a"))


def test_operations_return_new_versions():
    pending = create_shoot_off("t1", 1, ["ath-a", "ath-b"], 48, ShootOffConfig(), clock=fixed_clock)
    started = start_shoot_off(pending, clock=fixed_clock).shoot_off
    assert pending.status is ShootOffStatus.PENDING
    assert pending.version == 0
    assert started.version == 1


def test_progressive_format_adds_target_after_tied_round():
    shoot_off = _started(("ath-a", "ath-b", "ath-c"), format="progressive")
    first = create_round(shoot_off, clock=fixed_clock)
    assert first.round.targets == 2
    tied = submit_round_scores(
        first.shoot_off, first.round.id, _scores(first.shoot_off, a=2, b=2, c=2), clock=fixed_clock
    )
    second = create_round(tied.shoot_off, clock=fixed_clock)
    assert second.round.targets == 3
    outcome = submit_round_scores(
        second.shoot_off, second.round.id, _scores(second.shoot_off, a=3, b=3, c=1),
        clock=fixed_clock,
    )
    assert outcome.eliminated == (_pid(shoot_off, "ath-c"),)
    assert create_round(outcome.shoot_off, clock=fixed_clock).round.targets == 3


def test_fixed_rounds_format_eliminates_on_cumulative_total():
    shoot_off = _started(("ath-a", "ath-b", "ath-c"), format="fixed_rounds", fixed_rounds=2)
    first = _play(shoot_off, a=2, b=0, c=1)
    assert first.eliminated == ()
    second = _play(first.shoot_off, a=1, b=2, c=2)
    # totals after two rounds: a=3, b=2, c=3
    assert second.eliminated == (_pid(shoot_off, "ath-b"),)
    assert second.remaining == 2
