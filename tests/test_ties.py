from datetime import date, datetime

import pytest

from claytarget_core import (
    Athlete,
    ConfigurationError,
    ScoreValidationError,
    Shoot,
    ShootOffConfig,
    StationScore,
    Tournament,
    cancel_shoot_off,
    create_shoot_off,
    detect_ties,
    detect_tournament_ties,
    rank_totals,
)

WHEN = datetime(2025, 4, 12, 10, 0)


def fixed_clock():
    return datetime(2025, 4, 12, 15, 0)


def _shoot(athlete_id, hit, possible=50, *, discipline="trap", tournament="t1", shoot_id=None):
    return Shoot(
        id=shoot_id or f"{athlete_id}-{discipline}",
        athlete_id=athlete_id,
        tournament_id=tournament,
        discipline_id=discipline,
        date=WHEN,
        scores=(StationScore(targets=hit, max_targets=possible),),
    )


def _leaderboard():
    return rank_totals(
        [_shoot("a", 50), _shoot("b", 48), _shoot("c", 48), _shoot("d", 47)]
    )


def test_rank_totals_uses_competition_ranking():
    ranked = _leaderboard()
    assert [(r.athlete_id, r.rank) for r in ranked] == [("a", 1), ("b", 2), ("c", 2), ("d", 4)]


def test_rank_totals_skips_unscored_shoots_and_filters_discipline():
    shoots = [
        _shoot("a", 20, 25),
        _shoot("a", 22, 25, discipline="skeet"),
        Shoot("empty", "b", "t1", "trap", WHEN, ()),
    ]
    overall = rank_totals(shoots)
    assert [(r.athlete_id, r.total_targets, r.total_possible) for r in overall] == [("a", 42, 50)]
    skeet = rank_totals(shoots, discipline_id="skeet")
    assert skeet[0].total_targets == 22


def test_rank_totals_division_filter():
    athletes = {
        "a": Athlete(id="a", name="Ana", grade="7th"),
        "b": Athlete(id="b", name="Bo", grade="senior", first_year_competition=False),
    }
    shoots = [_shoot("a", 40), _shoot("b", 45)]
    ranked = rank_totals(shoots, athletes, division="Intermediate")
    assert [r.athlete_name for r in ranked] == ["Ana"]
    with pytest.raises(ScoreValidationError) as exc:
        rank_totals(shoots, division="Intermediate")
    assert exc.value.field == "athletes"
    assert exc.value.constraint == "required"


def test_second_place_tie_is_detected():
    candidates = detect_ties("t1", _leaderboard(), {"2nd"})
    assert len(candidates) == 1
    tie = candidates[0]
    assert tie.position == 2
    assert tie.tied_score == 48
    assert set(tie.athlete_ids) == {"b", "c"}
    assert tie.description == "Tied for 2nd place - 2 athletes at 48 points"
    assert tie.fingerprint.startswith("tie:")


def test_triggers_select_positions():
    ranked = rank_totals(
        [
            _shoot("a", 49), _shoot("b", 49),
            _shoot("c", 47), _shoot("d", 46), _shoot("e", 46),
        ]
    )
    assert [t.position for t in detect_ties("t1", ranked, {"1st"})] == [1]
    assert detect_ties("t1", ranked, {"2nd"}) == []
    assert detect_ties("t1", ranked, {"3rd"}) == []
    assert [t.position for t in detect_ties("t1", ranked, {"top5"})] == [1, 4]
    assert [t.position for t in detect_ties("t1", ranked, {"top10"})] == [1, 4]
    assert detect_ties("t1", ranked, set()) == []


def test_unknown_trigger_is_a_configuration_error():
    with pytest.raises(ConfigurationError) as exc:
        detect_ties("t1", _leaderboard(), {"4th"})
    assert exc.value.kind == "invalid_triggers"


def test_detection_is_idempotent_and_order_independent():
    ranked = _leaderboard()
    first = detect_ties("t1", ranked, {"2nd"})
    second = detect_ties("t1", list(reversed(ranked)), {"2nd"})
    assert first == second


def test_existing_shoot_off_suppresses_tie_until_cancelled():
    ranked = _leaderboard()
    shoot_off = create_shoot_off("t1", 2, ["b", "c"], 48, ShootOffConfig(), clock=fixed_clock)
    assert detect_ties("t1", ranked, {"2nd"}, [shoot_off]) == []

    cancelled = cancel_shoot_off(shoot_off, clock=fixed_clock).shoot_off
    assert len(detect_ties("t1", ranked, {"2nd"}, [cancelled])) == 1


def test_shoot_off_for_other_tournament_or_discipline_does_not_suppress():
    ranked = _leaderboard()
    elsewhere = create_shoot_off("t2", 2, ["b", "c"], 48, ShootOffConfig(), clock=fixed_clock)
    skeet = create_shoot_off("t1", 2, ["b", "c"], 48, ShootOffConfig(), "skeet", clock=fixed_clock)
    assert len(detect_ties("t1", ranked, {"2nd"}, [elsewhere, skeet])) == 1


def test_requires_perfect_only_reports_perfect_ties():
    perfect = rank_totals([_shoot("a", 25, 25), _shoot("b", 25, 25)])
    near = rank_totals([_shoot("a", 24, 25), _shoot("b", 24, 25)])
    assert len(detect_ties("t1", perfect, {"1st"}, requires_perfect=True)) == 1
    assert detect_ties("t1", near, {"1st"}, requires_perfect=True) == []
    assert len(detect_ties("t1", near, {"1st"})) == 1


def _tournament(**config):
    return Tournament(
        id="t1",
        name="Spring Open",
        start_date=date(2025, 4, 12),
        end_date=date(2025, 4, 13),
        status="finalizing",
        shoot_off_config=ShootOffConfig(**config),
    )


def test_tournament_ties_use_tournament_settings():
    shoots = [
        _shoot("a", 48), _shoot("b", 48), _shoot("c", 48),
        _shoot("x", 50, tournament="t2"),
    ]
    ties = detect_tournament_ties(_tournament(triggers=frozenset({"1st"})), shoots)
    assert len(ties) == 1
    assert ties[0].description == "Tied for 1st place - 3 athletes at 48 points"


def test_tournament_ties_disabled_returns_nothing():
    shoots = [_shoot("a", 48), _shoot("b", 48)]
    tournament = _tournament(enable_shoot_offs=False, triggers=frozenset({"1st"}))
    assert detect_tournament_ties(tournament, shoots) == []
