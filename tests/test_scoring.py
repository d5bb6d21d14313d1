import pytest

from eventquiz.services.quiz.scoring import (
    ScoringConfig, score_answer, time_bonus, streak_multiplier, round_half_up,
    accuracy_percent, format_streak_multiplier,
    SIMPLE, TIME_ONLY, STREAK_ONLY, TIME_AND_STREAK, SCORING_MODES,
)


CONFIG = ScoringConfig()
LIMIT_MS = 30_000


def test_first_correct_answer_gets_time_bonus_only():
    result = score_answer(TIME_AND_STREAK, True, 9_000, LIMIT_MS, 0, CONFIG)
    assert result.base_points == 100
    assert result.time_bonus == 35
    assert result.streak_multiplier == 1.0
    assert result.total_points == 135
    assert result.new_streak == 1


def test_second_in_a_row_applies_multiplier():
    result = score_answer(TIME_AND_STREAK, True, 9_000, LIMIT_MS, 1, CONFIG)
    assert result.streak_multiplier == 1.2
    assert result.total_points == 162
    assert result.new_streak == 2


def test_total_rounds_half_up():
    # (100 + 45) * 1.5 = 217.5
    result = score_answer(TIME_AND_STREAK, True, 3_000, LIMIT_MS, 2, CONFIG)
    assert result.time_bonus == 45
    assert result.total_points == 218


@pytest.mark.parametrize('mode', SCORING_MODES)
def test_wrong_answer_scores_nothing_and_resets_streak(mode):
    result = score_answer(mode, False, 1_000, LIMIT_MS, 4, CONFIG)
    assert result.total_points == 0
    assert result.base_points == 0
    assert result.time_bonus == 0
    assert result.streak_multiplier == 1.0
    assert result.new_streak == 0


def test_simple_mode_ignores_time_and_streak():
    result = score_answer(SIMPLE, True, 100, LIMIT_MS, 5, CONFIG)
    assert result.total_points == 100
    assert result.time_bonus == 0
    assert result.streak_multiplier == 1.0
    assert result.new_streak == 6


def test_time_only_mode_has_no_multiplier():
    result = score_answer(TIME_ONLY, True, 0, LIMIT_MS, 3, CONFIG)
    assert result.time_bonus == 50
    assert result.streak_multiplier == 1.0
    assert result.total_points == 150


def test_streak_only_mode_has_no_time_bonus():
    result = score_answer(STREAK_ONLY, True, 0, LIMIT_MS, 2, CONFIG)
    assert result.time_bonus == 0
    assert result.streak_multiplier == 1.5
    assert result.total_points == 150


def test_streak_past_table_uses_last_tier():
    assert streak_multiplier(6, CONFIG.streak_multipliers) == 3.0
    assert streak_multiplier(40, CONFIG.streak_multipliers) == 3.0
    result = score_answer(STREAK_ONLY, True, 0, LIMIT_MS, 99, CONFIG)
    assert result.streak_multiplier == 3.0
    assert result.new_streak == 100


def test_streak_multiplier_without_streak_is_neutral():
    assert streak_multiplier(0, CONFIG.streak_multipliers) == 1.0
    assert streak_multiplier(3, ()) == 1.0


@pytest.mark.parametrize('response_ms, expected', [
    (0, 50),
    (15_000, 25),
    (29_999, 0),
    (30_000, 0),
    (45_000, 0),
])
def test_time_bonus_decays_linearly(response_ms, expected):
    assert time_bonus(response_ms, LIMIT_MS, 50) == expected


def test_time_bonus_with_zero_limit():
    assert time_bonus(0, 0, 50) == 0


def test_answer_at_the_limit_still_scores_base_points():
    result = score_answer(TIME_AND_STREAK, True, LIMIT_MS, LIMIT_MS, 0, CONFIG)
    assert result.time_bonus == 0
    assert result.total_points == 100


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        score_answer('bonus_round', True, 0, LIMIT_MS, 0, CONFIG)
    with pytest.raises(ValueError):
        ScoringConfig(mode='bonus_round')


def test_question_points_override_base_points():
    config = CONFIG.with_base_points(200)
    assert config.base_points == 200
    assert CONFIG.with_base_points(None) is CONFIG
    result = score_answer(SIMPLE, True, 0, LIMIT_MS, 0, config)
    assert result.total_points == 200


def test_empty_multiplier_table_falls_back_to_defaults():
    config = ScoringConfig(streak_multipliers=())
    assert config.streak_multipliers == (1.0, 1.2, 1.5, 2.0, 2.5, 3.0)


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4999) == 2


def test_accuracy_percent():
    assert accuracy_percent(2, 3) == 67
    assert accuracy_percent(1, 3) == 33
    assert accuracy_percent(0, 0) == 0


def test_format_streak_multiplier():
    assert format_streak_multiplier(1.5) == 'x1.5'
