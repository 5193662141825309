import logging

import pytest

from sweepstakes.rules import (
    ConfigurationError,
    InvalidInput,
    MultiplierPolicy,
    Outcome,
    PrizeSplit,
    RuleSet,
    Score,
    ScoringRule,
    classify_outcome,
    match_points,
    prize_amounts,
    to_score,
)


def _rules(exact=6, winner_sub=3, winner=2, draw=2) -> RuleSet:
    return RuleSet.from_rules(
        [
            ScoringRule("exact_score", exact),
            ScoringRule("winner_and_subscore", winner_sub),
            ScoringRule("winner_only", winner),
            ScoringRule("correct_draw", draw),
        ]
    )


def test_classify_examples():
    assert classify_outcome(Score(2, 1), Score(2, 1)) == Outcome.EXACT
    assert classify_outcome(Score(0, 0), Score(0, 0)) == Outcome.EXACT
    assert classify_outcome(Score(1, 0), Score(2, 1)) == Outcome.WINNER_ONLY
    assert classify_outcome(Score(3, 1), Score(2, 1)) == Outcome.WINNER_PLUS_SUBSCORE
    assert classify_outcome(Score(2, 0), Score(2, 1)) == Outcome.WINNER_PLUS_SUBSCORE
    assert classify_outcome(Score(1, 1), Score(2, 2)) == Outcome.CORRECT_DRAW
    assert classify_outcome(Score(1, 0), Score(0, 1)) == Outcome.MISS
    assert classify_outcome(Score(1, 1), Score(1, 0)) == Outcome.MISS


def test_classify_is_symmetric_and_exact_only_on_equal_scores():
    for pa in range(4):
        for pb in range(4):
            for oa in range(4):
                for ob in range(4):
                    outcome = classify_outcome(Score(pa, pb), Score(oa, ob))
                    assert (outcome == Outcome.EXACT) == (pa == oa and pb == ob)
                    mirrored = classify_outcome(Score(pb, pa), Score(ob, oa))
                    assert outcome == mirrored


def test_classify_rejects_missing_or_negative_scores():
    with pytest.raises(InvalidInput):
        classify_outcome(None, Score(1, 0))
    with pytest.raises(InvalidInput):
        classify_outcome(Score(1, 0), None)
    with pytest.raises(InvalidInput):
        classify_outcome(Score(-1, 0), Score(1, 0))


def test_partial_prediction_is_not_a_score():
    assert to_score(1, None) is None
    assert to_score(None, 2) is None
    assert to_score(0, 0) == Score(0, 0)


def test_match_points_scenarios():
    rules = _rules()
    policy = MultiplierPolicy.from_lists(["Brasil"], ["FINAL"])

    eligible = policy.is_eligible("Brasil", "Sérvia", "Grupo G")
    assert match_points(classify_outcome(Score(2, 1), Score(2, 1)), rules, eligible) == 12

    plain = policy.is_eligible("Suíça", "Camarões", "Grupo G")
    assert match_points(classify_outcome(Score(1, 0), Score(2, 1)), rules, plain) == 2
    assert match_points(classify_outcome(Score(1, 1), Score(2, 2)), rules, plain) == 2


def test_miss_is_zero_and_multiplier_doubles_once():
    rules = _rules(exact=5, winner_sub=3, winner=1, draw=1)
    policy = MultiplierPolicy.from_lists(["Brasil"], ["FINAL"])

    assert match_points(Outcome.MISS, rules, True) == 0
    assert match_points(Outcome.MISS, rules, False) == 0
    assert policy.multiplier_for("Brasil", "Argentina", "FINAL") == 2
    for outcome in (Outcome.EXACT, Outcome.WINNER_PLUS_SUBSCORE, Outcome.WINNER_ONLY, Outcome.CORRECT_DRAW):
        doubled = match_points(outcome, rules, True)
        assert doubled % 2 == 0
        assert doubled == 2 * match_points(outcome, rules, False)


def test_rule_lookup_uses_category_not_magnitude():
    # Draw worth more than an exact score is unusual but allowed.
    rules = _rules(exact=1, winner_sub=2, winner=3, draw=10)
    assert match_points(Outcome.CORRECT_DRAW, rules, False) == 10
    assert match_points(Outcome.EXACT, rules, False) == 1


def test_rule_set_ignores_informational_rows():
    rules = RuleSet.from_rules(
        [
            ScoringRule("", 15),
            ScoringRule("exact_score", 6),
            ScoringRule("winner_and_subscore", 3),
            ScoringRule("winner_only", 2),
            ScoringRule("correct_draw", 2),
        ]
    )
    assert rules.points_for(Outcome.EXACT) == 6


def test_missing_category_raises_configuration_error():
    with pytest.raises(ConfigurationError):
        RuleSet.from_rules([ScoringRule("exact_score", 6), ScoringRule("winner_only", 2)])


def test_duplicate_category_raises_configuration_error():
    with pytest.raises(ConfigurationError):
        RuleSet.from_rules(
            [
                ScoringRule("exact_score", 6),
                ScoringRule("exact_score", 5),
                ScoringRule("winner_and_subscore", 3),
                ScoringRule("winner_only", 2),
                ScoringRule("correct_draw", 2),
            ]
        )


def test_fallback_fills_missing_category_and_logs(caplog):
    with caplog.at_level(logging.WARNING, logger="sweepstakes.rules"):
        rules = RuleSet.from_rules(
            [ScoringRule("exact_score", 10)],
            fallback={"exact_score": 6, "winner_and_subscore": 3, "winner_only": 2, "correct_draw": 2},
        )
    assert rules.points_for(Outcome.EXACT) == 10
    assert rules.points_for(Outcome.CORRECT_DRAW) == 2
    assert "correct_draw" in caplog.text


def test_prize_amounts():
    amounts = prize_amounts(4, 50.0, PrizeSplit(65, 25, 10))
    assert amounts == {"pool": 200.0, "first": 130.0, "second": 50.0, "third": 20.0}
    assert prize_amounts(0, 50.0, PrizeSplit(65, 25, 10))["first"] == 0.0


def test_prize_amounts_rejects_split_over_100():
    with pytest.raises(ConfigurationError):
        prize_amounts(3, 50.0, PrizeSplit(70, 25, 10))
