from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from sweepstakes.defaults import MULTIPLIER, PRIZE_DECIMALS

logger = logging.getLogger(__name__)


class SweepstakesError(Exception):
    """Base exception for the scoring engine."""


class InvalidInput(SweepstakesError):
    """Raised when an incomplete or negative score pair reaches the classifier."""


class ConfigurationError(SweepstakesError):
    """Raised when the rule set or pool settings cannot be used for scoring."""


class Outcome(str, Enum):
    EXACT = "exact_score"
    WINNER_PLUS_SUBSCORE = "winner_and_subscore"
    WINNER_ONLY = "winner_only"
    CORRECT_DRAW = "correct_draw"
    MISS = "miss"


# Categories an administrator must price. MISS is always 0.
SCORED_OUTCOMES: Tuple[Outcome, ...] = (
    Outcome.EXACT,
    Outcome.WINNER_PLUS_SUBSCORE,
    Outcome.WINNER_ONLY,
    Outcome.CORRECT_DRAW,
)


@dataclass(frozen=True)
class Score:
    """A complete score pair. Absence of a score is represented by None."""

    a: int
    b: int

    def swapped(self) -> "Score":
        return Score(self.b, self.a)


def to_score(score_a: Optional[int], score_b: Optional[int]) -> Optional[Score]:
    """
    Build a Score from two optional fields.
    Partial input (only one side set) counts as not predicted.
    """
    if score_a is None or score_b is None:
        return None
    return Score(int(score_a), int(score_b))


def _sign(score: Score) -> int:
    if score.a > score.b:
        return 1
    if score.b > score.a:
        return -1
    return 0


def _require_complete(label: str, score: Optional[Score]) -> Score:
    if score is None:
        raise InvalidInput(f"{label} score is missing")
    if score.a is None or score.b is None:
        raise InvalidInput(f"{label} score is incomplete: {score}")
    if score.a < 0 or score.b < 0:
        raise InvalidInput(f"{label} score must be non-negative: {score.a}-{score.b}")
    return score


def classify_outcome(predicted: Optional[Score], official: Optional[Score]) -> Outcome:
    """
    Classify one prediction against one official result.

    Exact score first; otherwise compare the outcome sign (A win, B win, draw).
    A matching non-draw sign earns the sub-score tier when either side's
    goals were guessed right.
    """
    predicted = _require_complete("Predicted", predicted)
    official = _require_complete("Official", official)

    if predicted == official:
        return Outcome.EXACT

    predicted_sign = _sign(predicted)
    if predicted_sign != _sign(official):
        return Outcome.MISS
    if predicted_sign == 0:
        return Outcome.CORRECT_DRAW
    if predicted.a == official.a or predicted.b == official.b:
        return Outcome.WINNER_PLUS_SUBSCORE
    return Outcome.WINNER_ONLY


@dataclass(frozen=True)
class ScoringRule:
    category: str
    points: int


@dataclass(frozen=True)
class RuleSet:
    points_by_outcome: Mapping[Outcome, int]

    @classmethod
    def from_rules(
        cls,
        rules: Iterable[ScoringRule],
        fallback: Optional[Mapping[str, int]] = None,
    ) -> "RuleSet":
        """
        Index rules by category meaning. Unknown categories are ignored so
        informational criteria can live in the same list.

        Without a fallback every scored category must be present. With one,
        missing categories are filled from it and logged.
        """
        known = {o.value: o for o in SCORED_OUTCOMES}
        points: Dict[Outcome, int] = {}
        for rule in rules:
            outcome = known.get(rule.category)
            if outcome is None:
                continue
            if outcome in points:
                raise ConfigurationError(f"Duplicate scoring rule for category '{rule.category}'")
            if rule.points < 0:
                raise ConfigurationError(
                    f"Scoring rule '{rule.category}' has negative points: {rule.points}"
                )
            points[outcome] = int(rule.points)

        for outcome in SCORED_OUTCOMES:
            if outcome in points:
                continue
            if fallback is None or outcome.value not in fallback:
                raise ConfigurationError(f"Rule set is missing category '{outcome.value}'")
            logger.warning(
                "Rule set is missing category %r, using fallback value %d",
                outcome.value,
                fallback[outcome.value],
            )
            points[outcome] = int(fallback[outcome.value])
        return cls(points_by_outcome=dict(points))

    def points_for(self, outcome: Outcome) -> int:
        if outcome == Outcome.MISS:
            return 0
        try:
            return self.points_by_outcome[outcome]
        except KeyError:
            raise ConfigurationError(f"Rule set is missing category '{outcome.value}'") from None


@dataclass(frozen=True)
class MultiplierPolicy:
    special_teams: FrozenSet[str] = frozenset()
    special_phases: FrozenSet[str] = frozenset()

    @classmethod
    def from_lists(cls, teams: Iterable[str], phases: Iterable[str]) -> "MultiplierPolicy":
        return cls(special_teams=frozenset(teams), special_phases=frozenset(phases))

    def is_eligible(self, team_a: str, team_b: str, group: str) -> bool:
        return (
            team_a in self.special_teams
            or team_b in self.special_teams
            or group in self.special_phases
        )

    def multiplier_for(self, team_a: str, team_b: str, group: str) -> int:
        # Both conditions holding still doubles only once.
        return MULTIPLIER if self.is_eligible(team_a, team_b, group) else 1


def match_points(outcome: Outcome, rules: RuleSet, multiplier_eligible: bool) -> int:
    if outcome == Outcome.MISS:
        return 0
    base = rules.points_for(outcome)
    return base * MULTIPLIER if multiplier_eligible else base


@dataclass(frozen=True)
class PrizeSplit:
    first: float
    second: float
    third: float


def prize_amounts(participant_count: int, ticket_price: float, distribution: PrizeSplit) -> Dict[str, float]:
    """
    Pool is one ticket per ranked participant; each podium place takes its
    percentage of the pool.
    """
    percents = (distribution.first, distribution.second, distribution.third)
    if any(p < 0 for p in percents):
        raise ConfigurationError("Prize percentages must be non-negative")
    if sum(percents) > 100:
        raise ConfigurationError(f"Prize percentages add up to {sum(percents)}, more than 100")
    if ticket_price < 0:
        raise ConfigurationError("Ticket price must be non-negative")

    pool = participant_count * float(ticket_price)
    return {
        "pool": round(pool, PRIZE_DECIMALS),
        "first": round(pool * distribution.first / 100.0, PRIZE_DECIMALS),
        "second": round(pool * distribution.second / 100.0, PRIZE_DECIMALS),
        "third": round(pool * distribution.third / 100.0, PRIZE_DECIMALS),
    }
