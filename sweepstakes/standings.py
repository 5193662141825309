"""
Leaderboard and group standings computed from immutable snapshots.

Every function here is a pure function of its arguments: nothing is read from
the database or global state, and the match, prediction and rule objects
passed in are never mutated. Callers recompute from scratch on every change.

Head-to-head is applied inside the pairwise comparison of two teams level on
points. With three or more teams level it is still only evaluated pair by
pair, so the result is not a mini-league between all tied teams (known
limitation, left unchanged since it decides qualification). Rows still
level after goals scored keep the order in which their teams first appear in
the match list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from functools import cmp_to_key
from typing import Dict, List, Mapping, Optional, Sequence

from sweepstakes.defaults import DRAW_POINTS, GROUP_STAGE_PREFIX, WIN_POINTS
from sweepstakes.rules import (
    MultiplierPolicy,
    Outcome,
    RuleSet,
    Score,
    classify_outcome,
    match_points,
)

logger = logging.getLogger(__name__)

PENDING = "pending"

# participant id -> match id -> complete score or None
PredictionStore = Mapping[str, Mapping[str, Optional[Score]]]


@dataclass(frozen=True)
class MatchFacts:
    id: str
    team_a: str
    team_b: str
    group: str
    is_marquee: bool = False
    official: Optional[Score] = None

    @property
    def is_group_stage(self) -> bool:
        return self.group.startswith(GROUP_STAGE_PREFIX)

    @property
    def group_key(self) -> str:
        return self.group[len(GROUP_STAGE_PREFIX):].strip()


@dataclass(frozen=True)
class RosterEntry:
    participant_id: str
    name: str


@dataclass(frozen=True)
class LeaderboardEntry:
    participant_id: str
    name: str
    points: int = 0
    exact_scores: int = 0
    marquee_points: int = 0
    position: int = 0


@dataclass
class GroupRow:
    team_name: str
    group: str
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    points: int = 0

    def record(self, scored: int, conceded: int) -> None:
        self.played += 1
        self.goals_for += scored
        self.goals_against += conceded
        self.goal_difference = self.goals_for - self.goals_against
        if scored > conceded:
            self.won += 1
            self.points += WIN_POINTS
        elif scored < conceded:
            self.lost += 1
        else:
            self.drawn += 1
            self.points += DRAW_POINTS


@dataclass(frozen=True)
class MatchBreakdownRow:
    participant_id: str
    name: str
    predicted: Optional[Score]
    outcome: str
    points: int
    multiplier: int


def _name_key(participant_id: str, name: str):
    # Case-insensitive name first, so "alice" ranks before "Bruno".
    return (name.casefold(), name, participant_id)


def _predictions_for(predictions: PredictionStore, participant_id: str) -> Mapping[str, Optional[Score]]:
    return predictions.get(participant_id) or {}


def aggregate_leaderboard(
    roster: Sequence[RosterEntry],
    matches: Sequence[MatchFacts],
    predictions: PredictionStore,
    rules: RuleSet,
    policy: MultiplierPolicy,
) -> List[LeaderboardEntry]:
    """
    Sum match points per participant and rank them.

    Only matches with an official result and a complete prediction count.
    Ordering: points, exact scores, marquee points (all descending), then
    name. Positions are dense: no two entries share a position.
    """
    settled = [m for m in matches if m.official is not None]
    logger.debug(
        "Aggregating leaderboard for %d participants over %d settled matches",
        len(roster),
        len(settled),
    )

    entries: List[LeaderboardEntry] = []
    for participant in roster:
        bets = _predictions_for(predictions, participant.participant_id)
        points = 0
        exact_scores = 0
        marquee_points = 0
        for match in settled:
            predicted = bets.get(match.id)
            if predicted is None:
                continue
            outcome = classify_outcome(predicted, match.official)
            value = match_points(
                outcome, rules, policy.is_eligible(match.team_a, match.team_b, match.group)
            )
            points += value
            if outcome == Outcome.EXACT:
                exact_scores += 1
            if match.is_marquee:
                marquee_points += value
        entries.append(
            LeaderboardEntry(
                participant_id=participant.participant_id,
                name=participant.name,
                points=points,
                exact_scores=exact_scores,
                marquee_points=marquee_points,
            )
        )

    entries.sort(
        key=lambda e: (
            -e.points,
            -e.exact_scores,
            -e.marquee_points,
            _name_key(e.participant_id, e.name),
        )
    )
    return [replace(entry, position=idx) for idx, entry in enumerate(entries, start=1)]


def _head_to_head(
    group_matches: Sequence[MatchFacts],
    bets: Mapping[str, Optional[Score]],
    first: str,
    second: str,
) -> int:
    """
    Goals of `first` minus goals of `second` in their predicted direct match.
    Zero when they never met or the meeting was not predicted.
    """
    for match in group_matches:
        if {match.team_a, match.team_b} != {first, second}:
            continue
        predicted = bets.get(match.id)
        if predicted is None:
            return 0
        if match.team_a == first:
            return predicted.a - predicted.b
        return predicted.b - predicted.a
    return 0


def build_group_tables(
    matches: Sequence[MatchFacts],
    bets: Mapping[str, Optional[Score]],
) -> Dict[str, List[GroupRow]]:
    """
    Simulate group standings from one participant's predictions.

    Official results play no part. Every team in a group-stage match gets a
    row even without any predicted game. Groups are returned keyed by their
    letter, in alphabetical order.
    """
    rows: Dict[str, Dict[str, GroupRow]] = {}
    group_matches: Dict[str, List[MatchFacts]] = {}
    for match in matches:
        if not match.is_group_stage:
            continue
        key = match.group_key
        table = rows.setdefault(key, {})
        group_matches.setdefault(key, []).append(match)
        for team in (match.team_a, match.team_b):
            if team not in table:
                table[team] = GroupRow(team_name=team, group=key)

    for key, fixtures in group_matches.items():
        table = rows[key]
        for match in fixtures:
            predicted = bets.get(match.id)
            if predicted is None:
                continue
            table[match.team_a].record(predicted.a, predicted.b)
            table[match.team_b].record(predicted.b, predicted.a)

    ranked: Dict[str, List[GroupRow]] = {}
    for key in sorted(rows):
        fixtures = group_matches[key]

        def compare(left: GroupRow, right: GroupRow, fixtures=fixtures) -> int:
            if left.points != right.points:
                return right.points - left.points
            direct = _head_to_head(fixtures, bets, left.team_name, right.team_name)
            if direct:
                return -direct
            if left.goal_difference != right.goal_difference:
                return right.goal_difference - left.goal_difference
            return right.goals_for - left.goals_for

        ranked[key] = sorted(rows[key].values(), key=cmp_to_key(compare))
    logger.debug("Built %d group tables", len(ranked))
    return ranked


def rank_third_places(tables: Mapping[str, Sequence[GroupRow]]) -> List[GroupRow]:
    """
    Collect the third-placed row of each group and rank them against each
    other on points, goal difference and goals scored. Groups with fewer than
    three teams are skipped. Remaining ties keep group order.
    """
    thirds = [table[2] for _, table in sorted(tables.items()) if len(table) >= 3]
    return sorted(thirds, key=lambda r: (-r.points, -r.goal_difference, -r.goals_for))


def match_breakdown(
    match: MatchFacts,
    roster: Sequence[RosterEntry],
    predictions: PredictionStore,
    rules: RuleSet,
    policy: MultiplierPolicy,
) -> List[MatchBreakdownRow]:
    """Points every participant earned on a single match."""
    multiplier = policy.multiplier_for(match.team_a, match.team_b, match.group)
    eligible = multiplier > 1
    rows: List[MatchBreakdownRow] = []
    for participant in roster:
        predicted = _predictions_for(predictions, participant.participant_id).get(match.id)
        if predicted is None or match.official is None:
            outcome, points = PENDING, 0
        else:
            category = classify_outcome(predicted, match.official)
            outcome, points = category.value, match_points(category, rules, eligible)
        rows.append(
            MatchBreakdownRow(
                participant_id=participant.participant_id,
                name=participant.name,
                predicted=predicted,
                outcome=outcome,
                points=points,
                multiplier=multiplier,
            )
        )
    rows.sort(key=lambda r: (-r.points, _name_key(r.participant_id, r.name)))
    return rows
