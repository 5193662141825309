from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from sweepstakes import config
from sweepstakes.defaults import (
    DEFAULT_MARQUEE_TEAM,
    DEFAULT_PRIZE_DISTRIBUTION,
    DEFAULT_SCORING_RULES,
    DEFAULT_SPECIAL_PHASES,
    DEFAULT_SPECIAL_TEAMS,
    DEFAULT_THIRD_PLACE_SLOTS,
    DEFAULT_TICKET_PRICE,
    FALLBACK_RULE_POINTS,
)
from sweepstakes.models import (
    ExtraPrediction,
    Match,
    Participant,
    PoolSettings,
    Prediction,
    ScoringRuleRow,
)
from sweepstakes.rules import (
    MultiplierPolicy,
    PrizeSplit,
    SCORED_OUTCOMES,
    RuleSet,
    Score,
    ScoringRule,
    prize_amounts,
    to_score,
)
from sweepstakes.standings import (
    MatchFacts,
    PredictionStore,
    RosterEntry,
    aggregate_leaderboard,
    build_group_tables,
    match_breakdown,
    rank_third_places,
)

logger = logging.getLogger(__name__)

SETTINGS_ID = 1


def _score_out(score: Optional[Score]) -> Optional[dict[str, int]]:
    if score is None:
        return None
    return {"score_a": score.a, "score_b": score.b}


def get_participant_or_404(db: Session, username: str) -> Participant:
    participant = db.scalar(select(Participant).where(Participant.username == username))
    if not participant:
        raise HTTPException(status_code=404, detail="Participant not found")
    return participant


def get_match_or_404(db: Session, match_id: str) -> Match:
    match = db.get(Match, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    return match


def ensure_defaults(db: Session) -> PoolSettings:
    """Seed pool settings and the default rule table on first use."""
    settings = db.get(PoolSettings, SETTINGS_ID)
    if settings is None:
        first, second, third = DEFAULT_PRIZE_DISTRIBUTION
        settings = PoolSettings(
            id=SETTINGS_ID,
            ticket_price=DEFAULT_TICKET_PRICE,
            prize_first=first,
            prize_second=second,
            prize_third=third,
            special_teams=list(DEFAULT_SPECIAL_TEAMS),
            special_phases=list(DEFAULT_SPECIAL_PHASES),
            marquee_team=DEFAULT_MARQUEE_TEAM,
            third_place_slots=DEFAULT_THIRD_PLACE_SLOTS,
        )
        db.add(settings)
        logger.info("Seeded default pool settings")

    has_rules = db.scalar(select(ScoringRuleRow.id).limit(1))
    if has_rules is None:
        for position, (category, label, points) in enumerate(DEFAULT_SCORING_RULES, start=1):
            db.add(
                ScoringRuleRow(
                    position=position,
                    label=label,
                    category=category or None,
                    points=points,
                )
            )
        logger.info("Seeded %d default scoring rules", len(DEFAULT_SCORING_RULES))
    db.flush()
    return settings


def get_settings(db: Session) -> PoolSettings:
    return ensure_defaults(db)


def settings_out(settings: PoolSettings) -> dict[str, Any]:
    return {
        "ticket_price": settings.ticket_price,
        "prize_distribution": {
            "first": settings.prize_first,
            "second": settings.prize_second,
            "third": settings.prize_third,
        },
        "special_teams": list(settings.special_teams),
        "special_phases": list(settings.special_phases),
        "marquee_team": settings.marquee_team,
        "third_place_slots": settings.third_place_slots,
    }


def update_settings(db: Session, changes: dict[str, Any]) -> PoolSettings:
    settings = ensure_defaults(db)
    first = changes.get("prize_first", settings.prize_first)
    second = changes.get("prize_second", settings.prize_second)
    third = changes.get("prize_third", settings.prize_third)
    if first + second + third > 100:
        raise HTTPException(status_code=400, detail="Prize percentages cannot exceed 100 in total")

    for field, value in changes.items():
        if field in {"special_teams", "special_phases"}:
            value = sorted({item.strip() for item in value if item.strip()})
        setattr(settings, field, value)
    logger.info("Pool settings updated: %s", ", ".join(sorted(changes)) or "no changes")
    return settings


def create_participant(
    db: Session, username: str, name: str, role: str = "user", paid: bool = False
) -> Participant:
    username = username.strip()
    existing = db.scalar(select(Participant).where(Participant.username == username))
    if existing:
        raise HTTPException(status_code=400, detail="Username already exists")
    participant = Participant(username=username, name=name.strip(), role=role, paid=paid)
    db.add(participant)
    db.flush()
    return participant


def set_participant_payment(db: Session, username: str, paid: bool) -> Participant:
    participant = get_participant_or_404(db, username)
    participant.paid = paid
    return participant


def participant_out(participant: Participant) -> dict[str, Any]:
    return {
        "username": participant.username,
        "name": participant.name,
        "role": participant.role,
        "paid": participant.paid,
        "eligible": participant.paid and participant.role != "admin",
    }


def list_participants(db: Session) -> list[dict[str, Any]]:
    rows = db.scalars(select(Participant).order_by(Participant.username.asc())).all()
    return [participant_out(p) for p in rows]


def create_match(
    db: Session,
    match_id: str,
    team_a: str,
    team_b: str,
    group_name: str,
    kickoff: Optional[datetime] = None,
    venue: Optional[str] = None,
    is_marquee: Optional[bool] = None,
) -> Match:
    match_id = match_id.strip()
    if db.get(Match, match_id):
        raise HTTPException(status_code=400, detail="Match id already exists")
    team_a, team_b = team_a.strip(), team_b.strip()
    if team_a == team_b:
        raise HTTPException(status_code=400, detail="A team cannot play itself")
    if is_marquee is None:
        marquee_team = ensure_defaults(db).marquee_team
        is_marquee = marquee_team is not None and marquee_team in (team_a, team_b)

    match = Match(
        id=match_id,
        team_a=team_a,
        team_b=team_b,
        group_name=group_name.strip(),
        kickoff=kickoff,
        venue=venue,
        is_marquee=is_marquee,
    )
    db.add(match)
    db.flush()
    return match


def match_out(match: Match) -> dict[str, Any]:
    return {
        "id": match.id,
        "team_a": match.team_a,
        "team_b": match.team_b,
        "group_name": match.group_name,
        "kickoff": match.kickoff,
        "venue": match.venue,
        "is_marquee": match.is_marquee,
        "official": _score_out(to_score(match.official_score_a, match.official_score_b)),
    }


def _ordered_matches(db: Session) -> list[Match]:
    # Unscheduled matches go last.
    rows = db.scalars(select(Match)).all()
    return sorted(rows, key=lambda m: (m.kickoff is None, m.kickoff or datetime.min, m.id))


def list_matches(db: Session) -> list[dict[str, Any]]:
    return [match_out(m) for m in _ordered_matches(db)]


def set_official_result(
    db: Session, match_id: str, score_a: Optional[int], score_b: Optional[int]
) -> Match:
    """Record both official scores, or clear both when both are None."""
    match = get_match_or_404(db, match_id)
    if (score_a is None) != (score_b is None):
        raise HTTPException(status_code=400, detail="Official result needs both scores")
    if score_a is not None and (score_a < 0 or score_b < 0):
        raise HTTPException(status_code=400, detail="Scores must be non-negative")
    match.official_score_a = score_a
    match.official_score_b = score_b
    if score_a is None:
        logger.info("Official result cleared for match %s", match.id)
    else:
        logger.info(
            "Official result for match %s (%s x %s): %d-%d",
            match.id,
            match.team_a,
            match.team_b,
            score_a,
            score_b,
        )
    return match


def upsert_prediction(
    db: Session,
    match_id: str,
    username: str,
    score_a: Optional[int],
    score_b: Optional[int],
) -> Prediction:
    match = get_match_or_404(db, match_id)
    participant = get_participant_or_404(db, username)
    if (score_a is not None and score_a < 0) or (score_b is not None and score_b < 0):
        raise HTTPException(status_code=400, detail="Scores must be non-negative")

    existing = db.scalar(
        select(Prediction).where(
            Prediction.participant_id == participant.id,
            Prediction.match_id == match.id,
        )
    )
    if existing:
        existing.score_a = score_a
        existing.score_b = score_b
        return existing

    created = Prediction(
        participant_id=participant.id,
        match_id=match.id,
        score_a=score_a,
        score_b=score_b,
    )
    db.add(created)
    db.flush()
    return created


EXTRA_PREDICTION_FIELDS = (
    "marquee_first_scorer_1",
    "marquee_first_scorer_2",
    "marquee_first_scorer_3",
    "top_scorer",
    "champion",
    "vice_champion",
    "third_place",
)


def extra_prediction_out(username: str, extras: Optional[ExtraPrediction]) -> dict[str, Any]:
    payload: dict[str, Any] = {"username": username}
    for field in EXTRA_PREDICTION_FIELDS:
        payload[field] = getattr(extras, field) if extras is not None else None
    return payload


def get_extra_prediction(db: Session, username: str) -> dict[str, Any]:
    participant = get_participant_or_404(db, username)
    extras = db.scalar(
        select(ExtraPrediction).where(ExtraPrediction.participant_id == participant.id)
    )
    return extra_prediction_out(username, extras)


def upsert_extra_prediction(db: Session, username: str, picks: dict[str, Any]) -> ExtraPrediction:
    """
    Store tournament-long picks. Only the keys present in `picks` are
    written; blank strings clear a pick. These picks are never scored.
    """
    participant = get_participant_or_404(db, username)
    unknown = set(picks) - set(EXTRA_PREDICTION_FIELDS)
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown picks: {sorted(unknown)}")

    extras = db.scalar(
        select(ExtraPrediction).where(ExtraPrediction.participant_id == participant.id)
    )
    if extras is None:
        extras = ExtraPrediction(participant_id=participant.id)
        db.add(extras)
    for field, value in picks.items():
        if isinstance(value, str):
            value = value.strip() or None
        setattr(extras, field, value)
    db.flush()
    return extras

def list_rules(db: Session) -> list[dict[str, Any]]:
    ensure_defaults(db)
    rows = db.scalars(select(ScoringRuleRow).order_by(ScoringRuleRow.position.asc())).all()
    return [
        {"position": r.position, "label": r.label, "category": r.category, "points": r.points}
        for r in rows
    ]


def replace_rules(db: Session, rules: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Replace the whole rule table. The scoring categories are validated before
    anything is written so a broken rule set never reaches the database.
    """
    known = {o.value for o in SCORED_OUTCOMES}
    unknown = sorted({r["category"] for r in rules if r.get("category") and r["category"] not in known})
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown rule categories: {', '.join(unknown)}")
    candidate = [
        ScoringRule(category=r.get("category") or "", points=int(r["points"])) for r in rules
    ]
    RuleSet.from_rules(candidate)

    db.execute(delete(ScoringRuleRow))
    for position, rule in enumerate(rules, start=1):
        db.add(
            ScoringRuleRow(
                position=position,
                label=rule["label"].strip(),
                category=rule.get("category") or None,
                points=int(rule["points"]),
            )
        )
    db.flush()
    logger.info("Scoring rules replaced (%d rows)", len(rules))
    return list_rules(db)


# Snapshot builders: everything handed to the engine is a frozen copy.


def eligible_roster(db: Session) -> list[RosterEntry]:
    rows = db.scalars(
        select(Participant).where(Participant.paid.is_(True), Participant.role != "admin")
    ).all()
    return [RosterEntry(participant_id=p.username, name=p.name) for p in rows]


def match_facts(match: Match) -> MatchFacts:
    return MatchFacts(
        id=match.id,
        team_a=match.team_a,
        team_b=match.team_b,
        group=match.group_name,
        is_marquee=match.is_marquee,
        official=to_score(match.official_score_a, match.official_score_b),
    )


def all_match_facts(db: Session) -> list[MatchFacts]:
    return [match_facts(m) for m in _ordered_matches(db)]


def prediction_store(db: Session, usernames: Optional[list[str]] = None) -> PredictionStore:
    query = (
        select(Participant.username, Prediction.match_id, Prediction.score_a, Prediction.score_b)
        .select_from(Prediction)
        .join(Participant, Participant.id == Prediction.participant_id)
    )
    if usernames is not None:
        query = query.where(Participant.username.in_(usernames))

    store: dict[str, dict[str, Optional[Score]]] = {}
    for username, match_id, score_a, score_b in db.execute(query).all():
        store.setdefault(username, {})[match_id] = to_score(score_a, score_b)
    return store


def load_rule_set(db: Session) -> RuleSet:
    ensure_defaults(db)
    rows = db.scalars(select(ScoringRuleRow).order_by(ScoringRuleRow.position.asc())).all()
    fallback = FALLBACK_RULE_POINTS if config.RULE_FALLBACK_ENABLED else None
    return RuleSet.from_rules(
        [ScoringRule(category=r.category or "", points=r.points) for r in rows],
        fallback=fallback,
    )


def load_multiplier_policy(db: Session) -> MultiplierPolicy:
    settings = ensure_defaults(db)
    return MultiplierPolicy.from_lists(settings.special_teams, settings.special_phases)


# Read models


def leaderboard(db: Session) -> list[dict[str, Any]]:
    rules = load_rule_set(db)
    policy = load_multiplier_policy(db)
    roster = eligible_roster(db)
    entries = aggregate_leaderboard(
        roster,
        all_match_facts(db),
        prediction_store(db, [r.participant_id for r in roster]),
        rules,
        policy,
    )
    return [asdict(e) for e in entries]


def participant_group_tables(db: Session, username: str) -> dict[str, Any]:
    participant = get_participant_or_404(db, username)
    settings = ensure_defaults(db)
    bets = prediction_store(db, [participant.username]).get(participant.username, {})
    tables = build_group_tables(all_match_facts(db), bets)
    thirds = rank_third_places(tables)
    return {
        "participant_id": participant.username,
        "groups": {key: [asdict(row) for row in rows] for key, rows in tables.items()},
        "third_places": [
            {**asdict(row), "rank": idx, "qualified": idx <= settings.third_place_slots}
            for idx, row in enumerate(thirds, start=1)
        ],
    }


def match_points_breakdown(db: Session, match_id: str) -> dict[str, Any]:
    match = get_match_or_404(db, match_id)
    facts = match_facts(match)
    roster = eligible_roster(db)
    rows = match_breakdown(
        facts,
        roster,
        prediction_store(db, [r.participant_id for r in roster]),
        load_rule_set(db),
        load_multiplier_policy(db),
    )
    return {
        "match": match_out(match),
        "entries": [
            {
                "participant_id": row.participant_id,
                "name": row.name,
                "predicted": _score_out(row.predicted),
                "outcome": row.outcome,
                "points": row.points,
                "multiplier": row.multiplier,
            }
            for row in rows
        ],
    }


def prize_table(db: Session) -> dict[str, Any]:
    settings = ensure_defaults(db)
    participant_count = len(eligible_roster(db))
    amounts = prize_amounts(
        participant_count,
        settings.ticket_price,
        PrizeSplit(settings.prize_first, settings.prize_second, settings.prize_third),
    )
    return {
        "participants": participant_count,
        "ticket_price": settings.ticket_price,
        **amounts,
    }
