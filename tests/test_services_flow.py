import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import Session, sessionmaker

from sweepstakes import config
from sweepstakes.database import Base
from sweepstakes.models import ScoringRuleRow
from sweepstakes.rules import ConfigurationError, Outcome
from sweepstakes.services import (
    create_match,
    create_participant,
    ensure_defaults,
    get_extra_prediction,
    leaderboard,
    list_rules,
    load_rule_set,
    match_points_breakdown,
    participant_group_tables,
    prize_table,
    replace_rules,
    set_official_result,
    update_settings,
    upsert_extra_prediction,
    upsert_prediction,
)


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=True, autocommit=False)
    return SessionLocal()


def _seed_pool(db: Session) -> None:
    ensure_defaults(db)
    create_participant(db, "admin", "Administrador", role="admin", paid=True)
    create_participant(db, "ana", "Palpiteira Ana", paid=True)
    create_participant(db, "carlos", "Palpiteiro Carlos", paid=True)
    create_participant(db, "pendente", "Usuário Pendente", paid=False)

    create_match(db, "c1", "Brasil", "Marrocos", "Grupo C")
    create_match(db, "c2", "Haiti", "Escócia", "Grupo C")
    create_match(db, "c3", "Brasil", "Haiti", "Grupo C")
    create_match(db, "c4", "Escócia", "Marrocos", "Grupo C")
    create_match(db, "c5", "Escócia", "Brasil", "Grupo C")
    create_match(db, "c6", "Marrocos", "Haiti", "Grupo C")
    db.commit()


def test_leaderboard_from_database():
    db = _session()
    _seed_pool(db)

    for username in ("admin", "ana", "carlos", "pendente"):
        upsert_prediction(db, "c1", username, 2, 0)
    upsert_prediction(db, "c2", "ana", 1, 1)
    upsert_prediction(db, "c2", "carlos", 0, 0)
    # half filled: ignored until both sides are set
    upsert_prediction(db, "c3", "carlos", 3, None)
    db.commit()

    set_official_result(db, "c1", 2, 0)
    set_official_result(db, "c2", 0, 0)
    set_official_result(db, "c3", 3, 0)
    db.commit()

    board = leaderboard(db)

    # Only paid non-admin participants are ranked.
    assert [row["participant_id"] for row in board] == ["carlos", "ana"]
    carlos, ana = board
    # c1 is a Brasil match: exact 6 doubled
    assert (carlos["points"], carlos["exact_scores"], carlos["marquee_points"]) == (18, 2, 12)
    assert (ana["points"], ana["exact_scores"], ana["marquee_points"]) == (14, 1, 12)
    assert [row["position"] for row in board] == [1, 2]

    db.close()


def test_marquee_flag_follows_pool_settings():
    db = _session()
    _seed_pool(db)

    update_settings(db, {"marquee_team": "Escócia"})
    match = create_match(db, "c7", "Escócia", "Haiti", "Grupo C")
    other = create_match(db, "c8", "Brasil", "Haiti", "Grupo C", is_marquee=False)

    assert match.is_marquee is True
    assert other.is_marquee is False
    db.close()


def test_official_result_requires_both_scores():
    db = _session()
    _seed_pool(db)

    with pytest.raises(HTTPException):
        set_official_result(db, "c1", 1, None)
    with pytest.raises(HTTPException) as exc:
        set_official_result(db, "missing", 1, 0)
    assert exc.value.status_code == 404
    db.close()


def test_group_tables_and_third_places_for_participant():
    db = _session()
    _seed_pool(db)
    create_match(db, "a1", "México", "África do Sul", "Grupo A")
    create_match(db, "a2", "Coreia do Sul", "UEFA D", "Grupo A")
    create_match(db, "f1", "Argentina", "França", "FINAL")
    db.commit()

    picks = {"c1": (2, 0), "c2": (1, 1), "c3": (4, 0), "c4": (1, 2), "c5": (0, 3), "c6": (2, 1)}
    for match_id, (a, b) in picks.items():
        upsert_prediction(db, match_id, "ana", a, b)
    upsert_prediction(db, "a1", "ana", 0, 1)
    upsert_prediction(db, "f1", "ana", 1, 0)
    db.commit()

    result = participant_group_tables(db, "ana")

    assert list(result["groups"]) == ["A", "C"]
    group_c = result["groups"]["C"]
    assert [row["team_name"] for row in group_c] == ["Brasil", "Marrocos", "Escócia", "Haiti"]
    assert [row["points"] for row in group_c] == [9, 6, 1, 1]

    thirds = result["third_places"]
    assert [row["team_name"] for row in thirds] == ["Escócia", "UEFA D"]
    assert [row["rank"] for row in thirds] == [1, 2]
    assert all(row["qualified"] for row in thirds)

    update_settings(db, {"third_place_slots": 1})
    thirds = participant_group_tables(db, "ana")["third_places"]
    assert [row["qualified"] for row in thirds] == [True, False]
    db.close()


def test_match_breakdown_lists_every_ranked_participant():
    db = _session()
    _seed_pool(db)
    upsert_prediction(db, "c2", "ana", 2, 1)
    upsert_prediction(db, "c2", "carlos", 1, 0)
    set_official_result(db, "c2", 2, 0)
    db.commit()

    payload = match_points_breakdown(db, "c2")

    assert payload["match"]["official"] == {"score_a": 2, "score_b": 0}
    entries = payload["entries"]
    assert [(e["participant_id"], e["outcome"], e["points"]) for e in entries] == [
        ("ana", "winner_and_subscore", 3),
        ("carlos", "winner_and_subscore", 3),
    ]
    db.close()


def test_prize_table_counts_ranked_participants():
    db = _session()
    _seed_pool(db)

    prizes = prize_table(db)

    assert prizes["participants"] == 2
    assert (prizes["pool"], prizes["first"], prizes["second"], prizes["third"]) == (100.0, 65.0, 25.0, 10.0)
    db.close()


def test_replace_rules_rejects_incomplete_rule_set():
    db = _session()
    _seed_pool(db)
    before = list_rules(db)

    with pytest.raises(ConfigurationError):
        replace_rules(db, [{"label": "Escore em cheio", "category": "exact_score", "points": 10}])

    assert list_rules(db) == before
    db.close()


def test_replace_rules_changes_scoring():
    db = _session()
    _seed_pool(db)
    upsert_prediction(db, "c2", "ana", 1, 0)
    set_official_result(db, "c2", 1, 0)
    db.commit()

    replace_rules(
        db,
        [
            {"label": "Cravada", "category": "exact_score", "points": 10},
            {"label": "Vencedor + gols", "category": "winner_and_subscore", "points": 4},
            {"label": "Vencedor", "category": "winner_only", "points": 2},
            {"label": "Empate", "category": "correct_draw", "points": 2},
            {"label": "Campeão da Copa", "category": None, "points": 15},
        ],
    )
    db.commit()

    board = {row["participant_id"]: row for row in leaderboard(db)}
    assert board["ana"]["points"] == 10
    assert [r["category"] for r in list_rules(db)][-1] is None
    db.close()


def test_missing_rule_uses_fallback_only_when_enabled(monkeypatch):
    db = _session()
    _seed_pool(db)
    db.execute(delete(ScoringRuleRow).where(ScoringRuleRow.category == "correct_draw"))
    db.commit()

    monkeypatch.setattr(config, "RULE_FALLBACK_ENABLED", False)
    with pytest.raises(ConfigurationError):
        load_rule_set(db)
    with pytest.raises(ConfigurationError):
        leaderboard(db)

    monkeypatch.setattr(config, "RULE_FALLBACK_ENABLED", True)
    assert load_rule_set(db).points_by_outcome[Outcome.CORRECT_DRAW] == 2
    db.close()


def test_extra_predictions_are_stored_but_not_scored():
    db = _session()
    _seed_pool(db)
    upsert_prediction(db, "c1", "ana", 1, 0)
    set_official_result(db, "c1", 1, 0)
    db.commit()
    before = leaderboard(db)

    upsert_extra_prediction(
        db,
        "ana",
        {"champion": "Brasil", "vice_champion": "Argentina", "marquee_first_scorer_1": "Vini Jr"},
    )
    upsert_extra_prediction(db, "ana", {"champion": "  ", "third_place": "França"})
    db.commit()

    picks = get_extra_prediction(db, "ana")
    assert picks["champion"] is None
    assert picks["vice_champion"] == "Argentina"
    assert picks["marquee_first_scorer_1"] == "Vini Jr"
    assert picks["third_place"] == "França"
    assert get_extra_prediction(db, "carlos")["champion"] is None
    assert leaderboard(db) == before

    with pytest.raises(HTTPException) as exc:
        upsert_extra_prediction(db, "ana", {"golden_ball": "Messi"})
    assert exc.value.status_code == 400
    db.close()
