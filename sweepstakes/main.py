from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from sweepstakes.config import LOG_LEVEL
from sweepstakes.database import Base, SessionLocal, engine, get_db
from sweepstakes.rules import ConfigurationError
from sweepstakes.schemas import (
    ExtraPredictionUpsert,
    GroupTablesOut,
    LeaderboardEntryOut,
    MatchCreate,
    OfficialResultSet,
    ParticipantCreate,
    ParticipantPayment,
    PredictionUpsert,
    RulesReplace,
    SettingsUpdate,
)
from sweepstakes.services import (
    create_match,
    create_participant,
    ensure_defaults,
    extra_prediction_out,
    get_extra_prediction,
    get_settings,
    leaderboard,
    list_matches,
    list_participants,
    list_rules,
    match_out,
    match_points_breakdown,
    participant_group_tables,
    participant_out,
    prize_table,
    replace_rules,
    set_official_result,
    set_participant_payment,
    settings_out,
    update_settings,
    upsert_extra_prediction,
    upsert_prediction,
)

logger = logging.getLogger(__name__)


class LeaderboardHub:
    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self._connections.add(ws)

    def disconnect(self, ws: WebSocket) -> None:
        self._connections.discard(ws)

    async def broadcast(self, payload: dict[str, Any]) -> None:
        for ws in list(self._connections):
            try:
                await ws.send_json(payload)
            except Exception:
                logger.debug("Dropping websocket after failed send", exc_info=True)
                self.disconnect(ws)


app = FastAPI(
    title="Bolão - Tournament Prediction Pool",
    version="1.0.0",
    description=(
        "Score predictions against official results, rank participants and "
        "simulate group standings from each participant's predictions."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

hub = LeaderboardHub()


@app.on_event("startup")
def on_startup() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        ensure_defaults(db)
        db.commit()
    finally:
        db.close()


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Scoring configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


async def _broadcast_leaderboard(db: Session, reason: str) -> list[dict[str, Any]]:
    board = leaderboard(db)
    await hub.broadcast({"type": "leaderboard", "reason": reason, "leaderboard": board})
    return board


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/participants")
def register_participant(payload: ParticipantCreate, db: Session = Depends(get_db)):
    participant = create_participant(
        db, payload.username, payload.name, role=payload.role, paid=payload.paid
    )
    db.commit()
    return participant_out(participant)


@app.get("/participants")
def get_participants(db: Session = Depends(get_db)):
    return list_participants(db)


@app.post("/participants/{username}/payment")
async def update_participant_payment(
    username: str, payload: ParticipantPayment, db: Session = Depends(get_db)
):
    participant = set_participant_payment(db, username, payload.paid)
    db.commit()
    await _broadcast_leaderboard(db, "roster")
    return participant_out(participant)


@app.get("/participants/{username}/groups", response_model=GroupTablesOut)
def get_participant_groups(username: str, db: Session = Depends(get_db)):
    return participant_group_tables(db, username)


@app.get("/participants/{username}/extras")
def get_participant_extras(username: str, db: Session = Depends(get_db)):
    return get_extra_prediction(db, username)


@app.put("/participants/{username}/extras")
def put_participant_extras(
    username: str, payload: ExtraPredictionUpsert, db: Session = Depends(get_db)
):
    extras = upsert_extra_prediction(db, username, payload.model_dump(exclude_unset=True))
    db.commit()
    return extra_prediction_out(username, extras)


@app.post("/matches")
def register_match(payload: MatchCreate, db: Session = Depends(get_db)):
    match = create_match(
        db,
        payload.id,
        payload.team_a,
        payload.team_b,
        payload.group_name,
        kickoff=payload.kickoff,
        venue=payload.venue,
        is_marquee=payload.is_marquee,
    )
    db.commit()
    return match_out(match)


@app.get("/matches")
def get_matches(db: Session = Depends(get_db)):
    return list_matches(db)


@app.put("/matches/{match_id}/result")
async def submit_official_result(
    match_id: str, payload: OfficialResultSet, db: Session = Depends(get_db)
):
    match = set_official_result(db, match_id, payload.score_a, payload.score_b)
    db.commit()
    board = await _broadcast_leaderboard(db, "result")
    return {"match": match_out(match), "leaderboard": board}


@app.delete("/matches/{match_id}/result")
async def clear_official_result(match_id: str, db: Session = Depends(get_db)):
    match = set_official_result(db, match_id, None, None)
    db.commit()
    board = await _broadcast_leaderboard(db, "result")
    return {"match": match_out(match), "leaderboard": board}


@app.put("/matches/{match_id}/predictions/{username}")
async def submit_prediction(
    match_id: str,
    username: str,
    payload: PredictionUpsert,
    db: Session = Depends(get_db),
):
    prediction = upsert_prediction(db, match_id, username, payload.score_a, payload.score_b)
    db.commit()
    await _broadcast_leaderboard(db, "prediction")
    return {
        "match_id": prediction.match_id,
        "username": username,
        "score_a": prediction.score_a,
        "score_b": prediction.score_b,
        "complete": prediction.score_a is not None and prediction.score_b is not None,
    }


@app.get("/matches/{match_id}/breakdown")
def get_match_breakdown(match_id: str, db: Session = Depends(get_db)):
    return match_points_breakdown(db, match_id)


@app.get("/rules")
def get_rules(db: Session = Depends(get_db)):
    return list_rules(db)


@app.put("/rules")
async def put_rules(payload: RulesReplace, db: Session = Depends(get_db)):
    rules = replace_rules(db, [r.model_dump() for r in payload.rules])
    db.commit()
    await _broadcast_leaderboard(db, "rules")
    return rules


@app.get("/settings")
def get_pool_settings(db: Session = Depends(get_db)):
    return settings_out(get_settings(db))


@app.put("/settings")
async def put_pool_settings(payload: SettingsUpdate, db: Session = Depends(get_db)):
    settings = update_settings(db, payload.model_dump(exclude_none=True))
    db.commit()
    await _broadcast_leaderboard(db, "settings")
    return settings_out(settings)


@app.get("/leaderboard", response_model=list[LeaderboardEntryOut])
def get_leaderboard(db: Session = Depends(get_db)):
    return leaderboard(db)


@app.get("/prizes")
def get_prizes(db: Session = Depends(get_db)):
    return prize_table(db)


@app.websocket("/ws/leaderboard")
async def leaderboard_ws(websocket: WebSocket, db: Session = Depends(get_db)):
    await hub.connect(websocket)
    try:
        await websocket.send_json({"type": "bootstrap", "leaderboard": leaderboard(db)})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        hub.disconnect(websocket)
