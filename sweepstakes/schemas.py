from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ParticipantCreate(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=128)
    role: Literal["admin", "user"] = "user"
    paid: bool = False


class ParticipantPayment(BaseModel):
    paid: bool


class MatchCreate(BaseModel):
    id: str = Field(min_length=1, max_length=32)
    team_a: str = Field(min_length=1, max_length=64)
    team_b: str = Field(min_length=1, max_length=64)
    group_name: str = Field(min_length=1, max_length=64)
    kickoff: Optional[datetime] = None
    venue: Optional[str] = Field(default=None, max_length=128)
    # Derived from the pool's marquee team when omitted.
    is_marquee: Optional[bool] = None


class OfficialResultSet(BaseModel):
    score_a: int = Field(ge=0)
    score_b: int = Field(ge=0)


class PredictionUpsert(BaseModel):
    score_a: Optional[int] = Field(default=None, ge=0)
    score_b: Optional[int] = Field(default=None, ge=0)


class ExtraPredictionUpsert(BaseModel):
    marquee_first_scorer_1: Optional[str] = Field(default=None, max_length=64)
    marquee_first_scorer_2: Optional[str] = Field(default=None, max_length=64)
    marquee_first_scorer_3: Optional[str] = Field(default=None, max_length=64)
    top_scorer: Optional[str] = Field(default=None, max_length=64)
    champion: Optional[str] = Field(default=None, max_length=64)
    vice_champion: Optional[str] = Field(default=None, max_length=64)
    third_place: Optional[str] = Field(default=None, max_length=64)


class ScoringRuleIn(BaseModel):
    label: str = Field(min_length=1, max_length=128)
    category: Optional[str] = Field(default=None, max_length=32)
    points: int = Field(ge=0)


class RulesReplace(BaseModel):
    rules: list[ScoringRuleIn]


class SettingsUpdate(BaseModel):
    ticket_price: Optional[float] = Field(default=None, ge=0)
    prize_first: Optional[float] = Field(default=None, ge=0, le=100)
    prize_second: Optional[float] = Field(default=None, ge=0, le=100)
    prize_third: Optional[float] = Field(default=None, ge=0, le=100)
    special_teams: Optional[list[str]] = None
    special_phases: Optional[list[str]] = None
    marquee_team: Optional[str] = Field(default=None, max_length=64)
    third_place_slots: Optional[int] = Field(default=None, ge=0)


class LeaderboardEntryOut(BaseModel):
    participant_id: str
    name: str
    points: int
    exact_scores: int
    marquee_points: int
    position: int


class GroupRowOut(BaseModel):
    team_name: str
    group: str
    played: int
    won: int
    drawn: int
    lost: int
    goals_for: int
    goals_against: int
    goal_difference: int
    points: int


class ThirdPlaceOut(GroupRowOut):
    rank: int
    qualified: bool


class GroupTablesOut(BaseModel):
    participant_id: str
    groups: dict[str, list[GroupRowOut]]
    third_places: list[ThirdPlaceOut]
