from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from ..weighting.weights import SelectionStatistic


class DecisionType(str, Enum):
    personal = "personal"
    group = "group"


class DecisionMethod(str, Enum):
    random = "random"
    tiered = "tiered"
    manual = "manual"


class DecisionStatus(str, Enum):
    active = "active"
    completed = "completed"
    closed = "closed"


TERMINAL_STATUSES = frozenset({DecisionStatus.completed, DecisionStatus.closed})


def _new_id() -> str:
    return uuid.uuid4().hex


class Vote(BaseModel):
    user_id: str = Field(..., min_length=1)
    rankings: list[str] = Field(..., min_length=1, description="Restaurant ids, most preferred first")
    submitted_at: datetime


class Result(BaseModel):
    restaurant_id: str
    selected_at: datetime
    reasoning: str
    weights: dict[str, float] = Field(default_factory=dict)


class Decision(BaseModel):
    id: str = Field(default_factory=_new_id)
    type: DecisionType
    collection_id: str
    group_id: str | None = None
    method: DecisionMethod
    status: DecisionStatus = DecisionStatus.active
    deadline: datetime
    visit_date: datetime
    participants: list[str] = Field(default_factory=list)
    votes: dict[str, Vote] = Field(default_factory=dict)
    result: Result | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _check_shape(self) -> "Decision":
        if self.type is DecisionType.group and not self.group_id:
            raise ValueError("group decisions require a group_id")
        if self.type is DecisionType.personal:
            if self.group_id is not None:
                raise ValueError("personal decisions cannot have a group_id")
            if self.participants or self.votes:
                raise ValueError("personal decisions have no participants or votes")
        if self.votes and self.method is not DecisionMethod.tiered:
            raise ValueError("only tiered decisions collect votes")
        if (self.status is DecisionStatus.completed) != (self.result is not None):
            raise ValueError("result is present exactly when the decision is completed")
        return self

    @property
    def is_active(self) -> bool:
        return self.status is DecisionStatus.active


class VoteReceipt(BaseModel):
    success: bool
    message: str


class HistoryFilter(BaseModel):
    collection_id: str | None = None
    group_id: str | None = None
    type: DecisionType | None = None
    status: DecisionStatus | None = None
    participant_id: str | None = None
    restaurant_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = Field(default=None, description="Free text matched against restaurant names")
    limit: int = Field(default=100, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class DecisionPage(BaseModel):
    decisions: list[Decision]
    total: int
    offset: int
    limit: int
    has_more: bool


class DecisionStatistics(BaseModel):
    collection_id: str
    total_decisions: int
    restaurant_stats: list[SelectionStatistic]


# ── Request bodies ───────────────────────────────────────────────────────


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class PersonalDecisionRequest(BaseModel):
    collection_id: str = Field(..., min_length=1)
    method: str = "random"
    visit_date: datetime


class GroupDecisionRequest(BaseModel):
    collection_id: str = Field(..., min_length=1)
    group_id: str = Field(..., min_length=1)
    participants: list[str] = Field(..., min_length=1)
    method: str = "tiered"
    visit_date: datetime
    deadline_hours: float = Field(default=24, gt=0, le=24 * 30)


class ManualDecisionRequest(BaseModel):
    collection_id: str = Field(..., min_length=1)
    restaurant_id: str = Field(..., min_length=1)
    visit_date: datetime
    group_id: str | None = None
    notes: str | None = Field(default=None, max_length=500)


class VoteRequest(BaseModel):
    rankings: list[str]
