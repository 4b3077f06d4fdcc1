from __future__ import annotations

import os
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from .auth.dependencies import require_user
from .auth.users import authenticate
from .decisions.collections import InMemoryCollectionStore, InMemoryGroupDirectory
from .decisions.config import DEFAULT_DECISION_CONFIG, DecisionConfig
from .decisions.errors import DecisionEngineError
from .decisions.manager import DecisionManager
from .decisions.models import (
    Decision,
    DecisionPage,
    DecisionStatistics,
    DecisionStatus,
    DecisionType,
    GroupDecisionRequest,
    HistoryFilter,
    LoginRequest,
    ManualDecisionRequest,
    PersonalDecisionRequest,
    Result,
    SelectionStatistic,
    VoteReceipt,
    VoteRequest,
)
from .decisions.store import InMemoryDecisionStore

app = FastAPI(title="Restaurant Decision API", version="1.0.0")
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "decision-engine-secret-change-in-production"),
)

_manager: DecisionManager | None = None


def build_manager(config: DecisionConfig = DEFAULT_DECISION_CONFIG) -> DecisionManager:
    """Build a manager over in-memory stores seeded from the CSV files in ``config.data_dir``."""
    return DecisionManager(
        collections=InMemoryCollectionStore.from_csv(config.restaurants_path, config.collections_path),
        decisions=InMemoryDecisionStore(config),
        groups=InMemoryGroupDirectory.from_csv(config.group_admins_path),
        config=config,
    )


def get_manager() -> DecisionManager:
    """Return the process-wide manager, loading it on first call."""
    global _manager
    if _manager is None:
        _manager = build_manager()
    return _manager


@app.exception_handler(DecisionEngineError)
async def decision_engine_error(request: Request, exc: DecisionEngineError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ── Auth endpoints ───────────────────────────────────────────────────────


@app.post("/auth/login")
def login(body: LoginRequest, request: Request) -> dict:
    user = authenticate(body.username, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    request.session["user"] = user
    return {"status": "ok", "user": user}


@app.post("/auth/logout")
def logout(request: Request) -> dict:
    request.session.clear()
    return {"status": "logged_out"}


@app.get("/auth/me")
def auth_me(user: dict = Depends(require_user)) -> dict:
    return user


# ── Decision lifecycle ───────────────────────────────────────────────────


@app.post("/decisions/personal", response_model=Decision)
def create_personal(
    body: PersonalDecisionRequest,
    user: dict = Depends(require_user),
    manager: DecisionManager = Depends(get_manager),
) -> Decision:
    return manager.create_personal_decision(
        body.collection_id, user["user_id"], body.method, body.visit_date,
    )


@app.post("/decisions/group", response_model=Decision)
def create_group(
    body: GroupDecisionRequest,
    user: dict = Depends(require_user),
    manager: DecisionManager = Depends(get_manager),
) -> Decision:
    return manager.create_group_decision(
        body.collection_id,
        body.group_id,
        body.participants,
        body.method,
        body.visit_date,
        deadline_hours=body.deadline_hours,
        created_by=user["user_id"],
    )


@app.post("/decisions/manual", response_model=Decision)
def create_manual(
    body: ManualDecisionRequest,
    user: dict = Depends(require_user),
    manager: DecisionManager = Depends(get_manager),
) -> Decision:
    return manager.record_manual_decision(
        body.collection_id,
        user["user_id"],
        body.restaurant_id,
        body.visit_date,
        group_id=body.group_id,
        notes=body.notes,
    )


@app.get("/decisions/history", response_model=DecisionPage)
def decision_history(
    collection_id: str | None = None,
    group_id: str | None = None,
    type: DecisionType | None = None,
    status: DecisionStatus | None = None,
    restaurant_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user: dict = Depends(require_user),
    manager: DecisionManager = Depends(get_manager),
) -> DecisionPage:
    return manager.get_decision_history(HistoryFilter(
        collection_id=collection_id,
        group_id=group_id,
        type=type,
        status=status,
        participant_id=user["user_id"],
        restaurant_id=restaurant_id,
        start_date=start_date,
        end_date=end_date,
        search=search,
        limit=limit,
        offset=offset,
    ))


@app.get("/decisions/{decision_id}", response_model=Decision)
def get_decision(
    decision_id: str,
    user: dict = Depends(require_user),
    manager: DecisionManager = Depends(get_manager),
) -> Decision:
    return manager.get_group_decision(decision_id, user["user_id"])


@app.post("/decisions/{decision_id}/votes", response_model=VoteReceipt)
def submit_vote(
    decision_id: str,
    body: VoteRequest,
    user: dict = Depends(require_user),
    manager: DecisionManager = Depends(get_manager),
) -> VoteReceipt:
    return manager.submit_group_vote(decision_id, user["user_id"], body.rankings)


@app.post("/decisions/{decision_id}/complete", response_model=Result)
def complete_decision(
    decision_id: str,
    user: dict = Depends(require_user),
    manager: DecisionManager = Depends(get_manager),
) -> Result:
    return manager.complete_tiered_group_decision(decision_id)


@app.post("/decisions/{decision_id}/close", response_model=Decision)
def close_decision(
    decision_id: str,
    user: dict = Depends(require_user),
    manager: DecisionManager = Depends(get_manager),
) -> Decision:
    return manager.close_group_decision(decision_id, user["user_id"])


@app.get("/groups/{group_id}/decisions/active", response_model=DecisionPage)
def active_group_decisions(
    group_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user: dict = Depends(require_user),
    manager: DecisionManager = Depends(get_manager),
) -> DecisionPage:
    return manager.get_active_group_decisions(group_id, limit=limit, offset=offset)


# ── Collection insight ───────────────────────────────────────────────────


@app.get("/collections/{collection_id}/statistics", response_model=DecisionStatistics)
def collection_statistics(
    collection_id: str,
    user: dict = Depends(require_user),
    manager: DecisionManager = Depends(get_manager),
) -> DecisionStatistics:
    return manager.get_decision_statistics(collection_id)


@app.get("/collections/{collection_id}/weights", response_model=list[SelectionStatistic])
def collection_weights(
    collection_id: str,
    user: dict = Depends(require_user),
    manager: DecisionManager = Depends(get_manager),
) -> list[SelectionStatistic]:
    return manager.get_collection_weights(collection_id)
