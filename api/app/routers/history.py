"""Router: History - the caller's interaction log and latest virtue scores."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from app.core import config
from app.core.contracts import AnalysisOutcome, ToolKind, Virtue
from app.core.session import current_user_id
from app.db import repo as db_repo
from app.db.repo import PersistenceError

router = APIRouter(tags=["history"])


class HistoryItem(BaseModel):
    id: str
    tool: ToolKind
    raw_input: str
    outcome: AnalysisOutcome
    created_at: str


class VirtueScoreOut(BaseModel):
    virtue: Virtue
    score: int
    has_history: bool = True


class VirtuesResponse(BaseModel):
    scores: list[VirtueScoreOut] = Field(default_factory=list)


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Please sign in to continue.")
    return user_id


@router.get("/history", response_model=list[HistoryItem])
async def list_history(
    limit: int = Query(default=20, ge=1, le=100),
    user_id: str | None = Depends(current_user_id),
):
    """Newest-first interaction log entries for the caller."""
    uid = _require_user(user_id)
    try:
        entries = db_repo.list_log_entries(uid, limit=limit)
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {exc}")
    return [
        HistoryItem(
            id=e.id,
            tool=e.tool,
            raw_input=e.raw_input,
            outcome=e.outcome_snapshot,
            created_at=e.created_at,
        )
        for e in entries
    ]


@router.get("/virtues", response_model=VirtuesResponse)
async def latest_virtues(user_id: str | None = Depends(current_user_id)):
    """Latest score per virtue; virtues without history report the default prior."""
    uid = _require_user(user_id)
    try:
        latest = db_repo.query_latest_scores_by_virtue(uid, list(Virtue))
    except PersistenceError as exc:
        raise HTTPException(status_code=503, detail=f"Store unavailable: {exc}")
    return VirtuesResponse(scores=[
        VirtueScoreOut(
            virtue=v,
            score=latest.get(v, config.WW_DEFAULT_VIRTUE_SCORE),
            has_history=v in latest,
        )
        for v in Virtue
    ])
