"""Router: Reflect - submit, cancel, restore and reset an analysis."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from app.core.contracts import AnalysisOutcome, FailureKind, ToolKind, coerce_tool
from app.core.session import current_user_id
from app.orchestrator.models import SubmitStatus
from app.orchestrator.pool import OrchestratorPool

router = APIRouter(prefix="/reflect", tags=["reflect"])

# Maximum input length accepted from the client.
_MAX_INPUT_LEN = 5_000

_pool = OrchestratorPool()


def get_pool() -> OrchestratorPool:
    return _pool


# ── Request / Response models ─────────────────────────────

class ReflectRequest(BaseModel):
    tool: ToolKind
    raw_input: str = Field(..., min_length=1, max_length=_MAX_INPUT_LEN)
    idempotency_key: str | None = Field(None, max_length=200)

    @field_validator("tool", mode="before")
    @classmethod
    def _resolve_alias(cls, v: Any) -> ToolKind:
        return coerce_tool(v)

    @field_validator("raw_input")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("raw_input must not be blank")
        return v


class ReflectResponse(BaseModel):
    status: SubmitStatus
    outcome: AnalysisOutcome | None = None
    notice: str | None = None
    failure: FailureKind | None = None
    idempotency_key: str | None = None


class CurrentResponse(BaseModel):
    outcome: AnalysisOutcome | None = None
    is_loading: bool = False


class CancelResponse(BaseModel):
    cancelled: bool


# ── Endpoints ─────────────────────────────────────────────

@router.post("", response_model=ReflectResponse)
async def submit_reflection(
    req: ReflectRequest,
    user_id: str | None = Depends(current_user_id),
    pool: OrchestratorPool = Depends(get_pool),
):
    """Run one analysis.  Inference failures still return a fallback outcome."""
    orch = pool.get(user_id)
    result = await orch.analyze(req.tool, req.raw_input, req.idempotency_key)

    if result.status == SubmitStatus.not_authenticated:
        raise HTTPException(status_code=401, detail=result.notice)
    if result.status == SubmitStatus.in_flight:
        raise HTTPException(status_code=409, detail=result.notice)

    return ReflectResponse(
        status=result.status,
        outcome=result.outcome,
        notice=result.notice,
        failure=result.failure,
        idempotency_key=result.idempotency_key,
    )


@router.post("/cancel", response_model=CancelResponse)
async def cancel_reflection(
    user_id: str | None = Depends(current_user_id),
    pool: OrchestratorPool = Depends(get_pool),
):
    if not user_id:
        raise HTTPException(status_code=401, detail="Please sign in to continue.")
    return CancelResponse(cancelled=pool.get(user_id).cancel())


@router.get("/current", response_model=CurrentResponse)
async def current_reflection(
    user_id: str | None = Depends(current_user_id),
    pool: OrchestratorPool = Depends(get_pool),
):
    """Return the last outcome, restoring it from the session cache if needed."""
    if not user_id:
        raise HTTPException(status_code=401, detail="Please sign in to continue.")
    orch = pool.get(user_id)
    outcome = orch.current_outcome or orch.restore()
    return CurrentResponse(outcome=outcome, is_loading=orch.is_loading)


@router.delete("", status_code=204)
async def reset_reflection(
    user_id: str | None = Depends(current_user_id),
    pool: OrchestratorPool = Depends(get_pool),
):
    if not user_id:
        raise HTTPException(status_code=401, detail="Please sign in to continue.")
    pool.get(user_id).reset()
