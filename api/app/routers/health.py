from fastapi import APIRouter

from app.db import repo as db_repo
from app.llm.inference_client import InferenceClient

router = APIRouter()


@router.get("/healthz")
async def healthz():
    # ── SQLite check ──
    sqlite_status = "ok" if db_repo.ping() else "error"

    # ── Inference check ──
    client = InferenceClient()
    if not client.configured:
        inference_status = "disabled"
    elif await client.ping():
        inference_status = "ok"
    else:
        inference_status = "unreachable"

    # Only SQLite decides ok; inference outages are served by fallbacks.
    ok = sqlite_status == "ok"
    return {"ok": ok, "sqlite": sqlite_status, "inference": inference_status}
