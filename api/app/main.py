from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.db.migrate import run_migration
from app.routers import health, history, reflect

import logging

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: run idempotent schema migration
    run_migration()
    yield


app = FastAPI(title="WellWell", docs_url="/docs", lifespan=lifespan)

app.include_router(health.router)
app.include_router(reflect.router)
app.include_router(history.router)
