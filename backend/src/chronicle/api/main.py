from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import chronicle.db.session as db_session
from chronicle.api.routers.campaigns import router as campaigns_router
from chronicle.api.routers.combat import router as combat_router
from chronicle.api.routers.conditions import router as conditions_router
from chronicle.api.routers.worlds import router as worlds_router
from chronicle.config import configure_logging, settings
from chronicle.core.errors import NotFoundError, ReplayFailure, ValidationError
from chronicle.core.rules.registry import build_registry
from chronicle.db.init_db import init_db, seed_conditions

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings)
    init_db()
    db = db_session.SessionLocal()
    try:
        created = seed_conditions(db, app.state.registry)
    finally:
        db.close()
    logger.info("startup: %d conditions seeded, rulesets %s", created, app.state.registry.ids())
    yield


app = FastAPI(title="Chronicle Campaign Ledger", lifespan=lifespan)
app.state.registry = build_registry(settings.default_ruleset)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ReplayFailure)
async def replay_failure_handler(request: Request, exc: ReplayFailure):
    logger.error("replay failure: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "event_id": exc.event_id, "event_type": exc.event_type},
    )


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(worlds_router)
app.include_router(campaigns_router)
app.include_router(combat_router)
app.include_router(conditions_router)
