# /backend/ownurvoice/main.py

from __future__ import annotations
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ownurvoice.config import (
    AUTO_CREATE_TABLES, CORS_ORIGINS, SEED_DEMO_ACCOUNTS, STORE_BACKEND,
)
from ownurvoice.exceptions import OwnUrVoiceError
from ownurvoice.logging_config import configure_logging
from ownurvoice.api.routers import auth, patient, therapist
from ownurvoice.services.demo_accounts import seed_demo_accounts
from ownurvoice.stores import build_backends, get_store
from ownurvoice.stores.base import Store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    configure_logging()
    store, identity = build_backends(STORE_BACKEND)
    app.state.store = store
    app.state.identity = identity

    if STORE_BACKEND == "sql" and AUTO_CREATE_TABLES:
        from ownurvoice.db import create_tables
        await create_tables()
    if SEED_DEMO_ACCOUNTS:
        created = await seed_demo_accounts(store, identity)
        logger.info("Demo accounts seeded: %d new", created)

    logger.info("OwnUrVoice API started (backend=%s)", STORE_BACKEND)
    try:
        yield
    finally:
        # shutdown
        await store.close()


app = FastAPI(
    title="OwnUrVoice API",
    lifespan=lifespan,
)

# CORS first so it applies to every route
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OwnUrVoiceError)
async def ownurvoice_error_handler(request: Request, exc: OwnUrVoiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else (first.get("msg") or "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"success": False, "code": "VALIDATION_ERROR", "message": message},
    )


app.include_router(auth.router)
app.include_router(therapist.router)
app.include_router(patient.router)


@app.get("/health")
@app.get("/api/health")
async def health():
    return {"status": "ok", "message": "OwnUrVoice API is running"}


@app.get("/db-health")
async def db_health(store: Store = Depends(get_store)):
    result = await store.ping()
    return {"db": "ok", "backend": STORE_BACKEND, "result": result}
