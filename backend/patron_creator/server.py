"""FastAPI application for patron-creator.

Run with: uvicorn patron_creator.server:app --host 0.0.0.0 --port 8395 --reload
Or: patron-creator start
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from patron_creator.errors import PatronCreatorError
from patron_creator.routes import health, patrons, validations
from patron_creator.services import build_services
from patron_creator.storage.filesystem import ensure_directories

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Patron Creator",
    description="Library card eligibility and patron provisioning",
    version="0.3.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:8395",
        "http://127.0.0.1",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8395",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(validations.router)
app.include_router(patrons.router)

app.state.services = None


@app.on_event("startup")
async def on_startup():
    ensure_directories()
    try:
        app.state.services = build_services()
    except PatronCreatorError as exc:
        logger.error("Patron-Creator is not configured: %s", exc.message)
        return
    logger.info("Patron-Creator server started.")


@app.on_event("shutdown")
async def on_shutdown():
    services = app.state.services
    if services is not None:
        await services.aclose()
        app.state.services = None
