"""
GLP-Tracker API server.
Run with: uvicorn glp_tracker.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from glp_tracker.api.routes import router
from glp_tracker.config import LOG_LEVEL
from glp_tracker.core.database import init_db


def configure_logging():
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="GLP-Tracker", version="1.0.0", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
