"""
Caffeine Tracker API entry point.
Run: uvicorn tracker.main:app --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tracker.api.routes import router
from tracker.config import LOG_LEVEL
from tracker.core.database import init_db

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Caffeine Tracker", version="1.0.0", lifespan=lifespan)
app.include_router(router)
