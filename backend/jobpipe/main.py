from __future__ import annotations
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jobpipe.api import health, jobs
from jobpipe.core.config import settings
from jobpipe.core.logging import setup_logging
from jobpipe.db.init_db import init_db

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    setup_logging(settings.log_level)
    init_db()


app.include_router(health.router)
app.include_router(jobs.router, prefix=settings.api_prefix)
