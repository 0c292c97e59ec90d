"""FastAPI application entry point: middleware, routers and startup schema sync."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from snippetbase.config import settings
from snippetbase.database import Base, engine
import snippetbase.models  # noqa: F401 - registers tables on Base.metadata
from snippetbase.routers import admin_jobs, auth, branches, notifications, playbooks, snippets
from snippetbase.utils.schema_sync import sync_missing_schema_objects

logger = logging.getLogger(__name__)

app = FastAPI(
    title="snippetbase",
    description="Versioned snippets and playbooks with drafts, suggestions and merges",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(snippets.router)
app.include_router(playbooks.router)
app.include_router(branches.router)
app.include_router(notifications.router)
app.include_router(admin_jobs.router)


@app.on_event("startup")
def ensure_schema():
    Base.metadata.create_all(bind=engine)
    sync_missing_schema_objects(engine, Base.metadata)


@app.get("/api/health")
def health():
    return {"status": "ok", "version": app.version}
