"""Passgate - credential issuance and rotation API."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from passgate.config import get_settings

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup: create tables and seed roles
    from passgate.database import Base, engine, get_db_context
    from passgate.services.refresh_tokens import prune_refresh_tokens
    from passgate.services.user_store import ensure_roles

    # Import all models so they're registered with Base
    from passgate import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    with get_db_context() as db:
        ensure_roles(db)
        # Retention sweep for refresh tokens
        prune_refresh_tokens(db, settings)

    yield


app = FastAPI(
    title=settings.app_name,
    description="Password login, short-lived access tokens and rotating refresh tokens",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


from passgate.api import auth  # noqa: E402

app.include_router(auth.router, prefix="/api")
