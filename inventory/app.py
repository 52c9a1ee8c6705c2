"""FastAPI application factory for the inventory import engine."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .sync.directory import close_directory


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Auto-create tables for SQLite (local dev); other databases use Alembic migrations
    if "sqlite" in settings.database_url:
        from .database import engine
        from .models import Base
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    yield
    await close_directory()


app = FastAPI(title=settings.app_title, lifespan=lifespan)

# Import and register routers
from .routers import health, imports  # noqa: E402

app.include_router(imports.router)
app.include_router(health.router)
