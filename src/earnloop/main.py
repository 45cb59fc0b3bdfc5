"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from earnloop.admin.router import router as admin_router
from earnloop.config import get_settings
from earnloop.database import close_db, get_engine, get_session_factory, init_db
from earnloop.db import models  # noqa: F401  (registers tables on Base.metadata)
from earnloop.db.base import Base
from earnloop.earn.router import router as earn_router
from earnloop.giveaways.router import router as giveaways_router
from earnloop.health.router import router as health_router
from earnloop.middleware import setup_middleware
from earnloop.redis_client import close_redis, init_redis
from earnloop.store.router import router as store_router
from earnloop.store.seed import seed_store_items
from earnloop.users.router import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url, settings.db_lock_timeout_ms)
    await init_redis(settings.redis_url)

    if settings.create_tables_on_startup:
        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    if settings.seed_catalog_on_startup:
        try:
            async with get_session_factory()() as db:
                await seed_store_items(db)
        except SQLAlchemyError:
            logger.warning("Store catalog seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Earnloop Credits Ledger",
        description="Virtual-currency ledger: earn, streaks, store redemptions and giveaway entries",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(users_router)
    app.include_router(earn_router)
    app.include_router(store_router)
    app.include_router(giveaways_router)
    app.include_router(admin_router)

    return app


app = create_app()
