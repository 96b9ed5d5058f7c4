"""
QMStats — application entry point.

This is the **only** file that assembles the app.  Business logic lives
in ``services/`` and ``reports/``; HTTP wiring in ``api/``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from qmstats.api.v1.api import api_router
from qmstats.api.v1.endpoints import health
from qmstats.api.v1.endpoints.auth import limiter
from qmstats.core.config import settings
from qmstats.core.exceptions import register_exception_handlers
from qmstats.core.security import get_password_hash
from qmstats.db.base import Base
from qmstats.db.session import async_session_factory, engine

# Ensure all models are imported so metadata.create_all can see them
from qmstats.models.group import Group, GroupInvite, GroupMember  # noqa: F401
from qmstats.models.stat import Stat  # noqa: F401
from qmstats.models.user import User
from qmstats.services.live_updates import LiveUpdateRegistry
from qmstats.services.mailer import Mailer

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    # Seed the first admin account on first run
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(User.email == settings.FIRST_ADMIN_EMAIL.lower())
        )
        if result.scalar_one_or_none() is None:
            session.add(
                User(
                    email=settings.FIRST_ADMIN_EMAIL.lower(),
                    hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
                    first_name="System",
                    surname="Administrator",
                )
            )
            await session.commit()
            logger.info(
                "Default admin created: %s (password: <redacted>)",
                settings.FIRST_ADMIN_EMAIL,
            )

    logger.info("QMStats v%s started", settings.VERSION)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Mail-processing statistics tracker",
        version=settings.VERSION,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Per-app services
    application.state.live_updates = LiveUpdateRegistry(settings.SSE_QUEUE_SIZE)
    application.state.mailer = Mailer(settings)
    application.state.limiter = limiter

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    application.include_router(api_router, prefix=settings.API_PREFIX)
    application.include_router(health.router)

    return application


app = create_app()
