from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from chitfund.core.database import Base, async_engine, close_redis
from chitfund.core.config import settings
from chitfund.core.dependencies import get_session_manager
from chitfund.modules.auth import models as auth_models  # noqa: F401  registers the identities table
from chitfund.core import documents  # noqa: F401  registers the documents table
from chitfund.modules.auth.router import router as auth_router
from chitfund.modules.users.router import router as users_router
from chitfund.modules.customers.router import router as customers_router
from chitfund.modules.loans.router import router as loans_router
from chitfund.modules.payments.router import router as payments_router
from chitfund.modules.collections.router import router as collections_router
from chitfund.modules.activities.router import router as activities_router
from chitfund.modules.investors.router import router as investors_router
from chitfund.modules.chit_groups.router import router as chit_groups_router
from chitfund.modules.admin.router import router as admin_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    async with async_engine.begin() as conn:
        # Create all tables (for development - use Alembic in production)
        await conn.run_sync(Base.metadata.create_all)
    manager = get_session_manager()
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started ({settings.ENVIRONMENT})")

    yield

    # Shutdown
    manager.stop()
    await close_redis()
    await async_engine.dispose()


app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Chit fund and microfinance back office",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(customers_router)
app.include_router(loans_router)
app.include_router(payments_router)
app.include_router(collections_router)
app.include_router(activities_router)
app.include_router(investors_router)
app.include_router(chit_groups_router)
app.include_router(admin_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }
