"""Rights Service - Main Application

Role-based access control for the beneficiary-records admin application:
access checks for the frontend and the settings screens that administer
pages, permissions, roles and user assignments.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from rights.core.config import settings
from rights.core.database import async_session_maker, engine, init_db
from rights.core.seed import seed_catalog
from rights.api import access, catalog, roles, users
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Rights Service...")
    await init_db()
    if settings.SEED_CATALOG:
        async with async_session_maker() as session:
            seeded = await seed_catalog(session)
        if seeded:
            logger.info(f"Seeded default catalog with {seeded} pages")

    yield

    # Shutdown
    logger.info("Shutting down Rights Service...")
    await engine.dispose()
    logger.info("Database connection closed")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Role-based access control for beneficiary records",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(access.router)
app.include_router(catalog.router)
app.include_router(roles.router)
app.include_router(users.router)


@app.get("/")
async def root():
    """Root endpoint with service information"""
    return {
        "service": settings.APP_NAME,
        "version": settings.VERSION,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rights.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
