"""
SynDataGen API - Main application entry point.

Projects, data generation jobs and the customer admin console.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from syndata.auth.views import router as auth_router
from syndata.core.config import get_settings
from syndata.core.database import Database
from syndata.core.logging_config import configure_logging
from syndata.core.middleware import MaxBodySizeMiddleware, unhandled_exception_handler
from syndata.customers.views import router as customers_router
from syndata.datasets.views import router as datasets_router
from syndata.jobs.views import project_jobs_router
from syndata.jobs.views import router as jobs_router
from syndata.pipeline.webhook import router as pipeline_router
from syndata.projects.views import router as projects_router

settings = get_settings()
API_PREFIX = "/api/v1"

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    await Database.connect()
    yield
    # Shutdown
    await Database.disconnect()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
## SynDataGen API

Backend for the synthetic data generation platform.

### Features

- **Projects**: team-scoped workspaces with their own storage bucket
- **Jobs**: create, submit, track and cancel data generation jobs
- **Datasets**: upload, preview and chat with project datasets
- **Customers**: admin console with audit trail and per-customer cloud identities
    """,
    lifespan=lifespan,
    docs_url=f"{API_PREFIX}/docs",
    redoc_url=f"{API_PREFIX}/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(MaxBodySizeMiddleware)
app.add_exception_handler(Exception, unhandled_exception_handler)

# Include routers
routers = [
    auth_router,
    projects_router,
    project_jobs_router,
    datasets_router,
    jobs_router,
    pipeline_router,
    customers_router,
]

for router in routers:
    app.include_router(router, prefix=API_PREFIX)


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "connected" if Database.client else "disconnected",
        "version": settings.APP_VERSION,
    }
