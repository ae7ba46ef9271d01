"""
AOV Insights
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager

from aov_insights.config import get_settings
from aov_insights.utils.logger import log
from aov_insights import __version__

# Import routers
from aov_insights.api import health, aov

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    try:
        from aov_insights.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    yield

    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Order value analytics for e-commerce workspaces

    - Clusters orders into quantile value bands
    - Finds products frequently bought together (support, confidence, lift)
    - Ranks evidence-backed opportunities to raise average order value:
      free shipping thresholds, bundles, upsells and cross-sells
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(aov.router)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "status": "/status",
        "endpoints": {
            "analyze_workspace": "POST /aov/analyze",
            "analyze_orders": "POST /aov/analyze/orders",
            "list_analyses": "GET /aov/analyses?workspace_id=",
            "get_analysis": "GET /aov/analyses/{analysis_id}"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "aov_insights.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
