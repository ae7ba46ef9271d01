"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime
from aov_insights.config import get_settings
from aov_insights import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "analysis_defaults": {
            "min_confidence": settings.aov_min_confidence,
            "cluster_band_count": settings.aov_cluster_band_count,
            "max_affinity_pairs": settings.aov_max_affinity_pairs,
            "min_co_occurrence": settings.aov_min_co_occurrence,
            "timeout_seconds": settings.aov_analysis_timeout_seconds,
        },
        "timestamp": datetime.utcnow().isoformat()
    }
