"""
AOV Analysis API Routes

Endpoints for order value analysis:
- Run an analysis over a workspace's synced paid orders (stored)
- Run an analysis over orders posted in the request (not stored)
- List and fetch stored analyses
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from aov_insights.config import get_settings
from aov_insights.ml.entities import AnalysisOptions, AnalysisResult, AnalysisStage, DateRange, orders_from_dicts
from aov_insights.ml.errors import InputError
from aov_insights.models.base import get_db
from aov_insights.services.aov_analysis_service import AOVAnalysisService
from aov_insights.services.aov_repository import AOVAnalysisRepository
from aov_insights.services.order_loader import OrderSetLoader
from aov_insights.utils.logger import log

settings = get_settings()

router = APIRouter(prefix="/aov", tags=["aov"])


class DateRangeIn(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class AnalysisParams(BaseModel):
    date_range: Optional[DateRangeIn] = None
    min_confidence: Optional[float] = Field(None, ge=0, le=1)
    cluster_band_count: Optional[int] = Field(None, ge=1, le=20)
    max_affinity_pairs: Optional[int] = Field(None, ge=1, le=200)

    def to_options(self) -> AnalysisOptions:
        date_range = DateRange()
        if self.date_range:
            date_range = DateRange(start=self.date_range.start, end=self.date_range.end)
        return AnalysisOptions.from_settings(
            settings,
            date_range=date_range,
            min_confidence=self.min_confidence,
            cluster_band_count=self.cluster_band_count,
            max_affinity_pairs=self.max_affinity_pairs,
        )


class WorkspaceAnalysisRequest(AnalysisParams):
    workspace_id: str
    connection_id: Optional[str] = None


class OrdersAnalysisRequest(AnalysisParams):
    orders: List[dict]


def _raise_for_status(result: AnalysisResult):
    """Map failed/cancelled runs onto HTTP errors"""
    if result.stage == AnalysisStage.CANCELLED:
        raise HTTPException(status_code=504, detail=result.error)
    if result.stage == AnalysisStage.FAILED:
        status = 422 if result.error and result.error.startswith(InputError.reason) else 500
        raise HTTPException(status_code=status, detail=result.error)


@router.post("/analyze")
async def analyze_workspace(request: WorkspaceAnalysisRequest, db: Session = Depends(get_db)) -> Dict:
    """
    Run AOV analysis over the workspace's paid orders and store the result
    """
    options = request.to_options()
    try:
        orders = OrderSetLoader(db).load(
            request.workspace_id,
            date_range=options.date_range,
            connection_id=request.connection_id,
        )
    except InputError as e:
        log.warning(f"Synced orders for workspace {request.workspace_id} are malformed: {str(e)}")
        raise HTTPException(status_code=422, detail=f"{e.reason}: {str(e)}")

    service = AOVAnalysisService(repository=AOVAnalysisRepository(db), options=options)
    result = await service.run_async(
        orders,
        options,
        workspace_id=request.workspace_id,
        connection_id=request.connection_id,
        parameters={
            "min_confidence": options.min_confidence,
            "cluster_band_count": options.cluster_band_count,
            "max_affinity_pairs": options.max_affinity_pairs,
        },
    )
    _raise_for_status(result)
    return result.to_dict()


@router.post("/analyze/orders")
async def analyze_orders(request: OrdersAnalysisRequest) -> Dict:
    """
    Run AOV analysis over orders supplied in the request body (not stored)
    """
    try:
        orders = orders_from_dicts(request.orders)
    except InputError as e:
        log.warning(f"Rejected order payload: {str(e)}")
        raise HTTPException(status_code=422, detail=f"{e.reason}: {str(e)}")

    options = request.to_options()
    result = await AOVAnalysisService(options=options).run_async(orders, options)
    _raise_for_status(result)
    return result.to_dict()


@router.get("/analyses")
async def list_analyses(
    workspace_id: str = Query(..., description="Workspace to list analyses for"),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
) -> Dict:
    """Stored analyses, newest first"""
    rows = AOVAnalysisRepository(db).list_for_workspace(workspace_id, limit=limit)
    return {
        "workspace_id": workspace_id,
        "analyses": [
            {
                "analysisId": row.id,
                "createdAt": row.created_at.isoformat() if row.created_at else None,
                "totalOrders": row.total_orders,
                "averageOrderValue": row.average_order_value,
                "currency": row.currency,
            }
            for row in rows
        ],
    }


@router.get("/analyses/{analysis_id}")
async def get_analysis(
    analysis_id: int,
    workspace_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
) -> Dict:
    """Stored analysis in the result shape"""
    repository = AOVAnalysisRepository(db)
    analysis = repository.get(analysis_id, workspace_id=workspace_id)
    if analysis is None:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return repository.to_dict(analysis)
