"""
AOV Analysis Repository
Persists completed analyses and reads them back in the result shape.
"""
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from aov_insights.ml.entities import AnalysisResult
from aov_insights.models.aov import AOVAnalysis, AOVOpportunity, OrderCluster, ProductAffinity
from aov_insights.utils.logger import log


class AOVAnalysisRepository:
    """SQLAlchemy-backed storage for AnalysisResult"""

    def __init__(self, db: Session):
        self.db = db

    def save(
        self,
        result: AnalysisResult,
        workspace_id: str,
        connection_id: Optional[str] = None,
        parameters: Optional[Dict] = None,
    ) -> int:
        """Write the analysis and its child rows in one transaction"""
        if not result.is_complete:
            raise ValueError(f"Refusing to persist a {result.status} analysis")

        summary = result.summary
        analysis = AOVAnalysis(
            workspace_id=workspace_id,
            connection_id=connection_id,
            total_orders=summary.total_orders,
            total_revenue=summary.total_revenue,
            average_order_value=summary.average_order_value,
            median_order_value=summary.median_order_value,
            currency=summary.currency,
            period_start=summary.period_start,
            period_end=summary.period_end,
            parameters=parameters,
            notes=[note.to_dict() for note in result.notes],
        )

        for position, cluster in enumerate(result.clusters):
            analysis.clusters.append(OrderCluster(
                workspace_id=workspace_id, position=position, **cluster.to_dict()
            ))
        for position, pair in enumerate(result.affinities):
            analysis.affinities.append(ProductAffinity(
                workspace_id=workspace_id, position=position, **pair.to_dict()
            ))
        for position, opportunity in enumerate(result.opportunities):
            analysis.opportunities.append(AOVOpportunity(
                workspace_id=workspace_id, position=position, **opportunity.to_dict()
            ))

        try:
            self.db.add(analysis)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        log.info(
            f"Stored AOV analysis {analysis.id} for workspace {workspace_id}: "
            f"{len(result.clusters)} clusters, {len(result.affinities)} affinities, "
            f"{len(result.opportunities)} opportunities"
        )
        return analysis.id

    def get(self, analysis_id: int, workspace_id: Optional[str] = None) -> Optional[AOVAnalysis]:
        query = self.db.query(AOVAnalysis).filter(AOVAnalysis.id == analysis_id)
        if workspace_id is not None:
            query = query.filter(AOVAnalysis.workspace_id == workspace_id)
        return query.first()

    def list_for_workspace(self, workspace_id: str, limit: int = 20) -> List[AOVAnalysis]:
        return (
            self.db.query(AOVAnalysis)
            .filter(AOVAnalysis.workspace_id == workspace_id)
            .order_by(AOVAnalysis.created_at.desc(), AOVAnalysis.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def to_dict(analysis: AOVAnalysis) -> Dict:
        """Stored analysis in the same shape AnalysisResult.to_dict() produces"""
        return {
            "analysisId": analysis.id,
            "status": "complete",
            "stage": "complete",
            "error": None,
            "insufficientData": bool(analysis.notes),
            "notes": analysis.notes or [],
            "createdAt": analysis.created_at.isoformat() if analysis.created_at else None,
            "summary": {
                "totalOrders": analysis.total_orders,
                "totalRevenue": analysis.total_revenue,
                "averageOrderValue": analysis.average_order_value,
                "medianOrderValue": analysis.median_order_value,
                "currency": analysis.currency,
                "period": {
                    "start": analysis.period_start.isoformat() if analysis.period_start else None,
                    "end": analysis.period_end.isoformat() if analysis.period_end else None,
                },
            },
            "clusters": [
                {
                    "cluster_name": c.cluster_name,
                    "min_value": c.min_value,
                    "max_value": c.max_value,
                    "order_count": c.order_count,
                    "percentage": c.percentage,
                    "avg_order_value": c.avg_order_value,
                    "total_revenue": c.total_revenue,
                }
                for c in analysis.clusters
            ],
            "productAffinities": [
                {
                    "product_a_id": a.product_a_id,
                    "product_a_title": a.product_a_title,
                    "product_b_id": a.product_b_id,
                    "product_b_title": a.product_b_title,
                    "co_occurrence_count": a.co_occurrence_count,
                    "confidence": a.confidence,
                    "lift": a.lift,
                }
                for a in analysis.affinities
            ],
            "opportunities": [
                {
                    "opportunity_type": o.opportunity_type,
                    "title": o.title,
                    "description": o.description,
                    "potential_impact": o.potential_impact,
                    "priority": o.priority,
                    "confidence_score": o.confidence_score,
                    "data_support": o.data_support,
                    "status": o.status,
                }
                for o in analysis.opportunities
            ],
        }
