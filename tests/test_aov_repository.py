"""
AOV analysis storage tests (in-memory SQLite).

A stored analysis must read back in the same shape the service returned,
child rows in their original order, and only complete results are stored.
"""
from datetime import datetime

import pytest

from aov_insights.ml.entities import AnalysisOptions, AnalysisResult, AnalysisStage
from aov_insights.models.aov import AOVAnalysis, AOVOpportunity, OrderCluster
from aov_insights.services.aov_analysis_service import AOVAnalysisService
from aov_insights.services.aov_repository import AOVAnalysisRepository


@pytest.fixture
def january_orders(make_order):
    orders = []
    for i in range(24):
        created = datetime(2026, 1, 1 + i, 9, 30)
        if i % 3 == 0:
            orders.append(make_order(i, 42.0, ["11", "12"], created_at=created, shipping=5.0))
        elif i % 3 == 1:
            orders.append(make_order(i, 29.0, ["11"], created_at=created, shipping=5.0))
        else:
            orders.append(make_order(i, 95.0, ["11", "12", "13"], created_at=created, shipping=5.0))
    return orders


def _stored_shape(payload):
    payload = dict(payload)
    payload.pop("createdAt", None)
    payload["opportunities"] = [
        {k: v for k, v in o.items() if k != "status"} for o in payload["opportunities"]
    ]
    return payload


# ────────────────────────────────────────────
# SAVE / READ BACK
# ────────────────────────────────────────────


class TestRepositoryRoundTrip:

    def test_saved_analysis_reads_back_in_result_shape(self, db_session, january_orders):
        repository = AOVAnalysisRepository(db_session)
        result = AOVAnalysisService(repository=repository, options=AnalysisOptions()).run(
            january_orders, workspace_id="ws-1", parameters={"min_confidence": 0.3}
        )

        assert result.analysis_id is not None
        stored = repository.get(result.analysis_id)

        assert stored.workspace_id == "ws-1"
        assert stored.parameters == {"min_confidence": 0.3}
        assert _stored_shape(repository.to_dict(stored)) == result.to_dict()

    def test_child_rows_keep_order_and_workspace(self, db_session, january_orders):
        repository = AOVAnalysisRepository(db_session)
        result = AOVAnalysisService(repository=repository, options=AnalysisOptions()).run(
            january_orders, workspace_id="ws-1"
        )

        clusters = (
            db_session.query(OrderCluster)
            .filter(OrderCluster.analysis_id == result.analysis_id)
            .order_by(OrderCluster.position)
            .all()
        )
        assert [c.cluster_name for c in clusters] == [c.name for c in result.clusters]
        assert {c.workspace_id for c in clusters} == {"ws-1"}

        opportunities = db_session.query(AOVOpportunity).filter(
            AOVOpportunity.analysis_id == result.analysis_id
        ).all()
        assert len(opportunities) == len(result.opportunities)
        assert {o.status for o in opportunities} == {"open"}

    def test_get_is_scoped_to_workspace(self, db_session, january_orders):
        repository = AOVAnalysisRepository(db_session)
        result = AOVAnalysisService(repository=repository, options=AnalysisOptions()).run(
            january_orders, workspace_id="ws-1"
        )

        assert repository.get(result.analysis_id, workspace_id="ws-1") is not None
        assert repository.get(result.analysis_id, workspace_id="ws-2") is None

    def test_list_newest_first(self, db_session, january_orders):
        repository = AOVAnalysisRepository(db_session)
        service = AOVAnalysisService(repository=repository, options=AnalysisOptions())
        first = service.run(january_orders, workspace_id="ws-1")
        second = service.run(january_orders[:10], workspace_id="ws-1")
        service.run(january_orders, workspace_id="ws-other")

        rows = repository.list_for_workspace("ws-1")
        assert [r.id for r in rows] == [second.analysis_id, first.analysis_id]


# ────────────────────────────────────────────
# REFUSALS
# ────────────────────────────────────────────


class TestRepositoryRefusals:

    def test_failed_result_is_not_stored(self, db_session):
        repository = AOVAnalysisRepository(db_session)
        failed = AnalysisResult(stage=AnalysisStage.FAILED, error="invalid_input: bad order")

        with pytest.raises(ValueError):
            repository.save(failed, workspace_id="ws-1")
        assert db_session.query(AOVAnalysis).count() == 0

    def test_service_never_stores_failed_run(self, db_session, make_order):
        repository = AOVAnalysisRepository(db_session)
        result = AOVAnalysisService(repository=repository, options=AnalysisOptions()).run(
            [make_order(1, -3.0)], workspace_id="ws-1"
        )

        assert result.status == "failed"
        assert db_session.query(AOVAnalysis).count() == 0
