"""
AOV analysis orchestration tests.

Covers:
  - end-to-end run over a realistic order set
  - empty and low-signal data (zeros plus notes, never an error)
  - malformed input and cancellation (no partial statistics)
  - period filtering and summary period
  - idempotence over an unchanged snapshot
  - persistence only for complete results
"""
import asyncio
import json
import threading
import time
from datetime import datetime, timezone

import pytest

from aov_insights.ml.entities import AnalysisOptions, AnalysisStage, DateRange
from aov_insights.ml.errors import InsufficientDataWarning
from aov_insights.services import aov_analysis_service as service_module
from aov_insights.services.aov_analysis_service import (
    AOVAnalysisService,
    CancellationToken,
    run_aov_analysis,
)


class RecordingRepository:
    """Stands in for AOVAnalysisRepository"""

    def __init__(self, analysis_id=7):
        self.analysis_id = analysis_id
        self.saved = []

    def save(self, result, **kwargs):
        self.saved.append((result, kwargs))
        return self.analysis_id


@pytest.fixture
def store_orders(make_order):
    """40 January orders: a tee+cap habit, a few big carts, some singles"""
    orders = []
    for i in range(40):
        created = datetime(2026, 1, 1 + i % 28, 12, 0)
        if i % 4 == 0:
            orders.append(make_order(i, 35.0, ["1", "2"], created_at=created, shipping=6.0))
        elif i % 4 == 1:
            orders.append(make_order(i, 38.0, ["1", "2", "3"], created_at=created, shipping=6.0))
        elif i % 4 == 2:
            orders.append(make_order(i, 22.0, ["4"], created_at=created, shipping=6.0))
        else:
            orders.append(make_order(i, 140.0, ["5", "3"], created_at=created, shipping=6.0))
    return orders


def _options(**overrides):
    return AnalysisOptions(**overrides)


# ────────────────────────────────────────────
# HAPPY PATH
# ────────────────────────────────────────────


class TestCompleteRun:

    def test_full_pipeline(self, store_orders):
        result = AOVAnalysisService(options=_options()).run(store_orders)

        assert result.status == "complete"
        assert result.stage == AnalysisStage.COMPLETE
        assert result.error is None
        assert result.summary.total_orders == 40
        assert result.summary.total_revenue == 2350.0
        assert result.summary.average_order_value == 58.75
        assert result.summary.currency == "USD"
        assert sum(c.order_count for c in result.clusters) == 40
        assert result.affinities
        assert result.opportunities
        assert not result.insufficient_data

    def test_summary_period_defaults_to_order_span(self, store_orders):
        result = run_aov_analysis(store_orders, _options())
        assert result.summary.period_start == datetime(2026, 1, 1, 12, 0)
        assert result.summary.period_end == datetime(2026, 1, 28, 12, 0)

    def test_result_is_idempotent(self, store_orders):
        service = AOVAnalysisService(options=_options())
        first = json.dumps(service.run(store_orders).to_dict(), sort_keys=True)
        second = json.dumps(service.run(store_orders).to_dict(), sort_keys=True)
        assert first == second

    def test_parallel_affinity_counting_gives_same_result(self, store_orders):
        serial = run_aov_analysis(store_orders, _options(affinity_workers=1))
        parallel = run_aov_analysis(store_orders, _options(affinity_workers=4, affinity_partition_size=7))
        assert serial.to_dict() == parallel.to_dict()

    def test_opportunities_in_priority_order(self, store_orders):
        result = run_aov_analysis(store_orders, _options())
        keys = [(o.priority, -o.confidence_score) for o in result.opportunities]
        assert keys == sorted(keys)


# ────────────────────────────────────────────
# LOW-SIGNAL DATA
# ────────────────────────────────────────────


class TestInsufficientData:

    def test_empty_orders_give_zeros(self):
        result = run_aov_analysis([], _options())

        assert result.status == "complete"
        assert result.summary.total_orders == 0
        assert result.summary.total_revenue == 0.0
        assert result.summary.average_order_value == 0.0
        assert result.clusters == ()
        assert result.affinities == ()
        assert result.opportunities == ()
        assert [n.code for n in result.notes] == [InsufficientDataWarning.NO_ORDERS]
        assert result.to_dict()["insufficientData"] is True

    def test_single_item_orders_note(self, make_order):
        orders = [make_order(i, 20 + i, ["1"]) for i in range(5)]
        result = run_aov_analysis(orders, _options())

        codes = [n.code for n in result.notes]
        assert InsufficientDataWarning.FEW_ORDERS in codes
        assert InsufficientDataWarning.NO_MULTI_ITEM_ORDERS in codes
        assert result.affinities == ()
        assert result.is_complete


# ────────────────────────────────────────────
# FAILURE AND CANCELLATION
# ────────────────────────────────────────────


class TestFailures:

    def test_invalid_order_fails_without_partial_data(self, store_orders, make_order):
        repository = RecordingRepository()
        orders = store_orders + [make_order("bad-1", -10.0, ["1"])]
        result = AOVAnalysisService(repository=repository, options=_options()).run(orders)

        assert result.status == "failed"
        assert result.error.startswith("invalid_input")
        assert "bad-1" in result.error
        assert result.clusters == ()
        assert result.affinities == ()
        assert result.opportunities == ()
        assert result.summary.total_orders == 0
        assert repository.saved == []

    def test_mixed_currencies_fail(self, make_order):
        orders = [make_order(1, 10.0, currency="USD"), make_order(2, 12.0, currency="EUR")]
        result = run_aov_analysis(orders, _options())
        assert result.status == "failed"

    def test_cancelled_token(self, store_orders):
        repository = RecordingRepository()
        token = CancellationToken()
        token.cancel()

        result = AOVAnalysisService(repository=repository, options=_options()).run(store_orders, cancel_token=token)

        assert result.status == "cancelled"
        assert result.stage == AnalysisStage.CANCELLED
        assert result.clusters == ()
        assert result.opportunities == ()
        assert repository.saved == []

    def test_token_deadline(self):
        token = CancellationToken(timeout_seconds=0.01)
        assert not token.is_cancelled
        time.sleep(0.02)
        assert token.is_cancelled


# ────────────────────────────────────────────
# PERIOD FILTER
# ────────────────────────────────────────────


class TestPeriod:

    def test_orders_outside_range_are_excluded(self, make_order):
        orders = [
            make_order(1, 30.0, created_at=datetime(2026, 1, 5)),
            make_order(2, 50.0, created_at=datetime(2026, 1, 31, 23, 59)),
            make_order(3, 70.0, created_at=datetime(2026, 3, 2)),
        ]
        options = _options(date_range=DateRange(datetime(2026, 1, 1), datetime(2026, 1, 31, 23, 59)))
        result = run_aov_analysis(orders, options)

        assert result.summary.total_orders == 2
        assert result.summary.total_revenue == 80.0
        assert result.summary.period_start == datetime(2026, 1, 1)

    def test_aware_range_against_naive_orders(self, make_order):
        orders = [
            make_order(1, 30.0, created_at=datetime(2026, 2, 1)),
            make_order(2, 50.0, created_at=datetime(2026, 2, 10, tzinfo=timezone.utc)),
        ]
        options = _options(date_range=DateRange(start=datetime(2026, 2, 5, tzinfo=timezone.utc)))
        result = run_aov_analysis(orders, options)
        assert result.summary.total_orders == 1


# ────────────────────────────────────────────
# PERSISTENCE HOOK AND ASYNC
# ────────────────────────────────────────────


class TestPersistence:

    def test_complete_result_is_saved(self, store_orders):
        repository = RecordingRepository(analysis_id=42)
        service = AOVAnalysisService(repository=repository, options=_options())
        result = service.run(store_orders, workspace_id="ws-1")

        assert result.analysis_id == 42
        assert len(repository.saved) == 1
        saved, kwargs = repository.saved[0]
        assert saved.is_complete
        assert kwargs == {"workspace_id": "ws-1"}

    def test_run_async(self, store_orders):
        repository = RecordingRepository()
        service = AOVAnalysisService(repository=repository, options=_options(timeout_seconds=30))
        result = asyncio.run(service.run_async(store_orders, workspace_id="ws-2"))

        assert result.is_complete
        assert result.analysis_id == 7
        assert repository.saved[0][1] == {"workspace_id": "ws-2"}

    def test_analyze_never_saves(self, store_orders):
        repository = RecordingRepository()
        result = AOVAnalysisService(repository=repository, options=_options()).analyze(store_orders)

        assert result.is_complete
        assert result.analysis_id is None
        assert repository.saved == []


class SlowRepository(RecordingRepository):
    """save() that takes longer than the analysis time limit"""

    def save(self, result, **kwargs):
        time.sleep(1.2)
        return super().save(result, **kwargs)


class TestTimeout:

    def test_timed_out_run_is_never_saved(self, store_orders, monkeypatch):
        real_synthesize = service_module.synthesize

        def slow_synthesize(*args, **kwargs):
            time.sleep(0.4)
            return real_synthesize(*args, **kwargs)

        monkeypatch.setattr(service_module, "synthesize", slow_synthesize)

        repository = RecordingRepository()
        service = AOVAnalysisService(repository=repository, options=_options(timeout_seconds=0.1))
        result = asyncio.run(service.run_async(store_orders, workspace_id="ws-1"))

        assert result.status == "cancelled"
        assert result.clusters == ()
        # give the abandoned worker time to reach its last stage
        time.sleep(0.6)
        assert repository.saved == []

    def test_slow_save_does_not_turn_into_cancellation(self, store_orders):
        repository = SlowRepository(analysis_id=11)
        service = AOVAnalysisService(repository=repository, options=_options(timeout_seconds=1.0))
        result = asyncio.run(service.run_async(store_orders, workspace_id="ws-1"))

        assert result.status == "complete"
        assert result.analysis_id == 11
        assert len(repository.saved) == 1

    def test_save_runs_on_the_calling_thread(self, store_orders):
        threads = []

        class ThreadRecordingRepository(RecordingRepository):
            def save(self, result, **kwargs):
                threads.append(threading.get_ident())
                return super().save(result, **kwargs)

        async def _run():
            service = AOVAnalysisService(repository=ThreadRecordingRepository(), options=_options(timeout_seconds=30))
            result = await service.run_async(store_orders)
            return result, threading.get_ident()

        result, loop_thread = asyncio.run(_run())

        assert result.is_complete
        assert threads == [loop_thread]
