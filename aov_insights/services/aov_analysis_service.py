"""
AOV Analysis Service
Orchestrates order value clustering, product affinity and opportunity
synthesis into one AnalysisResult.

Pending -> ClusteringDone -> AffinityDone -> Synthesized -> Complete, with
Failed reachable from any stage on malformed input or a broken invariant and
Cancelled when the caller's token or deadline fires between stages. Failed and
cancelled results never carry partial statistics and are never persisted.
"""
import asyncio
import concurrent.futures
import dataclasses
import threading
import time
from typing import Iterable, List, Optional, Sequence

from aov_insights.config import get_settings
from aov_insights.ml.entities import (
    AnalysisOptions,
    AnalysisResult,
    AnalysisStage,
    AnalysisSummary,
    DateRange,
    Order,
    PriceContext,
    as_utc,
)
from aov_insights.ml.errors import (
    AnalysisCancelled,
    AOVAnalysisError,
    ComputationError,
    InsufficientDataWarning,
)
from aov_insights.ml.opportunity_synthesis import sort_opportunities, synthesize
from aov_insights.ml.order_clustering import check_cluster_invariants, cluster_orders
from aov_insights.ml.product_affinity import (
    check_affinity_invariants,
    compute_affinity,
    multi_item_order_count,
)
from aov_insights.ml.validation import validate_orders
from aov_insights.utils.logger import log

# Below this many orders results are shown with a low-confidence note
MIN_ORDERS_FOR_CONFIDENCE = 30


class CancellationToken:
    """Cooperative cancel flag with an optional deadline"""

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout_seconds if timeout_seconds else None

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self, stage: AnalysisStage):
        if self.is_cancelled:
            raise AnalysisCancelled(f"Analysis cancelled after stage '{stage.value}'")


class AOVAnalysisService:
    """
    Runs the order value analysis pipeline over a fixed order snapshot.

    Stateless between calls: every run builds its own inputs and outputs, so
    one instance can serve concurrent requests.
    """

    def __init__(self, repository=None, options: Optional[AnalysisOptions] = None):
        """
        Args:
            repository: optional persistence collaborator exposing
                save(result, **kwargs) -> analysis id
            options: defaults for runs that pass no options
        """
        self.repository = repository
        self.default_options = options or AnalysisOptions.from_settings(get_settings())

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def run(
        self,
        orders: Iterable[Order],
        options: Optional[AnalysisOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
        **save_kwargs,
    ) -> AnalysisResult:
        """Run the full pipeline synchronously and store a complete result"""
        result = self.analyze(orders, options, cancel_token)
        return self._persist_if_complete(result, **save_kwargs)

    async def run_async(
        self,
        orders: Iterable[Order],
        options: Optional[AnalysisOptions] = None,
        **save_kwargs,
    ) -> AnalysisResult:
        """
        Compute in a worker thread under the configured time limit, then store.

        Only the computation runs in the worker; storage happens on the
        caller's side once the result is back, so a timed-out run is never saved.
        """
        options = options or self.default_options
        token = CancellationToken()
        orders = list(orders)

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self.analyze, orders, options, token),
                timeout=options.timeout_seconds,
            )
        except asyncio.TimeoutError:
            token.cancel()
            message = f"Analysis cancelled: exceeded {options.timeout_seconds}s time limit"
            log.warning(message)
            return AnalysisResult(stage=AnalysisStage.CANCELLED, error=message)

        return self._persist_if_complete(result, **save_kwargs)

    def analyze(
        self,
        orders: Iterable[Order],
        options: Optional[AnalysisOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AnalysisResult:
        """Compute the analysis without storing it"""
        options = options or self.default_options
        token = cancel_token or CancellationToken()
        stage = AnalysisStage.PENDING

        try:
            orders = list(orders)
            validate_orders(orders)
            orders = self._filter_period(orders, options.date_range)

            log.info(f"Starting AOV analysis over {len(orders)} orders")
            context = PriceContext.from_orders(orders)

            clusters, affinities, stage = self._cluster_and_affinity(orders, options, token)

            check_cluster_invariants(clusters, len(orders))
            check_affinity_invariants(affinities)

            opportunities = synthesize(clusters, affinities, context, options.synthesis_config())
            stage = AnalysisStage.SYNTHESIZED
            if list(opportunities) != sort_opportunities(opportunities):
                raise ComputationError("Opportunities are not in priority order")

            result = AnalysisResult(
                summary=self._summary(orders, context, options.date_range),
                clusters=tuple(clusters),
                affinities=tuple(affinities),
                opportunities=tuple(opportunities),
                stage=AnalysisStage.COMPLETE,
                notes=tuple(self._data_notes(orders, affinities)),
            )
            token.raise_if_cancelled(AnalysisStage.SYNTHESIZED)

        except AnalysisCancelled as e:
            log.warning(str(e))
            return AnalysisResult(stage=AnalysisStage.CANCELLED, error=str(e))
        except AOVAnalysisError as e:
            log.error(f"AOV analysis failed at stage '{stage.value}': {str(e)}")
            return AnalysisResult(stage=AnalysisStage.FAILED, error=f"{e.reason}: {str(e)}")

        log.info(
            f"AOV analysis complete: {len(result.clusters)} clusters, "
            f"{len(result.affinities)} product pairs, {len(result.opportunities)} opportunities"
        )
        return result

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    def _cluster_and_affinity(
        self,
        orders: List[Order],
        options: AnalysisOptions,
        token: CancellationToken,
    ):
        """Fork clustering and affinity, join both before synthesis"""
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix="aov")
        try:
            cluster_future = pool.submit(cluster_orders, orders, options.cluster_config())
            affinity_future = pool.submit(compute_affinity, orders, options.affinity_config())

            clusters = cluster_future.result()
            stage = AnalysisStage.CLUSTERING_DONE
            token.raise_if_cancelled(stage)

            affinities = affinity_future.result()
            stage = AnalysisStage.AFFINITY_DONE
            token.raise_if_cancelled(stage)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return clusters, affinities, stage

    @staticmethod
    def _filter_period(orders: List[Order], date_range: DateRange) -> List[Order]:
        if date_range.is_open:
            return orders
        kept = [o for o in orders if date_range.contains(o.created_at)]
        if len(kept) != len(orders):
            log.info(f"Excluded {len(orders) - len(kept)} orders outside the analysis period")
        return kept

    @staticmethod
    def _summary(orders: Sequence[Order], context: PriceContext, date_range: DateRange) -> AnalysisSummary:
        dated = [o.created_at for o in orders if o.created_at is not None]
        start = date_range.start or (min(dated, key=as_utc) if dated else None)
        end = date_range.end or (max(dated, key=as_utc) if dated else None)

        return AnalysisSummary(
            total_orders=context.total_orders,
            total_revenue=context.total_revenue,
            average_order_value=context.average_order_value,
            median_order_value=context.median_order_value,
            currency=context.currency,
            period_start=start,
            period_end=end,
        )

    @staticmethod
    def _data_notes(orders: Sequence[Order], affinities) -> List[InsufficientDataWarning]:
        notes = []

        if not orders:
            notes.append(InsufficientDataWarning(
                InsufficientDataWarning.NO_ORDERS,
                "No orders in the selected period. Sync orders or widen the date range.",
            ))
            return notes

        if len(orders) < MIN_ORDERS_FOR_CONFIDENCE:
            notes.append(InsufficientDataWarning(
                InsufficientDataWarning.FEW_ORDERS,
                f"Only {len(orders)} orders analysed; results are low confidence "
                f"below {MIN_ORDERS_FOR_CONFIDENCE} orders.",
            ))

        if multi_item_order_count(orders) == 0:
            notes.append(InsufficientDataWarning(
                InsufficientDataWarning.NO_MULTI_ITEM_ORDERS,
                "No order contains more than one product, so there is no basket signal.",
            ))
        elif not affinities:
            notes.append(InsufficientDataWarning(
                InsufficientDataWarning.NO_AFFINITY_PAIRS,
                "No product pair was bought together often enough to report.",
            ))

        return notes

    def _persist_if_complete(self, result: AnalysisResult, **save_kwargs) -> AnalysisResult:
        if self.repository is None or not result.is_complete:
            return result
        try:
            analysis_id = self.repository.save(result, **save_kwargs)
        except Exception as e:
            log.error(f"Failed to save AOV analysis: {str(e)}")
            raise
        log.info(f"Saved AOV analysis {analysis_id}")
        return dataclasses.replace(result, analysis_id=analysis_id)


def run_aov_analysis(orders: Iterable[Order], options: Optional[AnalysisOptions] = None) -> AnalysisResult:
    """Convenience wrapper without persistence"""
    return AOVAnalysisService(options=options).run(orders, options)
