"""
Order Value Analysis Entities

Immutable input records (Order, LineItem), engine configuration, and the
derived outputs (Cluster, AffinityPair, Opportunity, AnalysisResult).
Serialized field names are the stable contract consumed by storage and the
dashboard, so to_dict() keys must not change.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as date_parser

from aov_insights.ml.errors import InputError, InsufficientDataWarning


def _to_float(value: Any, what: str, order_id: Optional[str] = None) -> float:
    """Parse a money value (str, int, float, Decimal) into float"""
    if value is None or value == "":
        raise InputError(f"Missing {what}", order_id=order_id)
    try:
        return float(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        raise InputError(f"Invalid {what}: {value!r}", order_id=order_id)


def as_utc(moment: datetime) -> datetime:
    """Naive timestamps are treated as UTC so they compare with aware ones"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return date_parser.isoparse(str(value))


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LineItem:
    product_id: str
    title: str
    quantity: int
    unit_price: float

    @classmethod
    def from_dict(cls, data: Dict, order_id: Optional[str] = None) -> "LineItem":
        product_id = data.get("product_id")
        quantity = data.get("quantity", 1)
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise InputError(f"Invalid line item quantity: {quantity!r}", order_id=order_id)
        price = data.get("unit_price", data.get("price"))
        return cls(
            product_id=str(product_id) if product_id not in (None, "") else "",
            title=data.get("title") or data.get("product_title") or "",
            quantity=quantity,
            unit_price=_to_float(price, "line item price", order_id) if price is not None else 0.0,
        )


@dataclass(frozen=True)
class Order:
    """Normalized order snapshot. Never mutated by the engine."""
    id: str
    total_price: float
    currency: str = "USD"
    created_at: Optional[datetime] = None
    line_items: Tuple[LineItem, ...] = ()
    shipping_price: Optional[float] = None
    financial_status: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "Order":
        """Build from a Shopify-style order payload"""
        order_id = data.get("id", data.get("order_id"))
        order_id = str(order_id) if order_id not in (None, "") else ""
        shipping = data.get("shipping_price", data.get("total_shipping"))
        return cls(
            id=order_id,
            total_price=_to_float(data.get("total_price"), "total_price", order_id),
            currency=(data.get("currency") or "USD").upper(),
            created_at=_parse_datetime(data.get("created_at")),
            line_items=tuple(
                LineItem.from_dict(item, order_id) for item in (data.get("line_items") or [])
            ),
            shipping_price=_to_float(shipping, "shipping_price", order_id) if shipping is not None else None,
            financial_status=data.get("financial_status"),
        )

    @property
    def product_ids(self) -> Tuple[str, ...]:
        """Distinct product ids in first-seen order"""
        return tuple(dict.fromkeys(item.product_id for item in self.line_items))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DateRange:
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, moment: Optional[datetime]) -> bool:
        """Inclusive on both ends; undated orders are kept"""
        if moment is None:
            return True
        moment = as_utc(moment)
        if self.start is not None and moment < as_utc(self.start):
            return False
        if self.end is not None and moment > as_utc(self.end):
            return False
        return True

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None


@dataclass(frozen=True)
class ClusterConfig:
    band_count: int = 5


@dataclass(frozen=True)
class AffinityConfig:
    min_confidence: float = 0.3
    max_pairs: int = 20
    min_co_occurrence: int = 3
    workers: int = 1
    partition_size: int = 5000


@dataclass(frozen=True)
class SynthesisConfig:
    strong_lift: float = 2.0
    min_confidence: float = 0.3
    free_shipping_min_share: float = 0.2
    near_threshold_window: float = 0.2  # "just below" = within 20% under the threshold
    threshold_step: float = 5.0
    upsell_skew: float = 1.5


@dataclass(frozen=True)
class AnalysisOptions:
    """Caller-facing knobs for one analysis run"""
    date_range: DateRange = field(default_factory=DateRange)
    min_confidence: float = 0.3
    cluster_band_count: int = 5
    max_affinity_pairs: int = 20
    min_co_occurrence: int = 3
    strong_lift: float = 2.0
    free_shipping_min_share: float = 0.2
    upsell_skew: float = 1.5
    affinity_workers: int = 1
    affinity_partition_size: int = 5000
    timeout_seconds: Optional[float] = None

    @classmethod
    def from_settings(cls, settings, **overrides) -> "AnalysisOptions":
        """Defaults from application settings; None overrides are ignored"""
        values = {
            "min_confidence": settings.aov_min_confidence,
            "cluster_band_count": settings.aov_cluster_band_count,
            "max_affinity_pairs": settings.aov_max_affinity_pairs,
            "min_co_occurrence": settings.aov_min_co_occurrence,
            "strong_lift": settings.aov_strong_lift,
            "free_shipping_min_share": settings.aov_free_shipping_min_share,
            "upsell_skew": settings.aov_upsell_skew,
            "affinity_workers": settings.aov_affinity_workers,
            "affinity_partition_size": settings.aov_affinity_partition_size,
            "timeout_seconds": settings.aov_analysis_timeout_seconds,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def cluster_config(self) -> ClusterConfig:
        return ClusterConfig(band_count=self.cluster_band_count)

    def affinity_config(self) -> AffinityConfig:
        return AffinityConfig(
            min_confidence=self.min_confidence,
            max_pairs=self.max_affinity_pairs,
            min_co_occurrence=self.min_co_occurrence,
            workers=self.affinity_workers,
            partition_size=self.affinity_partition_size,
        )

    def synthesis_config(self) -> SynthesisConfig:
        return SynthesisConfig(
            strong_lift=self.strong_lift,
            min_confidence=self.min_confidence,
            free_shipping_min_share=self.free_shipping_min_share,
            upsell_skew=self.upsell_skew,
        )


@dataclass(frozen=True)
class PriceContext:
    """Order-level pricing facts the synthesizer needs beyond clusters"""
    total_orders: int = 0
    total_revenue: float = 0.0
    average_order_value: float = 0.0
    median_order_value: float = 0.0
    currency: str = "USD"
    order_values: Tuple[float, ...] = ()  # sorted ascending
    average_shipping: Optional[float] = None  # None when no order reports shipping

    @classmethod
    def from_orders(cls, orders) -> "PriceContext":
        orders = list(orders)
        if not orders:
            return cls()
        values = tuple(sorted(o.total_price for o in orders))
        total_revenue = round(sum(values), 2)
        shipping = [o.shipping_price for o in orders if o.shipping_price is not None]
        return cls(
            total_orders=len(values),
            total_revenue=total_revenue,
            average_order_value=round(total_revenue / len(values), 2),
            median_order_value=_median(values),
            currency=orders[0].currency,
            order_values=values,
            average_shipping=round(sum(shipping) / len(shipping), 2) if shipping else None,
        )


def _median(sorted_values: Tuple[float, ...]) -> float:
    n = len(sorted_values)
    if n == 0:
        return 0.0
    mid = n // 2
    if n % 2:
        return round(sorted_values[mid], 2)
    return round((sorted_values[mid - 1] + sorted_values[mid]) / 2, 2)


# ---------------------------------------------------------------------------
# Derived outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Cluster:
    name: str
    min_value: float
    max_value: Optional[float]  # None for the open-ended top band
    order_count: int
    percentage: float
    avg_order_value: float
    total_revenue: float

    def to_dict(self) -> Dict:
        return {
            "cluster_name": self.name,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "order_count": self.order_count,
            "percentage": self.percentage,
            "avg_order_value": self.avg_order_value,
            "total_revenue": self.total_revenue,
        }


@dataclass(frozen=True)
class AffinityPair:
    product_a_id: str
    product_a_title: str
    product_b_id: str
    product_b_title: str
    co_occurrence_count: int
    confidence: float  # P(B|A) in the canonical direction
    lift: float

    @property
    def key(self) -> frozenset:
        return frozenset((self.product_a_id, self.product_b_id))

    def to_dict(self) -> Dict:
        return {
            "product_a_id": self.product_a_id,
            "product_a_title": self.product_a_title,
            "product_b_id": self.product_b_id,
            "product_b_title": self.product_b_title,
            "co_occurrence_count": self.co_occurrence_count,
            "confidence": self.confidence,
            "lift": self.lift,
        }


class OpportunityType(str, Enum):
    FREE_SHIPPING = "free_shipping"
    BUNDLE = "bundle"
    UPSELL = "upsell"
    CROSS_SELL = "cross_sell"


@dataclass(frozen=True)
class Opportunity:
    opportunity_type: OpportunityType
    title: str
    description: str
    potential_impact: str
    priority: int  # 1 = highest
    confidence_score: float
    data_support: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "opportunity_type": self.opportunity_type.value,
            "title": self.title,
            "description": self.description,
            "potential_impact": self.potential_impact,
            "priority": self.priority,
            "confidence_score": self.confidence_score,
            "data_support": dict(self.data_support),
        }


class AnalysisStage(str, Enum):
    PENDING = "pending"
    CLUSTERING_DONE = "clustering_done"
    AFFINITY_DONE = "affinity_done"
    SYNTHESIZED = "synthesized"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AnalysisSummary:
    total_orders: int = 0
    total_revenue: float = 0.0
    average_order_value: float = 0.0
    median_order_value: float = 0.0
    currency: str = "USD"
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "totalOrders": self.total_orders,
            "totalRevenue": self.total_revenue,
            "averageOrderValue": self.average_order_value,
            "medianOrderValue": self.median_order_value,
            "currency": self.currency,
            "period": {
                "start": self.period_start.isoformat() if self.period_start else None,
                "end": self.period_end.isoformat() if self.period_end else None,
            },
        }


@dataclass(frozen=True)
class AnalysisResult:
    summary: AnalysisSummary = field(default_factory=AnalysisSummary)
    clusters: Tuple[Cluster, ...] = ()
    affinities: Tuple[AffinityPair, ...] = ()
    opportunities: Tuple[Opportunity, ...] = ()
    stage: AnalysisStage = AnalysisStage.PENDING
    error: Optional[str] = None
    notes: Tuple[InsufficientDataWarning, ...] = ()
    analysis_id: Optional[int] = None  # set once persisted

    @property
    def status(self) -> str:
        if self.stage in (AnalysisStage.FAILED, AnalysisStage.CANCELLED):
            return self.stage.value
        return "complete" if self.stage == AnalysisStage.COMPLETE else "running"

    @property
    def is_complete(self) -> bool:
        return self.stage == AnalysisStage.COMPLETE

    @property
    def insufficient_data(self) -> bool:
        return bool(self.notes)

    def to_dict(self) -> Dict:
        return {
            "analysisId": self.analysis_id,
            "status": self.status,
            "stage": self.stage.value,
            "error": self.error,
            "insufficientData": self.insufficient_data,
            "notes": [note.to_dict() for note in self.notes],
            "summary": self.summary.to_dict(),
            "clusters": [c.to_dict() for c in self.clusters],
            "productAffinities": [a.to_dict() for a in self.affinities],
            "opportunities": [o.to_dict() for o in self.opportunities],
        }


def orders_from_dicts(rows: List[Dict]) -> List[Order]:
    """Parse a list of order payloads, tagging parse failures with their index"""
    orders = []
    for index, row in enumerate(rows):
        try:
            orders.append(Order.from_dict(row))
        except InputError as e:
            if e.index is None:
                raise InputError(str(e), index=index) from e
            raise
    return orders
