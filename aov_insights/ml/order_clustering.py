"""
Order Value Clustering
Partitions orders into value bands cut at observed quantiles so each band is
populated even when the order-value distribution is heavily skewed.
"""
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from aov_insights.ml.entities import Cluster, ClusterConfig, Order
from aov_insights.ml.errors import ComputationError, InputError
from aov_insights.ml.validation import validate_order_totals
from aov_insights.utils.helpers import format_money_label
from aov_insights.utils.logger import log

PERCENTAGE_TOLERANCE = 0.1


def compute_cut_points(values: Sequence[float], band_count: int) -> List[float]:
    """
    Upper bounds of every band except the last.

    Cut points are observed order values (inverted-CDF quantiles), so the band
    ending at a cut always contains that order. Duplicates and cuts equal to
    the maximum are dropped, which collapses the band count when there are
    fewer distinct prices than bands.
    """
    if len(values) == 0 or band_count <= 1:
        return []

    arr = np.asarray(values, dtype=float)
    quantiles = [k / band_count for k in range(1, band_count)]
    raw_cuts = np.quantile(arr, quantiles, method="inverted_cdf")
    top = arr.max()

    return sorted({float(c) for c in raw_cuts if c < top})


def assign_bands(values: Sequence[float], cut_points: Sequence[float]) -> np.ndarray:
    """Band index per value; a value equal to a cut belongs to the lower band"""
    return np.searchsorted(np.asarray(cut_points, dtype=float), np.asarray(values, dtype=float), side="left")


def band_label(min_value: float, max_value: Optional[float], currency: str = "USD") -> str:
    if max_value is None:
        return f"{format_money_label(min_value, currency)}+"
    return f"{format_money_label(min_value, currency)}–{format_money_label(max_value, currency)}"


def rounded_percentages(counts: Sequence[int], total: int) -> List[float]:
    """
    Shares of total as percentages with two decimals that sum to exactly 100.

    Largest-remainder rounding in hundredths of a percent: every share is
    floored, then the leftover hundredths go to the largest remainders
    (earlier bands first on ties).
    """
    if total <= 0:
        return [0.0 for _ in counts]

    scale = 100 * 100
    floors = [count * scale // total for count in counts]
    remainders = [count * scale % total for count in counts]
    leftover = scale - sum(floors)

    by_remainder = sorted(range(len(counts)), key=lambda i: (-remainders[i], i))
    for i in by_remainder[:leftover]:
        floors[i] += 1

    return [units / 100 for units in floors]


def cluster_orders(orders: Sequence[Order], config: Optional[ClusterConfig] = None) -> List[Cluster]:
    """
    Cluster orders into quantile value bands.

    Returns an empty list for an empty order set. Raises InputError for a
    missing id or negative total, ComputationError if the bands do not
    partition the orders.
    """
    config = config or ClusterConfig()
    if config.band_count < 1:
        raise InputError(f"Band count must be at least 1, got {config.band_count}")

    if not orders:
        log.warning("No orders to cluster")
        return []

    validate_order_totals(orders)

    currency = orders[0].currency
    values = [float(o.total_price) for o in orders]
    cut_points = compute_cut_points(values, config.band_count)

    df = pd.DataFrame({"value": values, "band": assign_bands(values, cut_points)})
    grouped = df.groupby("band")["value"].agg(["count", "sum"]).sort_index()

    total_orders = len(values)
    bounds = [0.0] + list(cut_points)
    percentages = rounded_percentages([int(c) for c in grouped["count"]], total_orders)
    clusters = []

    for (band, row), percentage in zip(grouped.iterrows(), percentages):
        band = int(band)
        min_value = bounds[band]
        max_value = cut_points[band] if band < len(cut_points) else None
        order_count = int(row["count"])
        revenue = float(row["sum"])

        clusters.append(Cluster(
            name=band_label(min_value, max_value, currency),
            min_value=round(min_value, 2),
            max_value=round(max_value, 2) if max_value is not None else None,
            order_count=order_count,
            percentage=percentage,
            avg_order_value=round(revenue / order_count, 2),
            total_revenue=round(revenue, 2),
        ))

    check_cluster_invariants(clusters, total_orders)

    log.info(f"Clustered {total_orders} orders into {len(clusters)} value bands")
    return clusters


def check_cluster_invariants(clusters: Sequence[Cluster], total_orders: int) -> None:
    """Exact partition, percentages summing to 100, contiguous ascending bounds"""
    if total_orders == 0:
        if clusters:
            raise ComputationError("Clusters produced for an empty order set")
        return

    counted = sum(c.order_count for c in clusters)
    if counted != total_orders:
        raise ComputationError(f"Clusters hold {counted} orders, expected {total_orders}")

    pct_total = sum(c.percentage for c in clusters)
    if abs(pct_total - 100) >= PERCENTAGE_TOLERANCE:
        raise ComputationError(f"Cluster percentages sum to {pct_total:.3f}, expected 100")

    for c in clusters:
        if c.order_count <= 0:
            raise ComputationError(f"Empty cluster {c.name}")

    for lower, upper in zip(clusters, clusters[1:]):
        if lower.max_value is None or lower.max_value != upper.min_value:
            raise ComputationError(f"Cluster bounds not contiguous between {lower.name} and {upper.name}")
        if upper.min_value < lower.min_value:
            raise ComputationError(f"Cluster bounds not ascending at {upper.name}")

    if clusters[-1].max_value is not None:
        raise ComputationError("Top cluster must be open-ended")
