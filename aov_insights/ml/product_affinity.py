"""
Product Affinity (market basket analysis)

Finds products that are bought together more often than chance:
- support(B) = orders containing B / all orders
- confidence(A->B) = orders containing A and B / orders containing A
- lift = confidence(A->B) / support(B)

Every order counts toward a product's frequency; only multi-item orders
produce co-occurrences. Each unordered pair is reported once, in the
direction of the more frequently ordered product (ties: lower product id).
"""
import concurrent.futures
from collections import Counter
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from aov_insights.ml.entities import AffinityConfig, AffinityPair, Order
from aov_insights.ml.errors import ComputationError
from aov_insights.ml.validation import validate_line_items
from aov_insights.utils.helpers import chunk_list, safe_divide
from aov_insights.utils.logger import log

Basket = Tuple[str, ...]
PairKey = Tuple[str, str]


def product_sort_key(product_id: str):
    """Numeric ids compare numerically, others lexically after them"""
    if product_id.isdigit():
        return (0, int(product_id), product_id)
    return (1, 0, product_id)


def build_baskets(orders: Iterable[Order]) -> List[Basket]:
    """Distinct product ids per order; quantity and repeats are ignored"""
    return [tuple(sorted(order.product_ids, key=product_sort_key)) for order in orders]


def multi_item_order_count(orders: Iterable[Order]) -> int:
    return sum(1 for order in orders if len(order.product_ids) >= 2)


def count_partition(baskets: Sequence[Basket]) -> Tuple[Counter, Counter]:
    """Product frequency and pair co-occurrence counts for one slice of orders"""
    product_counts = Counter()
    pair_counts = Counter()

    for basket in baskets:
        product_counts.update(basket)
        if len(basket) < 2:
            continue
        # Baskets are pre-sorted, so each unordered pair has one key
        pair_counts.update(combinations(basket, 2))

    return product_counts, pair_counts


def merge_counts(partials: Iterable[Tuple[Counter, Counter]]) -> Tuple[Counter, Counter]:
    """Sum partial count maps; order of partials does not matter"""
    product_counts = Counter()
    pair_counts = Counter()
    for products, pairs in partials:
        product_counts.update(products)
        pair_counts.update(pairs)
    return product_counts, pair_counts


def count_co_occurrences(baskets: Sequence[Basket], config: AffinityConfig) -> Tuple[Counter, Counter]:
    """Count serially, or across a worker pool for large order sets"""
    if config.workers <= 1 or len(baskets) <= config.partition_size:
        return count_partition(baskets)

    partitions = chunk_list(baskets, config.partition_size)
    log.info(f"Counting product pairs across {len(partitions)} partitions ({config.workers} workers)")

    with concurrent.futures.ThreadPoolExecutor(max_workers=config.workers) as pool:
        partials = list(pool.map(count_partition, partitions))

    return merge_counts(partials)


def canonical_direction(x: str, y: str, product_counts: Dict[str, int]) -> PairKey:
    """(A, B) with A the more frequently ordered product, ties by lower id"""
    ordered = sorted((x, y), key=lambda pid: (-product_counts[pid], product_sort_key(pid)))
    return ordered[0], ordered[1]


def _first_titles(orders: Iterable[Order]) -> Dict[str, str]:
    titles = {}
    for order in orders:
        for item in order.line_items:
            if item.product_id not in titles or not titles[item.product_id]:
                titles[item.product_id] = item.title
    return titles


def compute_affinity(orders: Sequence[Order], config: Optional[AffinityConfig] = None) -> List[AffinityPair]:
    """
    Market basket analysis over an order set.

    Pairs below config.min_confidence or config.min_co_occurrence are dropped;
    survivors are sorted by lift then co-occurrence (both descending) and
    truncated to config.max_pairs.
    """
    config = config or AffinityConfig()
    total_orders = len(orders)

    if total_orders == 0:
        log.warning("No orders for affinity analysis")
        return []

    validate_line_items(orders)

    baskets = build_baskets(orders)
    product_counts, pair_counts = count_co_occurrences(baskets, config)
    titles = _first_titles(orders)

    pairs = []
    for (x, y), co_count in pair_counts.items():
        if co_count < config.min_co_occurrence:
            continue

        a, b = canonical_direction(x, y, product_counts)
        confidence = safe_divide(co_count, product_counts[a])
        if confidence < config.min_confidence:
            continue

        support_b = safe_divide(product_counts[b], total_orders)
        lift = safe_divide(confidence, support_b)

        pairs.append(AffinityPair(
            product_a_id=a,
            product_a_title=titles.get(a, ""),
            product_b_id=b,
            product_b_title=titles.get(b, ""),
            co_occurrence_count=co_count,
            confidence=round(confidence, 4),
            lift=round(lift, 4),
        ))

    pairs.sort(key=lambda p: (
        -p.lift,
        -p.co_occurrence_count,
        product_sort_key(p.product_a_id),
        product_sort_key(p.product_b_id),
    ))
    pairs = pairs[:config.max_pairs]

    check_affinity_invariants(pairs)

    log.info(
        f"Affinity: {len(pair_counts)} co-occurring pairs across "
        f"{sum(1 for b in baskets if len(b) >= 2)} multi-item orders, {len(pairs)} kept"
    )
    return pairs


def check_affinity_invariants(pairs: Sequence[AffinityPair]) -> None:
    """Confidence within [0, 1], positive lift, each unordered pair once"""
    seen = set()
    for pair in pairs:
        if pair.product_a_id == pair.product_b_id:
            raise ComputationError(f"Product {pair.product_a_id} paired with itself")
        if not 0 <= pair.confidence <= 1:
            raise ComputationError(
                f"Confidence {pair.confidence} out of range for {pair.product_a_id}/{pair.product_b_id}"
            )
        if pair.lift <= 0:
            raise ComputationError(f"Non-positive lift for {pair.product_a_id}/{pair.product_b_id}")
        if pair.key in seen:
            raise ComputationError(f"Duplicate pair {pair.product_a_id}/{pair.product_b_id}")
        seen.add(pair.key)
