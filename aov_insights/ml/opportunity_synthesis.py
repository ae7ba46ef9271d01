"""
AOV Opportunity Synthesis
Turns value clusters and product affinities into ranked, auditable
opportunities for raising average order value.

Deterministic rules only. Every opportunity carries the exact cluster or
pair facts it was derived from in data_support.
"""
import math
from bisect import bisect_left
from typing import List, Optional, Sequence

from aov_insights.ml.entities import (
    AffinityPair,
    Cluster,
    Opportunity,
    OpportunityType,
    PriceContext,
    SynthesisConfig,
)
from aov_insights.utils.helpers import clamp, format_currency, round_up_to_step, safe_divide
from aov_insights.utils.logger import log

# Composite score (impact strength + confidence) -> priority tier
IMPACT_WEIGHT = 0.6
CONFIDENCE_WEIGHT = 0.4
PRIORITY_TIERS = (
    (0.7, 1),
    (0.5, 2),
    (0.3, 3),
)
LOWEST_PRIORITY = 4

MAX_CONFIDENCE = 0.95
FREE_SHIPPING_FULL_SHARE = 0.4  # near-threshold share treated as maximum impact
CROSS_SELL_IMPACT_DISCOUNT = 0.75  # cross-sell strength is scaled below a bundle of equal lift
UPSELL_ADOPTION = 0.2  # share of a segment assumed to move up a band

_TYPE_ORDER = {
    OpportunityType.FREE_SHIPPING: 0,
    OpportunityType.BUNDLE: 1,
    OpportunityType.UPSELL: 2,
    OpportunityType.CROSS_SELL: 3,
}


def sample_factor(n: int, scale: float) -> float:
    """0 for no evidence, approaching 1 as the sample grows"""
    if n <= 0:
        return 0.0
    return 1 - math.exp(-n / scale)


def lift_strength(lift: float) -> float:
    """Lift of 1 (independence) is no signal; lift of 3 or more is full strength"""
    return clamp((lift - 1) / 2)


def assign_priority(strength: float, confidence: float) -> int:
    composite = IMPACT_WEIGHT * strength + CONFIDENCE_WEIGHT * confidence
    for cutoff, priority in PRIORITY_TIERS:
        if composite >= cutoff:
            return priority
    return LOWEST_PRIORITY


def pair_confidence(pair: AffinityPair) -> float:
    """Sample size carries half the weight, confidence and lift the rest"""
    score = (
        0.5 * sample_factor(pair.co_occurrence_count, 10)
        + 0.3 * pair.confidence
        + 0.2 * lift_strength(pair.lift)
    )
    return round(clamp(score, 0.0, MAX_CONFIDENCE), 3)


def _pair_support(pair: AffinityPair) -> dict:
    return {
        "product_a_id": pair.product_a_id,
        "product_a_title": pair.product_a_title,
        "product_b_id": pair.product_b_id,
        "product_b_title": pair.product_b_title,
        "co_occurrence_count": pair.co_occurrence_count,
        "confidence": pair.confidence,
        "lift": pair.lift,
    }


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def free_shipping_opportunity(
    clusters: Sequence[Cluster],
    context: PriceContext,
    config: SynthesisConfig,
) -> Optional[Opportunity]:
    """Free-shipping minimum just above the band with most orders sitting under it"""
    if not clusters or context.total_orders == 0:
        return None

    if context.average_shipping is not None and context.average_shipping == 0:
        log.info("Orders already ship free, skipping free-shipping threshold")
        return None

    values = context.order_values
    best = None

    for cluster in clusters:
        if cluster.max_value is None:
            continue
        threshold = round_up_to_step(cluster.max_value, config.threshold_step)
        floor = threshold * (1 - config.near_threshold_window)
        lo, hi = bisect_left(values, floor), bisect_left(values, threshold)
        near = values[lo:hi]
        share = len(near) / context.total_orders
        if best is None or share > best[2]:
            best = (cluster, threshold, share, near)

    if best is None:
        return None

    cluster, threshold, share, near = best
    if not near or share < config.free_shipping_min_share:
        return None

    near_avg = sum(near) / len(near)
    aov_gain = share * (threshold - near_avg)
    strength = clamp(share / FREE_SHIPPING_FULL_SHARE)
    confidence = round(clamp(
        0.5 * sample_factor(len(near), 10) + 0.5 * strength, 0.0, MAX_CONFIDENCE
    ), 3)
    currency = context.currency

    return Opportunity(
        opportunity_type=OpportunityType.FREE_SHIPPING,
        title=f"Test a free shipping threshold at {format_currency(threshold, currency)}",
        description=(
            f"{len(near)} orders ({share * 100:.1f}%) land within "
            f"{config.near_threshold_window * 100:.0f}% below {format_currency(threshold, currency)}, "
            f"just above the {cluster.name} band. A free shipping minimum there gives these "
            f"customers a reason to add one more item."
        ),
        potential_impact=(
            f"Up to +{format_currency(aov_gain, currency)} average order value if near-threshold "
            f"orders top up to {format_currency(threshold, currency)}"
        ),
        priority=assign_priority(strength, confidence),
        confidence_score=confidence,
        data_support={
            "suggested_threshold": threshold,
            "cluster_name": cluster.name,
            "cluster_max_value": cluster.max_value,
            "orders_affected": len(near),
            "percentage_of_orders": round(share * 100, 2),
            "near_threshold_avg_value": round(near_avg, 2),
            "current_avg_shipping": context.average_shipping,
            "total_orders": context.total_orders,
        },
    )


def bundle_opportunity(pair: AffinityPair) -> Opportunity:
    confidence = pair_confidence(pair)
    strength = lift_strength(pair.lift)

    return Opportunity(
        opportunity_type=OpportunityType.BUNDLE,
        title=f'Bundle "{pair.product_a_title}" + "{pair.product_b_title}"',
        description=(
            f"These products were bought together in {pair.co_occurrence_count} orders and "
            f"{pair.confidence * 100:.0f}% of \"{pair.product_a_title}\" orders include "
            f"\"{pair.product_b_title}\". Offer them as a bundle to raise cart value."
        ),
        potential_impact=(
            f"Lift of {pair.lift:.2f}x: bought together {pair.lift:.1f} times more often than chance"
        ),
        priority=assign_priority(strength, confidence),
        confidence_score=confidence,
        data_support=_pair_support(pair),
    )


def cross_sell_opportunity(pair: AffinityPair) -> Opportunity:
    confidence = pair_confidence(pair)
    strength = lift_strength(pair.lift) * CROSS_SELL_IMPACT_DISCOUNT

    return Opportunity(
        opportunity_type=OpportunityType.CROSS_SELL,
        title=f'Show "{pair.product_b_title}" with "{pair.product_a_title}"',
        description=(
            f"{pair.confidence * 100:.0f}% of \"{pair.product_a_title}\" orders also contain "
            f"\"{pair.product_b_title}\" ({pair.co_occurrence_count} orders). Add a "
            f"\"frequently bought together\" placement on the product page and in the cart."
        ),
        potential_impact=(
            f"Lift of {pair.lift:.2f}x: a moderate but positive purchase correlation"
        ),
        priority=assign_priority(strength, confidence),
        confidence_score=confidence,
        data_support=_pair_support(pair),
    )


def upsell_opportunities(
    clusters: Sequence[Cluster],
    context: PriceContext,
    config: SynthesisConfig,
) -> List[Opportunity]:
    """Low-value bands holding far more of the orders than of the revenue"""
    if len(clusters) < 2:
        return []

    total_revenue = sum(c.total_revenue for c in clusters)
    currency = context.currency
    opportunities = []

    for cluster, next_cluster in zip(clusters, clusters[1:]):
        if cluster.avg_order_value >= context.average_order_value:
            continue

        order_share = cluster.percentage / 100
        revenue_share = safe_divide(cluster.total_revenue, total_revenue)
        if revenue_share == 0:
            continue

        skew = order_share / revenue_share
        if skew < config.upsell_skew:
            continue

        target = next_cluster.avg_order_value
        gap = target - cluster.avg_order_value
        added_revenue = cluster.order_count * UPSELL_ADOPTION * gap

        strength = clamp((skew - 1) / 2)
        confidence = round(clamp(0.4 + 0.5 * sample_factor(cluster.order_count, 30), 0.0, 0.9), 3)

        opportunities.append(Opportunity(
            opportunity_type=OpportunityType.UPSELL,
            title=f"Upsell the {cluster.name} segment",
            description=(
                f"{cluster.order_count} orders ({cluster.percentage:.0f}%) fall in the {cluster.name} "
                f"band but bring only {revenue_share * 100:.0f}% of revenue. Surface premium options "
                f"or add-ons at checkout to move them toward the {next_cluster.name} band."
            ),
            potential_impact=(
                f"Moving {UPSELL_ADOPTION * 100:.0f}% of these orders to the {next_cluster.name} "
                f"average ({format_currency(target, currency)}) would add "
                f"{format_currency(added_revenue, currency)} in revenue"
            ),
            priority=assign_priority(strength, confidence),
            confidence_score=confidence,
            data_support={
                "cluster_name": cluster.name,
                "order_count": cluster.order_count,
                "order_share": round(order_share, 4),
                "revenue_share": round(revenue_share, 4),
                "skew": round(skew, 4),
                "avg_order_value": cluster.avg_order_value,
                "target_cluster": next_cluster.name,
                "target_avg_order_value": target,
                "overall_avg_order_value": context.average_order_value,
            },
        ))

    return opportunities


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def sort_opportunities(opportunities: Sequence[Opportunity]) -> List[Opportunity]:
    """Priority ascending, confidence descending within a tier"""
    return sorted(opportunities, key=lambda o: (
        o.priority,
        -o.confidence_score,
        _TYPE_ORDER[o.opportunity_type],
        o.title,
    ))


def synthesize(
    clusters: Sequence[Cluster],
    affinities: Sequence[AffinityPair],
    price_context: PriceContext,
    config: Optional[SynthesisConfig] = None,
) -> List[Opportunity]:
    """Ranked AOV opportunities; empty inputs give an empty list"""
    config = config or SynthesisConfig()

    if not clusters and not affinities:
        log.warning("No clusters or affinities, nothing to synthesize")
        return []

    opportunities = []

    free_shipping = free_shipping_opportunity(clusters, price_context, config)
    if free_shipping:
        opportunities.append(free_shipping)

    for pair in affinities:
        if pair.lift >= config.strong_lift:
            opportunities.append(bundle_opportunity(pair))
        elif pair.lift > 1 and pair.confidence >= config.min_confidence:
            opportunities.append(cross_sell_opportunity(pair))

    opportunities.extend(upsell_opportunities(clusters, price_context, config))

    log.info(f"Synthesized {len(opportunities)} AOV opportunities")
    return sort_opportunities(opportunities)
