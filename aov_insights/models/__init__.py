"""Database models for AOV Insights"""

from aov_insights.models.shopify import ShopifyOrder

from aov_insights.models.aov import (
    AOVAnalysis,
    OrderCluster,
    ProductAffinity,
    AOVOpportunity,
)

__all__ = [
    "ShopifyOrder",
    "AOVAnalysis",
    "OrderCluster",
    "ProductAffinity",
    "AOVOpportunity",
]
