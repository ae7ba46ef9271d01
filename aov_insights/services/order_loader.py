"""
Order Set Loader
Reads a workspace's paid Shopify orders for a date range and normalizes them
into Order records for analysis.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from aov_insights.ml.entities import DateRange, Order
from aov_insights.models.shopify import ShopifyOrder
from aov_insights.utils.logger import log

# Only completed orders say anything about what customers actually spend
ANALYZED_FINANCIAL_STATUSES = ("paid",)


class OrderSetLoader:
    """Loads the order snapshot the analysis runs over"""

    def __init__(self, db: Session):
        self.db = db

    def load(
        self,
        workspace_id: str,
        date_range: Optional[DateRange] = None,
        connection_id: Optional[str] = None,
    ) -> List[Order]:
        date_range = date_range or DateRange()

        query = self.db.query(ShopifyOrder).filter(
            ShopifyOrder.workspace_id == workspace_id,
            ShopifyOrder.financial_status.in_(ANALYZED_FINANCIAL_STATUSES),
        )
        if connection_id:
            query = query.filter(ShopifyOrder.connection_id == connection_id)
        if date_range.start is not None:
            query = query.filter(ShopifyOrder.created_at >= date_range.start)
        if date_range.end is not None:
            query = query.filter(ShopifyOrder.created_at <= date_range.end)

        rows = query.order_by(ShopifyOrder.created_at.asc(), ShopifyOrder.shopify_order_id.asc()).all()
        orders = [self._to_order(row) for row in rows]

        log.info(f"Loaded {len(orders)} paid orders for workspace {workspace_id}")
        return orders

    @staticmethod
    def _to_order(row: ShopifyOrder) -> Order:
        """Same parsing rules as an order posted to the API"""
        return Order.from_dict({
            "id": row.shopify_order_id,
            "total_price": row.total_price,
            "currency": row.currency,
            "created_at": row.created_at,
            "line_items": row.line_items or [],
            "shipping_price": row.total_shipping,
            "financial_status": row.financial_status,
        })
