"""
Shopify Data Models

Order snapshot synced from the Shopify Admin API by the order sync job.
AOV analysis only reads these tables.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, BigInteger, Numeric, UniqueConstraint
from datetime import datetime

from aov_insights.models.base import Base


class ShopifyOrder(Base):
    """
    Shopify orders for a workspace

    Synced from Shopify Admin API: GET /admin/api/2024-01/orders.json
    """
    __tablename__ = "shopify_orders"

    id = Column(Integer, primary_key=True, index=True)

    # Owning workspace / store connection
    workspace_id = Column(String, index=True, nullable=False)
    connection_id = Column(String, index=True, nullable=True)

    # Shopify IDs
    shopify_order_id = Column(BigInteger, index=True, nullable=False)  # Shopify's order ID
    order_number = Column(Integer, index=True)  # Human-readable order number

    # Order status
    financial_status = Column(String, index=True)  # paid, pending, refunded, partially_refunded

    # Amounts (all in store currency)
    currency = Column(String, default='USD')
    total_price = Column(Numeric(10, 2))  # Original order value (gross)
    subtotal_price = Column(Numeric(10, 2))  # Before tax and shipping
    total_shipping = Column(Numeric(10, 2), nullable=True)

    # Line items (stored as JSON for flexibility)
    line_items = Column(JSON)  # [{product_id, variant_id, sku, quantity, price, title}, ...]

    # Timestamps
    created_at = Column(DateTime, index=True)  # When order was placed

    # Sync metadata
    synced_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('workspace_id', 'shopify_order_id', name='uq_shopify_order_workspace'),
    )
