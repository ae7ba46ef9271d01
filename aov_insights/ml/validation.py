"""
Order record validation

Malformed orders abort the whole run; sparse data never does.
"""
from typing import Iterable, Sequence

from aov_insights.ml.entities import Order
from aov_insights.ml.errors import InputError


def validate_order_totals(orders: Sequence[Order]) -> None:
    """Ids present and totals non-negative"""
    for index, order in enumerate(orders):
        if not order.id:
            raise InputError("Order is missing an id", index=index)
        if order.total_price is None or order.total_price < 0:
            raise InputError(f"Negative order total {order.total_price}", order_id=order.id, index=index)
        if order.shipping_price is not None and order.shipping_price < 0:
            raise InputError(f"Negative shipping price {order.shipping_price}", order_id=order.id, index=index)


def validate_line_items(orders: Sequence[Order]) -> None:
    """Every line item names a product with a positive quantity"""
    for index, order in enumerate(orders):
        for item in order.line_items:
            if not item.product_id:
                raise InputError("Line item is missing a product id", order_id=order.id, index=index)
            if item.quantity <= 0:
                raise InputError(
                    f"Line item {item.product_id} has non-positive quantity {item.quantity}",
                    order_id=order.id, index=index,
                )
            if item.unit_price < 0:
                raise InputError(
                    f"Line item {item.product_id} has negative unit price {item.unit_price}",
                    order_id=order.id, index=index,
                )


def validate_currency(orders: Iterable[Order]) -> None:
    """Totals are only comparable within one currency"""
    currencies = sorted({order.currency for order in orders})
    if len(currencies) > 1:
        raise InputError(f"Orders span multiple currencies: {', '.join(currencies)}")


def validate_orders(orders: Sequence[Order]) -> None:
    validate_order_totals(orders)
    validate_line_items(orders)
    validate_currency(orders)
