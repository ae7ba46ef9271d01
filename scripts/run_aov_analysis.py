#!/usr/bin/env python3
"""
AOV Analysis Script

Runs the order value analysis over an order export and prints the result as
JSON. Nothing is written to the database.

Supported inputs:
- JSON: a list of orders, or {"orders": [...]}, Shopify Admin API shape
- CSV: Shopify admin order export (one row per line item)

Usage:
    python scripts/run_aov_analysis.py --orders exports/orders.json
    python scripts/run_aov_analysis.py --orders exports/orders_export.csv --bands 4 --min-confidence 0.25
    python scripts/run_aov_analysis.py --orders orders.json --start 2026-01-01 --end 2026-03-31 --output result.json
"""
import sys
import json
import argparse
from pathlib import Path
from typing import List

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd
from dateutil import parser as date_parser

from aov_insights.config import get_settings
from aov_insights.ml.entities import AnalysisOptions, DateRange, LineItem, Order, orders_from_dicts
from aov_insights.ml.errors import InputError
from aov_insights.services.aov_analysis_service import AOVAnalysisService
from aov_insights.utils.logger import log


def orders_from_shopify_csv(file_path: str) -> List[Order]:
    """
    Group a Shopify order export into orders.

    Order-level columns (Total, Currency, Shipping, Created at, Financial Status)
    are only filled on the first row of each order; line item columns on
    every row. Exports carry no product id, so the SKU (or the line item name
    when SKU is blank) identifies the product.
    """
    df = pd.read_csv(file_path, dtype=str)
    required = {"Name", "Total", "Lineitem name", "Lineitem quantity", "Lineitem price"}
    missing = required - set(df.columns)
    if missing:
        raise InputError(f"CSV export is missing columns: {', '.join(sorted(missing))}")

    orders = []
    for name, rows in df.groupby("Name", sort=False):
        head = rows.iloc[0]
        items = []
        for _, row in rows.iterrows():
            sku = row.get("Lineitem sku")
            product_id = sku if isinstance(sku, str) and sku.strip() else row["Lineitem name"]
            items.append(LineItem(
                product_id=str(product_id).strip(),
                title=str(row["Lineitem name"]).strip(),
                quantity=int(float(row["Lineitem quantity"])),
                unit_price=float(row["Lineitem price"]),
            ))

        shipping = head.get("Shipping")
        created = head.get("Created at")
        orders.append(Order(
            id=str(name).lstrip("#"),
            total_price=float(head["Total"]),
            currency=str(head.get("Currency") or "USD").upper(),
            created_at=date_parser.parse(created) if isinstance(created, str) else None,
            line_items=tuple(items),
            shipping_price=float(shipping) if isinstance(shipping, str) and shipping else None,
            financial_status=head.get("Financial Status") if isinstance(head.get("Financial Status"), str) else None,
        ))

    return orders


def load_orders(file_path: str, paid_only: bool) -> List[Order]:
    path = Path(file_path)
    if path.suffix.lower() == ".csv":
        orders = orders_from_shopify_csv(str(path))
    else:
        with open(path) as f:
            payload = json.load(f)
        rows = payload.get("orders", []) if isinstance(payload, dict) else payload
        orders = orders_from_dicts(rows)

    if paid_only:
        orders = [o for o in orders if o.financial_status in (None, "paid")]
    return orders


def main():
    parser = argparse.ArgumentParser(description="Run AOV analysis over an order export")
    parser.add_argument("--orders", required=True, help="Path to a JSON or Shopify CSV order export")
    parser.add_argument("--start", help="Period start (ISO date/time)")
    parser.add_argument("--end", help="Period end (ISO date/time)")
    parser.add_argument("--min-confidence", type=float, help="Minimum pair confidence (0-1)")
    parser.add_argument("--bands", type=int, help="Number of value bands")
    parser.add_argument("--max-pairs", type=int, help="Maximum product pairs to report")
    parser.add_argument("--include-unpaid", action="store_true", help="Keep orders that are not marked paid")
    parser.add_argument("--output", help="Write the JSON result here instead of stdout")
    args = parser.parse_args()

    try:
        orders = load_orders(args.orders, paid_only=not args.include_unpaid)
    except InputError as e:
        log.error(f"Could not read orders: {str(e)}")
        return 1

    options = AnalysisOptions.from_settings(
        get_settings(),
        date_range=DateRange(
            start=date_parser.parse(args.start) if args.start else None,
            end=date_parser.parse(args.end) if args.end else None,
        ),
        min_confidence=args.min_confidence,
        cluster_band_count=args.bands,
        max_affinity_pairs=args.max_pairs,
    )

    result = AOVAnalysisService(options=options).run(orders, options)
    output = json.dumps(result.to_dict(), indent=2)

    if args.output:
        Path(args.output).write_text(output)
        log.info(f"Wrote analysis to {args.output}")
    else:
        print(output)

    return 0 if result.is_complete else 1


if __name__ == "__main__":
    sys.exit(main())
