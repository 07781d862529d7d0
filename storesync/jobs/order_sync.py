#!/usr/bin/env python3
"""
Order sync job.

Fetches every Shopify order updated since the stored watermark through the
REST orders endpoint (Link header pagination), upserts each order, replaces
its line items, and advances the watermark to the newest updated_at seen.

The job runs as three named stages:
    resolve_window -> sync_updated_orders -> advance_watermark
"""

import logging
import sys
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel

from ..adapters.shopify import ShopifyClient
from ..common.etl import coerce_decimal, coerce_int, dig, json_serialize, parse_date
from ..common.pipeline import Pipeline, Stage
from ..config.loader import cfg, get_deadline_seconds
from ..db.deps import get_session
from ..db.sync_state import get_last_order_update, set_last_order_update
from ..db.upserts import replace_line_items, upsert_orders
from ..utils.logging_config import setup_logging
from ..utils.time_windows import (
    Deadline,
    check_deadline,
    format_iso_timestamp,
    lookback_start,
    truncate_to_second,
    utc_now,
)

logger = logging.getLogger(__name__)

# Returns the lower updated_at bound for this run
NewOrdersCollaborator = Callable[[object], datetime]


class OrderWindow(BaseModel):
    """Inclusive updated_at bounds of one order sync run."""

    updated_at_min: datetime
    updated_at_max: datetime


class OrderSyncResult(BaseModel):
    """Outcome of fetching and writing the orders in a window."""

    window: OrderWindow
    processed_count: int = 0
    pages_fetched: int = 0
    orders_inserted: int = 0
    orders_updated: int = 0
    line_items_written: int = 0
    latest_update_time: datetime | None = None
    watermark_updated: bool = False


def transform_line_item(order_id: int, item: dict) -> dict:
    """Map a REST line item onto a line_items row."""
    return {
        "id": int(item["id"]),
        "order_id": order_id,
        "sku": item.get("sku") or None,
        "name": item.get("name"),
        "grams": coerce_int(item.get("grams")),
        "price": coerce_decimal(item.get("price")),
        "title": item.get("title"),
        "vendor": item.get("vendor") or None,
        "taxable": item.get("taxable"),
        "quantity": coerce_int(item.get("quantity")),
        "gift_card": item.get("gift_card"),
        "price_set": json_serialize(item.get("price_set"), keep_empty=True),
        "tax_lines": json_serialize(item.get("tax_lines"), keep_empty=True),
        "product_id": coerce_int(item.get("product_id")),
        "properties": json_serialize(item.get("properties"), keep_empty=True),
        "variant_id": coerce_int(item.get("variant_id")),
        "pre_tax_price": coerce_decimal(item.get("pre_tax_price")),
        "variant_title": item.get("variant_title") or None,
        "product_exists": item.get("product_exists"),
        "total_discount": coerce_decimal(item.get("total_discount")),
        "current_quantity": coerce_int(item.get("current_quantity")),
        "attributed_staffs": json_serialize(item.get("attributed_staffs"), keep_empty=True),
        "pre_tax_price_set": json_serialize(item.get("pre_tax_price_set"), keep_empty=True),
        "requires_shipping": item.get("requires_shipping"),
        "fulfillment_status": item.get("fulfillment_status") or None,
        "total_discount_set": json_serialize(item.get("total_discount_set"), keep_empty=True),
        "fulfillment_service": item.get("fulfillment_service") or None,
        "admin_graphql_api_id": item.get("admin_graphql_api_id") or None,
        "discount_allocations": json_serialize(item.get("discount_allocations"), keep_empty=True),
        "fulfillable_quantity": coerce_int(item.get("fulfillable_quantity")),
        "variant_inventory_management": item.get("variant_inventory_management") or None,
    }


def transform_order(order: dict) -> tuple[dict, list[dict]]:
    """
    Map a REST order onto an orders row plus its line_items rows.

    Returns:
        Tuple of (order_row, line_item_rows)
    """
    order_id = int(order["id"])
    line_items = [transform_line_item(order_id, item) for item in order.get("line_items") or []]
    shipping = order.get("shipping_address") or {}
    company = order.get("company")

    row = {
        "order_id": order_id,
        "cancel_reason": order.get("cancel_reason"),
        "cancelled_at": parse_date(order.get("cancelled_at")),
        "closed_at": parse_date(order.get("closed_at")),
        "company": json_serialize(company) if isinstance(company, (dict, list)) else company,
        "confirmation_number": order.get("confirmation_number") or "",
        "confirmed": order.get("confirmed"),
        "created_at": parse_date(order.get("created_at")),
        "currency": order.get("currency"),
        "current_subtotal_price": coerce_decimal(order.get("current_subtotal_price")),
        "current_subtotal_price_set": order.get("current_subtotal_price_set"),
        "current_total_additional_fees_set": order.get("current_total_additional_fees_set"),
        "current_total_discounts": coerce_decimal(order.get("current_total_discounts")),
        "current_total_discounts_set": order.get("current_total_discounts_set"),
        "current_total_duties_set": order.get("current_total_duties_set"),
        "current_total_price": coerce_decimal(order.get("current_total_price")),
        "current_total_price_set": order.get("current_total_price_set"),
        "current_total_tax": coerce_decimal(order.get("current_total_tax")),
        "current_total_tax_set": order.get("current_total_tax_set"),
        "fulfillment_status": order.get("fulfillment_status"),
        "name": order.get("name"),
        "note": order.get("note"),
        "note_attributes": order.get("note_attributes"),
        "order_number": coerce_int(order.get("order_number")),
        "order_status_url": order.get("order_status_url"),
        "presentment_currency": order.get("presentment_currency"),
        "processed_at": parse_date(order.get("processed_at")),
        "reference": order.get("reference") or "",
        "subtotal_price": coerce_decimal(order.get("subtotal_price")),
        "tags": order.get("tags"),
        "total_discounts": coerce_decimal(order.get("total_discounts")),
        "total_line_items_price": coerce_decimal(order.get("total_line_items_price")),
        "total_outstanding": coerce_decimal(order.get("total_outstanding")),
        "total_price": coerce_decimal(order.get("total_price")),
        "total_price_set": order.get("total_price_set"),
        "total_shipping_price_set": order.get("total_shipping_price_set"),
        "total_tax": coerce_decimal(order.get("total_tax")),
        "total_tip_received": coerce_decimal(order.get("total_tip_received")),
        "total_weight": coerce_int(order.get("total_weight")),
        "updated_at": parse_date(order.get("updated_at")),
        "customer_id": coerce_int(dig(order, "customer", "id")),
        "source_name": order.get("source_name"),
        "source_identifier": order.get("source_identifier"),
        "source_url": order.get("source_url"),
        "location_id": coerce_int(order.get("location_id")),
        "gift_card_only": all(item["gift_card"] is True for item in line_items),
        "shipping_address1": shipping.get("address1") or None,
        "shipping_address2": shipping.get("address2") or None,
        "shipping_city": shipping.get("city") or None,
        "shipping_zip": shipping.get("zip") or None,
        "shipping_province": shipping.get("province") or None,
        "shipping_country": shipping.get("country") or None,
        "shipping_company": shipping.get("company") or None,
        "shipping_latitude": shipping.get("latitude") or None,
        "shipping_longitude": shipping.get("longitude") or None,
        "shipping_country_code": shipping.get("country_code") or None,
        "shipping_province_code": shipping.get("province_code") or None,
    }
    return row, line_items


def process_orders(orders: list[dict], session) -> tuple[int, int, int]:
    """
    Upsert a page of orders and replace their line items.

    Returns:
        Tuple of (orders_inserted, orders_updated, line_items_written)
    """
    order_rows: list[dict] = []
    line_item_rows: list[dict] = []
    for order in orders:
        logger.debug(f"Upserting order {order.get('id')}")
        row, items = transform_order(order)
        order_rows.append(row)
        line_item_rows.extend(items)

    inserted, updated = upsert_orders(order_rows, session)
    _, written = replace_line_items([row["order_id"] for row in order_rows], line_item_rows, session)
    return inserted, updated, written


def load_order_watermark(session, lookback_hours: int) -> datetime:
    """Default lower bound: the stored watermark, else now minus the lookback."""
    last_update = get_last_order_update(session)
    if last_update is None:
        return lookback_start(lookback_hours)
    logger.info(f"Last order update watermark: {format_iso_timestamp(last_update)}")
    return last_update


def fetch_and_process_orders(
    client: ShopifyClient,
    session,
    window: OrderWindow,
    page_size: int = 250,
    deadline: Deadline | None = None,
) -> OrderSyncResult:
    """
    Fetch every order updated within the window and write it page by page.

    Follows the Link header "next" URL until none is returned. Each page is
    committed on its own; a failing page propagates and leaves earlier pages
    in place.
    """
    result = OrderSyncResult(window=window)
    params = {
        "updated_at_min": format_iso_timestamp(window.updated_at_min),
        "updated_at_max": format_iso_timestamp(window.updated_at_max),
        "limit": page_size,
        "status": "any",
    }
    next_url = None

    while True:
        check_deadline(deadline, f"orders page {result.pages_fetched + 1}")
        orders, next_url = client.get_orders_page(
            url=next_url, params=None if next_url else params
        )
        result.pages_fetched += 1

        inserted, updated, written = process_orders(orders, session)
        session.commit()

        result.processed_count += len(orders)
        result.orders_inserted += inserted
        result.orders_updated += updated
        result.line_items_written += written

        # Running maximum: pages need not arrive in updated_at order
        for order in orders:
            updated_at = parse_date(order.get("updated_at"))
            if updated_at and (
                result.latest_update_time is None or updated_at > result.latest_update_time
            ):
                result.latest_update_time = updated_at

        logger.info(f"Processed orders: {len(orders)}")
        logger.info(f"Total orders processed so far: {result.processed_count}")

        if not next_url:
            break

    return result


def advance_order_watermark(result: OrderSyncResult, session) -> OrderSyncResult:
    """Persist the newest updated_at seen; no-op when nothing was processed."""
    if result.processed_count == 0 or result.latest_update_time is None:
        logger.info("No updated orders found")
        return result

    set_last_order_update(result.latest_update_time, session)
    result.watermark_updated = True
    logger.info(f"Updated last_order_update to {format_iso_timestamp(result.latest_update_time)}")
    return result


def build_order_sync_pipeline(
    client: ShopifyClient,
    session,
    create_new_orders: NewOrdersCollaborator,
    page_size: int,
    deadline: Deadline | None = None,
    now: datetime | None = None,
) -> Pipeline:
    """Assemble the order sync stages around one client and session."""

    def resolve_window(_: None) -> OrderWindow:
        updated_at_min = create_new_orders(session)
        updated_at_max = truncate_to_second(now or utc_now())
        logger.info(
            f"Syncing orders updated between {format_iso_timestamp(updated_at_min)} "
            f"and {format_iso_timestamp(updated_at_max)}"
        )
        return OrderWindow(updated_at_min=updated_at_min, updated_at_max=updated_at_max)

    return Pipeline(
        "order_sync",
        [
            Stage("resolve_window", resolve_window),
            Stage(
                "sync_updated_orders",
                lambda window: fetch_and_process_orders(client, session, window, page_size, deadline),
            ),
            Stage("advance_watermark", lambda result: advance_order_watermark(result, session)),
        ],
    )


def run_order_sync(
    client: ShopifyClient | None = None,
    session=None,
    create_new_orders: NewOrdersCollaborator | None = None,
    page_size: int | None = None,
    lookback_hours: int | None = None,
    deadline: Deadline | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Run the order sync job.

    Args:
        client: Shopify client (built from the environment when omitted)
        session: Database session (opened with get_session() when omitted)
        create_new_orders: Collaborator run first; returns the lower
            updated_at bound. Defaults to reading the stored watermark.
        page_size: Orders per REST page
        lookback_hours: First-run lookback when no watermark is stored
        deadline: Optional wall-clock budget checked before each page
        now: Upper bound override (defaults to the current time)

    Returns:
        Dictionary with sync statistics

    Raises:
        StageFailed: naming the stage that failed
    """
    page_size = page_size or cfg("shopify.page_size", 250)
    if lookback_hours is None:
        lookback_hours = cfg("jobs.order_sync.lookback_hours", 24)

    logger.info("Starting order sync job")
    client = client or ShopifyClient()
    if create_new_orders is None:
        def create_new_orders(sess) -> datetime:
            return load_order_watermark(sess, lookback_hours)

    def _run(sess) -> dict:
        pipeline = build_order_sync_pipeline(
            client, sess, create_new_orders, page_size, deadline, now
        )
        result: OrderSyncResult = pipeline.run()

        stats = {
            "orders_processed": result.processed_count,
            "orders_inserted": result.orders_inserted,
            "orders_updated": result.orders_updated,
            "line_items_written": result.line_items_written,
            "pages_fetched": result.pages_fetched,
            "watermark_updated": result.watermark_updated,
            "latest_update_time": result.latest_update_time,
        }
        logger.info(f"Order sync completed: {stats}")
        return stats

    if session is not None:
        return _run(session)
    with get_session() as sess:
        return _run(sess)


def main():
    """CLI entry point for the order sync job."""
    setup_logging()
    try:
        deadline = Deadline.after(get_deadline_seconds("order_sync"))
        stats = run_order_sync(deadline=deadline)

        print("Order Sync Summary:")
        if stats["orders_processed"] == 0:
            print("  No orders processed")
        else:
            print(f"  Orders processed: {stats['orders_processed']}")
            print(f"  Orders inserted: {stats['orders_inserted']}")
            print(f"  Orders updated: {stats['orders_updated']}")
            print(f"  Line items written: {stats['line_items_written']}")
            print(f"  Watermark: {format_iso_timestamp(stats['latest_update_time'])}")

        sys.exit(0)

    except KeyboardInterrupt:
        logger.info("Sync job interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Order sync failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
