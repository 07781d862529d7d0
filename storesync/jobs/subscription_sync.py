#!/usr/bin/env python3
"""
Subscription linkage sync job.

Walks ReCharge orders newest first, links each subscription line item to the
matching locally stored Shopify line item, and upserts its subscription
contract details together with the Shopify selling plan.
"""

import logging
import sys

from ..adapters.recharge import RechargeClient
from ..adapters.shopify import ShopifyClient
from ..common.etl import coerce_int, dig, parse_date
from ..common.gid import InvalidGIDError, gid_to_id
from ..config.loader import cfg, get_deadline_seconds
from ..db.deps import get_session
from ..db.sync_state import record_recharge_order_id
from ..db.upserts import find_line_item, upsert_line_item_subscription
from ..utils.logging_config import setup_logging
from ..utils.time_windows import Deadline, check_deadline

logger = logging.getLogger(__name__)


def get_selling_plan_details(
    client: ShopifyClient, shopify_order_id: int, line_item_id: int
) -> tuple[str | None, str | None]:
    """
    Look up the selling plan of one line item of a Shopify order.

    Returns:
        Tuple of (selling_plan_id, selling_plan_name), both None when the
        line item is not found or carries no selling plan
    """
    for node in client.fetch_order_selling_plans(shopify_order_id):
        try:
            node_id = gid_to_id(node.get("id"), "LineItem")
        except InvalidGIDError:
            logger.warning(f"Skipping line item with unexpected id {node.get('id')!r}")
            continue

        if node_id == line_item_id:
            selling_plan = node.get("sellingPlan") or {}
            return selling_plan.get("sellingPlanId"), selling_plan.get("name")

    return None, None


def build_subscription_row(
    line_item_id: int,
    subscription: dict,
    selling_plan_id: str | None,
    selling_plan_name: str | None,
) -> dict:
    """
    Map a ReCharge subscription onto a line_item_subscriptions row.

    Next billing date and interval counts are omitted when the source has
    none, so an update leaves the stored values in place.
    """
    row = {
        "line_item_id": line_item_id,
        "is_subscription": True,
        "selling_plan_id": selling_plan_id,
        "selling_plan_name": selling_plan_name,
        "subscription_contract_id": (
            str(subscription["id"]) if subscription.get("id") is not None else None
        ),
        "contract_status": subscription.get("status"),
        "billing_interval": subscription.get("order_interval_unit"),
        "delivery_interval": subscription.get("charge_interval_unit"),
        "created_at": parse_date(subscription.get("created_at")),
        "updated_at": parse_date(subscription.get("updated_at")),
    }

    optional = {
        "next_billing_date": parse_date(subscription.get("next_charge_scheduled_at")),
        "billing_interval_count": coerce_int(subscription.get("order_interval_frequency")),
        "delivery_interval_count": coerce_int(subscription.get("charge_interval_frequency")),
    }
    row.update({key: value for key, value in optional.items() if value is not None})
    return row


def link_order_subscriptions(
    order: dict,
    client: RechargeClient,
    shopify_client: ShopifyClient,
    session,
    stats: dict,
) -> None:
    """Link every subscription line item of one ReCharge order."""
    shopify_order_id = coerce_int(dig(order, "external_order_id", "ecommerce"))
    if shopify_order_id is None:
        logger.warning(f"ReCharge order {order.get('id')} has no Shopify order id, skipping")
        return

    for item in order.get("line_items") or []:
        if item.get("purchase_item_type") != "subscription":
            continue
        stats["subscription_items"] += 1

        subscription = client.get_subscription(item["purchase_item_id"])
        if not subscription:
            continue

        local_line_item = find_line_item(
            order_id=shopify_order_id,
            title=item.get("title"),
            variant_id=coerce_int(dig(subscription, "external_variant_id", "ecommerce")),
            sku=item.get("sku"),
            session=session,
        )

        if local_line_item is None:
            logger.warning(f"Could not match line item for Shopify Order ID {shopify_order_id}")
            stats["unmatched"] += 1
            continue

        selling_plan_id, selling_plan_name = get_selling_plan_details(
            shopify_client, shopify_order_id, local_line_item.id
        )

        upsert_line_item_subscription(
            build_subscription_row(
                local_line_item.id, subscription, selling_plan_id, selling_plan_name
            ),
            session,
        )
        stats["linked"] += 1
        logger.info(f"Updated subscription for line_item_id {local_line_item.id}")


def run_subscription_sync(
    client: RechargeClient | None = None,
    shopify_client: ShopifyClient | None = None,
    session=None,
    page_size: int | None = None,
    deadline: Deadline | None = None,
) -> dict:
    """
    Run the subscription linkage sync job.

    Pages through ReCharge orders (id descending) until a page comes back
    shorter than page_size. Errors propagate to the caller.

    Returns:
        Dictionary with sync statistics
    """
    page_size = page_size or cfg("recharge.page_size", 250)

    logger.info("Starting subscription linkage sync job")
    client = client or RechargeClient()
    shopify_client = shopify_client or ShopifyClient()

    def _run(sess) -> dict:
        stats = {
            "orders_seen": 0,
            "subscription_items": 0,
            "linked": 0,
            "unmatched": 0,
            "pages_fetched": 0,
            "last_order_id": None,
        }
        highest_order_id = None
        page = 1

        while True:
            check_deadline(deadline, f"ReCharge orders page {page}")
            orders = client.get_orders_page(page, limit=page_size)
            stats["pages_fetched"] += 1

            if not orders:
                break

            # Orders arrive id-descending, so the first page holds the newest
            if highest_order_id is None:
                highest_order_id = max(int(order["id"]) for order in orders)

            for order in orders:
                stats["orders_seen"] += 1
                link_order_subscriptions(order, client, shopify_client, sess, stats)

            sess.commit()
            logger.info(f"Processed ReCharge page {page} ({len(orders)} orders)")

            if len(orders) < page_size:
                break
            page += 1

        if highest_order_id is not None:
            record_recharge_order_id(highest_order_id, sess)
            stats["last_order_id"] = highest_order_id
            logger.info(f"Updated last processed Recharge Order ID to {highest_order_id}")

        logger.info(f"All orders processed: {stats}")
        return stats

    if session is not None:
        return _run(session)
    with get_session() as sess:
        return _run(sess)


def main():
    """CLI entry point for the subscription linkage sync job."""
    setup_logging()
    try:
        deadline = Deadline.after(get_deadline_seconds("subscription_sync"))
        stats = run_subscription_sync(deadline=deadline)

        print("Subscription Sync Summary:")
        print(f"  Orders seen: {stats['orders_seen']}")
        print(f"  Subscription items: {stats['subscription_items']}")
        print(f"  Linked: {stats['linked']}")
        print(f"  Unmatched: {stats['unmatched']}")

    except KeyboardInterrupt:
        logger.info("Sync job interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Subscription sync failed: {e}")

    sys.exit(0)


if __name__ == "__main__":
    main()
