#!/usr/bin/env python3
"""
Catalog sync job.

Fetches every product and all of its variants from the Shopify Admin GraphQL
API and mirrors them into the products/variants tables. Performs a full
replace: both tables are cleared before the first page is written.
"""

import logging
import sys
import time
from decimal import Decimal

import requests

from ..adapters.shopify import ShopifyClient, ShopifyGraphQLError, ShopifyRateLimitError
from ..common.etl import coerce_decimal, coerce_int, dig, parse_date
from ..common.gid import InvalidGIDError, gid_to_id
from ..config.loader import cfg, get_deadline_seconds
from ..db.deps import get_session
from ..db.upserts import clear_catalog, insert_products, insert_variants
from ..utils.logging_config import setup_logging
from ..utils.time_windows import Deadline, DeadlineExceeded, check_deadline

logger = logging.getLogger(__name__)

# Failures that end the page loop without failing the job
FETCH_ERRORS = (
    requests.RequestException,
    ShopifyGraphQLError,
    ShopifyRateLimitError,
    InvalidGIDError,
    DeadlineExceeded,
)


def transform_variant(product_id: int, node: dict) -> dict:
    """Flatten a GraphQL variant node into a variants row."""
    return {
        "id": gid_to_id(node["id"], "ProductVariant"),
        "gid": node["id"],
        "product_id": product_id,
        "price": coerce_decimal(node.get("price"), Decimal("0")),
        "sku": node.get("sku") or "",
        "inventory_qty": coerce_int(node.get("inventoryQuantity")) or 0,
    }


def transform_product(node: dict) -> tuple[dict, list[dict]]:
    """
    Flatten a GraphQL product node (with its full variant list) into rows.

    Returns:
        Tuple of (product_row, variant_rows)
    """
    product_id = gid_to_id(node["id"], "Product")
    tags = node.get("tags")

    product = {
        "id": product_id,
        "gid": node["id"],
        "title": node.get("title") or "",
        "inventory_available_qty": coerce_int(node.get("totalInventory")) or 0,
        "tags": ",".join(tags) if tags is not None else None,
        "img_src": dig(node, "featuredMedia", "preview", "image", "url"),
        "description": node.get("description") or "",
        "maximum_price": coerce_decimal(
            dig(node, "priceRangeV2", "maxVariantPrice", "amount"), Decimal("0")
        ),
        "product_type": node.get("productType") or "",
        "status": node.get("status") or "",
        "vendor": node.get("vendor"),
        "updated_at": parse_date(node.get("updatedAt")),
    }

    variants = [
        transform_variant(product_id, variant)
        for variant in dig(node, "variants", "nodes") or []
    ]
    return product, variants


def fetch_remaining_variants(
    client: ShopifyClient,
    product: dict,
    page_size: int,
    page_delay: float,
    deadline: Deadline | None = None,
) -> tuple[list[dict], int]:
    """
    Materialize a product's full variant list.

    The products query embeds the first variant page; further pages are
    requested while that connection reports hasNextPage.

    Returns:
        Tuple of (variant_nodes, extra_pages_fetched)
    """
    connection = product.get("variants") or {}
    variants = list(connection.get("nodes") or [])
    page_info = connection.get("pageInfo") or {}
    pages = 0

    while page_info.get("hasNextPage"):
        check_deadline(deadline, f"variant page for {product['id']}")
        more = client.fetch_product_variants(product["id"], page_size, page_info.get("endCursor"))
        variants.extend(more.get("nodes") or [])
        page_info = more.get("pageInfo") or {}
        pages += 1

        # Rate limiting for variant pagination
        time.sleep(page_delay)

    if pages:
        logger.info(f"Fetched {pages} extra variant pages for {product['id']} ({len(variants)} variants)")
    return variants, pages


def run_catalog_sync(
    client: ShopifyClient | None = None,
    session=None,
    page_size: int | None = None,
    page_delay: float | None = None,
    deadline: Deadline | None = None,
) -> dict:
    """
    Run the catalog sync job.

    Args:
        client: Shopify client (built from the environment when omitted)
        session: Database session (opened with get_session() when omitted)
        page_size: Products/variants per page
        page_delay: Seconds to sleep after every page fetch
        deadline: Optional wall-clock budget; expiry ends the page loop

    Returns:
        Dictionary with sync statistics
    """
    page_size = page_size or cfg("shopify.page_size", 250)
    page_delay = cfg("shopify.page_delay_seconds", 0.1) if page_delay is None else page_delay

    logger.info("Starting catalog sync job (full replace)")
    client = client or ShopifyClient()

    def _run(sess) -> dict:
        stats = {
            "products_processed": 0,
            "products_inserted": 0,
            "variants_processed": 0,
            "variants_inserted": 0,
            "pages_fetched": 0,
            "variant_pages_fetched": 0,
            "aborted": False,
        }

        variants_deleted, products_deleted = clear_catalog(sess)
        sess.commit()
        logger.info(
            f"Cleared existing catalog: {products_deleted} products, {variants_deleted} variants"
        )

        has_next_page = True
        after = None

        while has_next_page:
            try:
                check_deadline(deadline, "products page")
                page = client.fetch_products(page_size, after)
                stats["pages_fetched"] += 1

                product_rows: list[dict] = []
                variant_rows: list[dict] = []
                for node in page.get("nodes") or []:
                    all_variants, extra_pages = fetch_remaining_variants(
                        client, node, page_size, page_delay, deadline
                    )
                    stats["variant_pages_fetched"] += extra_pages
                    product, variants = transform_product({**node, "variants": {"nodes": all_variants}})
                    product_rows.append(product)
                    variant_rows.extend(variants)

                page_info = page.get("pageInfo") or {}
                has_next_page = bool(page_info.get("hasNextPage"))
                after = page_info.get("endCursor")
            except FETCH_ERRORS as e:
                logger.error(f"Catalog sync stopped after {stats['pages_fetched']} pages: {e}")
                stats["aborted"] = True
                break

            if product_rows:
                # Products first: variants reference them
                stats["products_inserted"] += insert_products(product_rows, sess)
                stats["variants_inserted"] += insert_variants(variant_rows, sess)
                sess.commit()

            stats["products_processed"] += len(product_rows)
            stats["variants_processed"] += len(variant_rows)
            logger.info(
                f"Fetched {len(product_rows)} products. Total: {stats['products_processed']}"
            )

            # Rate limiting
            time.sleep(page_delay)

        logger.info(f"Catalog sync completed: {stats}")
        return stats

    if session is not None:
        return _run(session)
    with get_session() as sess:
        return _run(sess)


def main():
    """CLI entry point for the catalog sync job."""
    setup_logging()
    try:
        deadline = Deadline.after(get_deadline_seconds("catalog_sync"))
        stats = run_catalog_sync(deadline=deadline)

        # Print summary for CLI usage
        print("Catalog Sync Summary:")
        print(f"  Products processed: {stats['products_processed']}")
        print(f"  Products inserted: {stats['products_inserted']}")
        print(f"  Variants processed: {stats['variants_processed']}")
        print(f"  Variants inserted: {stats['variants_inserted']}")
        if stats["aborted"]:
            print("  Stopped early: see log for the failing page")

    except KeyboardInterrupt:
        logger.info("Sync job interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Catalog sync failed: {e}")

    sys.exit(0)


if __name__ == "__main__":
    main()
