"""
Tests for the catalog sync job.

Mocks the Shopify GraphQL connections and validates the full-replace write
into the products and variants tables.
"""

from decimal import Decimal
from unittest.mock import Mock, patch

import pytest
import requests

from storesync.db.models import Product, Variant
from storesync.jobs.catalog_sync import main, run_catalog_sync, transform_product
from storesync.utils.time_windows import Deadline


def variant_node(variant_id: int, price: str = "10.00") -> dict:
    return {
        "id": f"gid://shopify/ProductVariant/{variant_id}",
        "price": price,
        "sku": f"SKU-{variant_id}",
        "inventoryQuantity": 5,
    }


def product_node(product_id: int, variant_ids: list[int], has_more_variants: bool = False) -> dict:
    return {
        "id": f"gid://shopify/Product/{product_id}",
        "title": f"Product {product_id}",
        "totalInventory": 12,
        "tags": ["coffee", "beans"],
        "featuredMedia": {"preview": {"image": {"url": f"https://cdn.example/{product_id}.png"}}},
        "description": "Whole beans",
        "priceRangeV2": {"maxVariantPrice": {"amount": "24.50"}},
        "productType": "Coffee",
        "status": "ACTIVE",
        "vendor": "Roastery",
        "updatedAt": "2024-01-15T10:30:00Z",
        "variants": {
            "pageInfo": {
                "hasNextPage": has_more_variants,
                "endCursor": f"variants-{product_id}" if has_more_variants else None,
            },
            "nodes": [variant_node(v) for v in variant_ids],
        },
    }


def products_page(nodes: list[dict], end_cursor: str | None = None) -> dict:
    return {
        "pageInfo": {"hasNextPage": end_cursor is not None, "endCursor": end_cursor},
        "nodes": nodes,
    }


class TestTransformProduct:
    """Test cases for product flattening."""

    def test_transform_product(self):
        product, variants = transform_product(product_node(1, [11, 12]))

        assert product["id"] == 1
        assert product["gid"] == "gid://shopify/Product/1"
        assert product["tags"] == "coffee,beans"
        assert product["img_src"] == "https://cdn.example/1.png"
        assert product["maximum_price"] == Decimal("24.50")
        assert product["inventory_available_qty"] == 12
        assert [v["id"] for v in variants] == [11, 12]
        assert all(v["product_id"] == 1 for v in variants)
        assert variants[0]["price"] == Decimal("10.00")

    def test_transform_product_defaults(self):
        node = {"id": "gid://shopify/Product/2", "variants": {"nodes": []}}

        product, variants = transform_product(node)

        assert product["title"] == ""
        assert product["tags"] is None
        assert product["img_src"] is None
        assert product["maximum_price"] == Decimal("0")
        assert product["inventory_available_qty"] == 0
        assert variants == []

    def test_empty_tag_list_kept_as_empty_string(self):
        node = {"id": "gid://shopify/Product/3", "tags": [], "variants": {"nodes": []}}

        product, _ = transform_product(node)

        assert product["tags"] == ""


@patch("storesync.jobs.catalog_sync.time.sleep")
class TestCatalogSyncJob:
    """Test cases for the catalog sync job."""

    def test_paginates_products_and_variants(self, mock_sleep, db_session):
        client = Mock()
        client.fetch_products.side_effect = [
            products_page([product_node(1, list(range(1, 251)), has_more_variants=True)], "products-1"),
            products_page([product_node(2, [1001])]),
        ]
        client.fetch_product_variants.return_value = {
            "pageInfo": {"hasNextPage": False, "endCursor": None},
            "nodes": [variant_node(v) for v in range(251, 301)],
        }

        stats = run_catalog_sync(client=client, session=db_session, page_size=250, page_delay=0)

        assert stats["pages_fetched"] == 2
        assert stats["variant_pages_fetched"] == 1
        assert stats["products_inserted"] == 2
        assert stats["variants_inserted"] == 301
        assert stats["aborted"] is False

        assert db_session.query(Variant).filter_by(product_id=1).count() == 300
        assert db_session.query(Product).count() == 2

        assert [c.args for c in client.fetch_products.call_args_list] == [
            (250, None),
            (250, "products-1"),
        ]
        client.fetch_product_variants.assert_called_once_with(
            "gid://shopify/Product/1", 250, "variants-1"
        )

    def test_rerun_replaces_catalog(self, mock_sleep, db_session):
        first = Mock()
        first.fetch_products.return_value = products_page(
            [product_node(1, [11]), product_node(2, [21])]
        )
        run_catalog_sync(client=first, session=db_session, page_delay=0)

        second = Mock()
        second.fetch_products.return_value = products_page([product_node(3, [31, 32])])
        stats = run_catalog_sync(client=second, session=db_session, page_delay=0)

        assert stats["products_inserted"] == 1
        assert {p.id for p in db_session.query(Product)} == {3}
        assert {v.id for v in db_session.query(Variant)} == {31, 32}

    def test_fetch_error_stops_without_raising(self, mock_sleep, db_session):
        client = Mock()
        client.fetch_products.side_effect = [
            products_page([product_node(1, [11])], "products-1"),
            requests.ConnectionError("connection reset"),
        ]

        stats = run_catalog_sync(client=client, session=db_session, page_delay=0)

        assert stats["aborted"] is True
        assert stats["pages_fetched"] == 1
        assert {p.id for p in db_session.query(Product)} == {1}
        assert {v.id for v in db_session.query(Variant)} == {11}

    def test_malformed_gid_stops_without_raising(self, mock_sleep, db_session):
        node = product_node(1, [11])
        node["id"] = "not-a-gid"
        client = Mock()
        client.fetch_products.return_value = products_page([node])

        stats = run_catalog_sync(client=client, session=db_session, page_delay=0)

        assert stats["aborted"] is True
        assert db_session.query(Product).count() == 0

    def test_expired_deadline_stops_before_first_page(self, mock_sleep, db_session):
        client = Mock()

        stats = run_catalog_sync(
            client=client, session=db_session, page_delay=0, deadline=Deadline(0)
        )

        assert stats["aborted"] is True
        client.fetch_products.assert_not_called()

    def test_sleeps_between_pages(self, mock_sleep, db_session):
        client = Mock()
        client.fetch_products.side_effect = [
            products_page([product_node(1, [11])], "products-1"),
            products_page([product_node(2, [21])]),
        ]

        run_catalog_sync(client=client, session=db_session, page_delay=0.25)

        assert mock_sleep.call_count == 2
        mock_sleep.assert_called_with(0.25)

    def test_sleeps_after_variant_pages(self, mock_sleep, db_session):
        client = Mock()
        client.fetch_products.return_value = products_page(
            [product_node(1, list(range(1, 251)), has_more_variants=True)]
        )
        client.fetch_product_variants.side_effect = [
            {
                "pageInfo": {"hasNextPage": True, "endCursor": "variants-1b"},
                "nodes": [variant_node(v) for v in range(251, 501)],
            },
            {
                "pageInfo": {"hasNextPage": False, "endCursor": None},
                "nodes": [variant_node(v) for v in range(501, 551)],
            },
        ]

        stats = run_catalog_sync(client=client, session=db_session, page_size=250, page_delay=0.1)

        # two variant pages plus one product page
        assert mock_sleep.call_count == 3
        assert all(c.args == (0.1,) for c in mock_sleep.call_args_list)
        assert stats["variant_pages_fetched"] == 2
        assert stats["variants_inserted"] == 550
        assert [c.args[2] for c in client.fetch_product_variants.call_args_list] == [
            "variants-1",
            "variants-1b",
        ]


class TestCatalogSyncMain:
    """Test cases for the catalog sync entry point."""

    @patch("storesync.jobs.catalog_sync.setup_logging")
    @patch("storesync.jobs.catalog_sync.run_catalog_sync")
    def test_failure_still_exits_zero(self, mock_run, mock_logging):
        mock_run.side_effect = RuntimeError("database unavailable")

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 0
