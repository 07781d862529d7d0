"""
Tests for the Shopify Admin API client.

Mocks the requests session and validates URL building, GraphQL error handling
and REST Link header pagination.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from storesync.adapters.shopify import (
    ShopifyClient,
    ShopifyConfig,
    ShopifyGraphQLError,
    _is_throttled,
)


def make_response(body: dict, status_code: int = 200, headers: dict | None = None) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = str(body)
    response.json.return_value = body
    return response


class TestShopifyConfig:
    """Test cases for Shopify configuration."""

    def test_base_url_from_bare_shop_name(self):
        config = ShopifyConfig(store_domain="test-shop", access_token="shpat_test123")

        assert config.host == "test-shop.myshopify.com"
        assert config.base_url == "https://test-shop.myshopify.com/admin/api/2025-04"
        assert config.graphql_url.endswith("/admin/api/2025-04/graphql.json")

    def test_base_url_strips_scheme(self):
        config = ShopifyConfig(
            store_domain="https://shop.example.com/", access_token="x", api_version="2024-07"
        )

        assert config.base_url == "https://shop.example.com/admin/api/2024-07"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SHOPIFY_STORE_DOMAIN", "env-shop.myshopify.com")
        monkeypatch.setenv("SHOPIFY_ACCESS_TOKEN", "shpat_env")
        monkeypatch.delenv("SHOPIFY_API_VERSION", raising=False)

        config = ShopifyConfig.from_env()

        assert config.store_domain == "env-shop.myshopify.com"
        assert config.access_token == "shpat_env"
        assert config.api_version == "2025-04"

    def test_from_env_requires_token(self, monkeypatch):
        monkeypatch.setenv("SHOPIFY_STORE_DOMAIN", "env-shop.myshopify.com")
        monkeypatch.delenv("SHOPIFY_ACCESS_TOKEN", raising=False)

        with pytest.raises(ValueError, match="SHOPIFY_ACCESS_TOKEN"):
            ShopifyConfig.from_env()


class TestShopifyClient:
    """Test cases for Shopify API client."""

    @pytest.fixture
    def mock_config(self) -> ShopifyConfig:
        return ShopifyConfig(store_domain="test-shop", access_token="shpat_test123")

    @patch("storesync.adapters.shopify.requests.Session")
    def test_auth_header(self, mock_session, mock_config):
        ShopifyClient(mock_config)

        headers = mock_session.return_value.headers.update.call_args[0][0]
        assert headers["X-Shopify-Access-Token"] == "shpat_test123"

    @patch("storesync.adapters.shopify.requests.Session")
    def test_graphql_returns_data(self, mock_session, mock_config):
        session = mock_session.return_value
        session.request.return_value = make_response({"data": {"products": {"nodes": []}}})

        client = ShopifyClient(mock_config)
        data = client.graphql("query { shop { name } }", {"a": 1})

        assert data == {"products": {"nodes": []}}
        method, url = session.request.call_args[0]
        assert method == "POST"
        assert url == "https://test-shop.myshopify.com/admin/api/2025-04/graphql.json"
        assert session.request.call_args[1]["json"]["variables"] == {"a": 1}

    @patch("storesync.adapters.shopify.requests.Session")
    def test_graphql_errors_raise(self, mock_session, mock_config):
        mock_session.return_value.request.return_value = make_response(
            {"errors": [{"message": "Field 'nope' doesn't exist"}]}
        )

        client = ShopifyClient(mock_config)

        with pytest.raises(ShopifyGraphQLError) as exc_info:
            client.graphql("query { nope }")
        assert exc_info.value.errors[0]["message"] == "Field 'nope' doesn't exist"

    @patch("storesync.adapters.shopify.requests.Session")
    def test_client_error_not_retried(self, mock_session, mock_config):
        response = make_response({"errors": "Not Found"}, status_code=404)
        response.raise_for_status.side_effect = requests.HTTPError("404 Client Error")
        mock_session.return_value.request.return_value = response

        client = ShopifyClient(mock_config)

        with pytest.raises(requests.HTTPError):
            client.get_orders_page(params={"limit": 250})
        assert mock_session.return_value.request.call_count == 1

    @patch("storesync.adapters.shopify.requests.Session")
    def test_fetch_products_variables(self, mock_session, mock_config):
        connection = {"pageInfo": {"hasNextPage": False, "endCursor": None}, "nodes": []}
        session = mock_session.return_value
        session.request.return_value = make_response({"data": {"products": connection}})

        client = ShopifyClient(mock_config)
        result = client.fetch_products(first=50, after="cursor-1")

        assert result == connection
        variables = session.request.call_args[1]["json"]["variables"]
        assert variables == {"firstProducts": 50, "afterProductCursor": "cursor-1", "firstVariants": 50}

    @patch("storesync.adapters.shopify.requests.Session")
    def test_fetch_product_variants_unknown_product(self, mock_session, mock_config):
        mock_session.return_value.request.return_value = make_response({"data": {"product": None}})

        client = ShopifyClient(mock_config)

        with pytest.raises(ShopifyGraphQLError):
            client.fetch_product_variants("gid://shopify/Product/1", 250, "abc")

    @patch("storesync.adapters.shopify.requests.Session")
    def test_fetch_order_selling_plans(self, mock_session, mock_config):
        nodes = [
            {
                "id": "gid://shopify/LineItem/5001",
                "sellingPlan": {"sellingPlanId": "gid://shopify/SellingPlan/9", "name": "Monthly"},
            }
        ]
        session = mock_session.return_value
        session.request.return_value = make_response(
            {"data": {"order": {"id": "gid://shopify/Order/1001", "lineItems": {"nodes": nodes}}}}
        )

        client = ShopifyClient(mock_config)
        result = client.fetch_order_selling_plans(1001)

        assert result == nodes
        assert session.request.call_args[1]["json"]["variables"] == {"id": "gid://shopify/Order/1001"}

    @patch("storesync.adapters.shopify.requests.Session")
    def test_fetch_order_selling_plans_unknown_order(self, mock_session, mock_config):
        mock_session.return_value.request.return_value = make_response({"data": {"order": None}})

        client = ShopifyClient(mock_config)

        assert client.fetch_order_selling_plans(1001) == []

    @patch("storesync.adapters.shopify.requests.Session")
    def test_orders_page_follows_link_header(self, mock_session, mock_config):
        next_url = "https://test-shop.myshopify.com/admin/api/2025-04/orders.json?page_info=abc"
        first = make_response(
            {"orders": [{"id": 1}]},
            headers={"Link": f'<{next_url}>; rel="next"'},
        )
        last = make_response(
            {"orders": [{"id": 2}]},
            headers={"Link": '<https://test-shop.myshopify.com/prev>; rel="previous"'},
        )
        session = mock_session.return_value
        session.request.side_effect = [first, last]

        client = ShopifyClient(mock_config)

        orders, url = client.get_orders_page(params={"limit": 250, "status": "any"})
        assert orders == [{"id": 1}]
        assert url == next_url

        orders, url = client.get_orders_page(url=url)
        assert orders == [{"id": 2}]
        assert url is None

        first_call, second_call = session.request.call_args_list
        assert first_call[0][1] == "https://test-shop.myshopify.com/admin/api/2025-04/orders.json"
        assert first_call[1]["params"] == {"limit": 250, "status": "any"}
        assert second_call[0][1] == next_url
        assert second_call[1]["params"] is None

    @patch("storesync.adapters.shopify.time.sleep")
    @patch("storesync.adapters.shopify.requests.Session")
    def test_backs_off_near_rest_call_limit(self, mock_session, mock_sleep, mock_config):
        mock_session.return_value.request.return_value = make_response(
            {"orders": []}, headers={"X-Shopify-Shop-Api-Call-Limit": "38/40"}
        )

        client = ShopifyClient(mock_config)
        client.get_orders_page(params={"limit": 250})

        mock_sleep.assert_called_once_with(2.0)


class TestThrottleDetection:
    """Test cases for GraphQL cost throttling detection."""

    def test_throttled(self):
        payload = {"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]}
        assert _is_throttled(payload) is True

    def test_other_errors_not_throttled(self):
        assert _is_throttled({"errors": [{"message": "Bad field"}]}) is False
        assert _is_throttled({"data": {}}) is False
