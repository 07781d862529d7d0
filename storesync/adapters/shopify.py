"""
Shopify API client for the storesync jobs.

Provides read-only access to the Shopify Admin API: GraphQL for products,
variants and selling plans, REST for order pages with Link header pagination.
Handles authentication, retries and rate limiting.
"""

import logging
import os
import time

import requests
from pydantic import BaseModel, Field
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..common.gid import ShopifyGID
from ..common.http import parse_link_header, safe_headers
from ..config.loader import cfg
from .graphql_queries import PRODUCTS_QUERY, SELLING_PLAN_QUERY, VARIANTS_QUERY

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2025-04"


class ShopifyConfig(BaseModel):
    """Shopify API configuration from environment variables."""

    store_domain: str = Field(..., description="Shop domain, e.g. my-shop.myshopify.com")
    access_token: str = Field(..., description="Shopify Admin API access token")
    api_version: str = Field(default=DEFAULT_API_VERSION, description="Shopify API version")
    timeout: float = Field(default=30, description="Per-request timeout in seconds")

    @classmethod
    def from_env(cls) -> "ShopifyConfig":
        """Load configuration from environment variables."""
        store_domain = os.getenv("SHOPIFY_STORE_DOMAIN", "")
        access_token = os.getenv("SHOPIFY_ACCESS_TOKEN", "")

        if not store_domain:
            raise ValueError("SHOPIFY_STORE_DOMAIN environment variable is required")
        if not access_token:
            raise ValueError("SHOPIFY_ACCESS_TOKEN environment variable is required")

        return cls(
            store_domain=store_domain,
            access_token=access_token,
            api_version=os.getenv(
                "SHOPIFY_API_VERSION", cfg("shopify.api_version", DEFAULT_API_VERSION)
            ),
            timeout=float(cfg("shopify.request_timeout_seconds", 30)),
        )

    @property
    def host(self) -> str:
        """Shop host without scheme; bare shop names get .myshopify.com."""
        host = self.store_domain.removeprefix("https://").removeprefix("http://").rstrip("/")
        if "." not in host:
            host = f"{host}.myshopify.com"
        return host

    @property
    def base_url(self) -> str:
        """Get the base Admin API URL for this shop."""
        return f"https://{self.host}/admin/api/{self.api_version}"

    @property
    def graphql_url(self) -> str:
        return f"{self.base_url}/graphql.json"


class ShopifyRateLimitError(Exception):
    """Retryable error for Shopify API calls (rate limits / transient failures)."""


class ShopifyGraphQLError(Exception):
    """The GraphQL response carried an errors array."""

    def __init__(self, errors: list):
        super().__init__(f"GraphQL errors: {errors}")
        self.errors = errors


def _is_throttled(payload: dict) -> bool:
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if not isinstance(errors, list):
        return False
    return any(
        isinstance(err, dict) and (err.get("extensions") or {}).get("code") == "THROTTLED"
        for err in errors
    )


class ShopifyClient:
    """Shopify Admin API client with pagination and rate limiting."""

    def __init__(self, config: ShopifyConfig | None = None):
        self.config = config or ShopifyConfig.from_env()
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": self.config.access_token,
                "User-Agent": "storesync/1.0",
            }
        )

    def _extract_rate_limit_info(
        self, response: requests.Response
    ) -> tuple[int | None, int | None]:
        """
        Extract REST rate limit information from response headers.

        Returns:
            Tuple of (current_calls, call_limit) or (None, None) if not available
        """
        rate_limit_header = safe_headers(response).get("X-Shopify-Shop-Api-Call-Limit")
        if isinstance(rate_limit_header, str) and rate_limit_header:
            try:
                current, limit = rate_limit_header.split("/")
                return int(current), int(limit)
            except (ValueError, AttributeError):
                pass
        return None, None

    def _handle_rate_limiting(self, current_calls: int | None, call_limit: int | None) -> None:
        """Back off when the REST leaky bucket is close to full."""
        if current_calls and call_limit:
            usage_ratio = current_calls / call_limit

            if usage_ratio >= 0.9:  # 90% of limit
                sleep_time = 2.0
                logger.warning(f"Rate limit at {usage_ratio:.1%}, sleeping {sleep_time}s")
                time.sleep(sleep_time)
            elif usage_ratio >= 0.7:  # 70% of limit
                time.sleep(0.5)

    @retry(
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        retry=retry_if_exception_type(
            (
                ShopifyRateLimitError,
                requests.exceptions.ConnectionError,
                requests.exceptions.Timeout,
            )
        ),
        reraise=True,
    )
    def _request(
        self,
        method: str,
        path_or_url: str,
        params: dict | None = None,
        json: dict | None = None,
    ) -> requests.Response:
        """
        Make authenticated request to Shopify API with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            path_or_url: Endpoint path relative to the base URL, or an absolute
                URL such as a Link header "next" page
            params: Query parameters
            json: JSON body (GraphQL requests)

        Raises:
            ShopifyRateLimitError: For rate limit errors (retried)
            requests.HTTPError: For other HTTP errors
        """
        if path_or_url.startswith("http"):
            url = path_or_url
        else:
            url = f"{self.config.base_url}/{path_or_url.lstrip('/')}"

        logger.debug(f"Making {method} request to {url} with params: {params}")

        response = self.session.request(
            method, url, params=params, json=json, timeout=self.config.timeout
        )

        # Log rate limit information
        current_calls, call_limit = self._extract_rate_limit_info(response)
        if current_calls and call_limit:
            logger.debug(f"API calls: {current_calls}/{call_limit}")

        # Handle rate limiting
        if response.status_code == 429:
            retry_after = float(safe_headers(response).get("Retry-After", 2))
            logger.warning(f"Rate limited, retrying after {retry_after} seconds")
            time.sleep(retry_after)
            raise ShopifyRateLimitError("Rate limited")

        # Handle server errors
        if 500 <= response.status_code < 600:
            logger.error(f"Server error {response.status_code}: {response.text}")
            raise ShopifyRateLimitError(f"Server error: {response.status_code}")

        # Handle client errors
        if 400 <= response.status_code < 500:
            logger.error(f"Client error {response.status_code}: {response.text}")
            response.raise_for_status()

        # GraphQL reports cost throttling as a 200 with a THROTTLED error
        if json is not None and _is_throttled(response.json()):
            logger.warning("GraphQL query throttled, backing off")
            raise ShopifyRateLimitError("GraphQL throttled")

        self._handle_rate_limiting(current_calls, call_limit)

        return response

    def graphql(self, query: str, variables: dict | None = None) -> dict:
        """
        Execute a GraphQL query and return its data object.

        Raises:
            ShopifyGraphQLError: If the response contains errors
        """
        payload = {"query": query, "variables": variables or {}}
        body = self._request("POST", self.config.graphql_url, json=payload).json()

        if body.get("errors"):
            logger.error(f"GraphQL errors: {body['errors']}")
            raise ShopifyGraphQLError(body["errors"])

        return body.get("data") or {}

    def fetch_products(self, first: int = 250, after: str | None = None) -> dict:
        """
        Fetch one page of products with their first page of variants.

        Returns:
            Connection dict with "pageInfo" and "nodes"
        """
        data = self.graphql(
            PRODUCTS_QUERY,
            {"firstProducts": first, "afterProductCursor": after, "firstVariants": first},
        )
        return data["products"]

    def fetch_product_variants(
        self, product_id: str, first: int = 250, after: str | None = None
    ) -> dict:
        """
        Fetch one further page of a product's variants.

        Args:
            product_id: Product global id
            first: Page size
            after: Cursor of the previous variant page

        Returns:
            Connection dict with "pageInfo" and "nodes"
        """
        data = self.graphql(
            VARIANTS_QUERY,
            {"productId": product_id, "firstVariants": first, "afterVariantCursor": after},
        )
        product = data.get("product")
        if product is None:
            raise ShopifyGraphQLError([{"message": f"Product {product_id} not found"}])
        return product["variants"]

    def fetch_order_selling_plans(self, order_id: int) -> list[dict]:
        """
        Fetch the selling plan attached to each line item of an order.

        Args:
            order_id: Numeric Shopify order id

        Returns:
            Line item nodes ({"id", "sellingPlan"}), empty if the order is unknown
        """
        data = self.graphql(SELLING_PLAN_QUERY, {"id": str(ShopifyGID.build("Order", order_id))})
        order = data.get("order") or {}
        return (order.get("lineItems") or {}).get("nodes") or []

    def get_orders_page(
        self, url: str | None = None, params: dict | None = None
    ) -> tuple[list[dict], str | None]:
        """
        Fetch one page of REST orders.

        Args:
            url: Absolute "next" URL from a previous page; when given, params
                are ignored because the URL already carries them
            params: Query parameters for the first page

        Returns:
            Tuple of (orders, next_page_url or None)
        """
        if url:
            response = self._request("GET", url)
        else:
            response = self._request("GET", "orders.json", params=params)

        orders = response.json().get("orders", [])
        links = parse_link_header(safe_headers(response).get("Link", ""))
        return orders, links.get("next")
