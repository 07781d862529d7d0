"""
ReCharge API client for the storesync jobs.

Provides read-only access to the ReCharge subscription billing API: order
pages (page/limit pagination) and subscription details.
"""

import logging
import os

import requests
from pydantic import BaseModel, Field

from ..common.http import request_with_retry
from ..config.loader import cfg

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.rechargeapps.com"
DEFAULT_API_VERSION = "2021-11"


class RechargeConfig(BaseModel):
    """ReCharge API configuration from environment variables."""

    token: str = Field(..., description="ReCharge API access token")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="ReCharge API base URL")
    api_version: str = Field(default=DEFAULT_API_VERSION, description="X-Recharge-Version header")
    timeout: float = Field(default=30, description="Per-request timeout in seconds")

    @classmethod
    def from_env(cls) -> "RechargeConfig":
        """Load configuration from environment variables."""
        token = os.getenv("RECHARGE_API_TOKEN", "")
        if not token:
            raise ValueError("RECHARGE_API_TOKEN environment variable is required")

        return cls(
            token=token,
            base_url=os.getenv("RECHARGE_API_BASE", DEFAULT_BASE_URL),
            api_version=cfg("recharge.api_version", DEFAULT_API_VERSION),
            timeout=float(cfg("recharge.request_timeout_seconds", 30)),
        )


class RechargeClient:
    """ReCharge API client."""

    def __init__(self, config: RechargeConfig | None = None):
        self.config = config or RechargeConfig.from_env()
        self.session = requests.Session()

        # Set up authentication headers
        self.session.headers.update(
            {
                "X-Recharge-Access-Token": self.config.token,
                "X-Recharge-Version": self.config.api_version,
                "Accept": "application/json",
                "User-Agent": "storesync/1.0",
            }
        )

    def _make_request(self, method: str, endpoint: str, params: dict | None = None) -> dict:
        """Make authenticated request to ReCharge API with retry logic."""
        url = f"{self.config.base_url.rstrip('/')}{endpoint}"
        response = request_with_retry(
            self.session,
            method,
            url,
            params=params,
            timeout=self.config.timeout,
            service="ReCharge",
            backoff={"multiplier": 1, "min": 4, "max": 10},
            attempts=3,
        )
        return response.json()

    def get_orders_page(self, page: int, limit: int = 250, sort_by: str = "id-desc") -> list[dict]:
        """
        Fetch one page of orders.

        Args:
            page: 1-based page number
            limit: Page size (ReCharge maximum is 250)
            sort_by: Sort order; id-desc puts the newest order first

        Returns:
            List of raw order dictionaries (empty when past the last page)
        """
        params = {"limit": limit, "page": page, "sort_by": sort_by}
        logger.debug(f"Fetching ReCharge orders page {page}")
        return self._make_request("GET", "/orders", params).get("orders") or []

    def get_subscription(self, subscription_id: int | str) -> dict | None:
        """Fetch one subscription; None if the response has no subscription body."""
        return self._make_request("GET", f"/subscriptions/{subscription_id}").get("subscription")
