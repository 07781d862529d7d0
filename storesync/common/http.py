"""
Shared HTTP utilities for API client integrations.

Provides common retry patterns, request helpers, and response utilities
used by the Shopify and ReCharge adapters.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any, Dict, Optional, Sequence, Type, Union

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential
)

logger = logging.getLogger(__name__)


class RetryableHTTPError(Exception):
    """Rate limit or transient server error that is safe to retry."""


def safe_headers(response: requests.Response) -> Mapping[str, str]:
    """
    Safely extract headers from a response object.

    Real responses keep their case-insensitive mapping. Useful for mocked
    tests where response.headers might not be a mapping at all.
    """
    headers = getattr(response, "headers", None)
    if isinstance(headers, Mapping):
        return headers
    return {}


def parse_link_header(link_header: Optional[str]) -> Dict[str, str]:
    """
    Parse Link header for pagination URLs.

    Format: <url>; rel="next", <url>; rel="previous"

    Returns:
        Dictionary with 'next' and/or 'previous' URLs
    """
    links: Dict[str, str] = {}
    if not link_header:
        return links

    for link in link_header.split(","):
        link = link.strip()
        url_match = re.search(r"<([^>]+)>", link)
        rel_match = re.search(r'rel="([^"]+)"', link)

        if url_match and rel_match:
            links[rel_match.group(1)] = url_match.group(1)

    return links


def raise_for_retryable_status(response: requests.Response, service: str) -> None:
    """Turn 429 and 5xx responses into RetryableHTTPError."""
    if response.status_code == 429:
        logger.warning(f"{service} rate limit hit (429)")
        raise RetryableHTTPError(f"{service} rate limited")

    if 500 <= response.status_code < 600:
        logger.error(f"{service} server error {response.status_code}: {response.text}")
        raise RetryableHTTPError(f"{service} server error: {response.status_code}")


def request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 30,
    service: str = "API",
    retry_on: Sequence[Type[Exception]] = (
        RetryableHTTPError,
        requests.exceptions.Timeout,
        requests.exceptions.ConnectionError
    ),
    backoff: Optional[Dict[str, Union[int, float]]] = None,
    attempts: int = 5,
) -> requests.Response:
    """
    Make HTTP request with configurable retry logic.

    429/5xx responses are retried with exponential backoff; other 4xx
    responses raise requests.HTTPError immediately.

    Args:
        session: Requests session to use
        method: HTTP method (GET, POST, etc.)
        url: Full URL to request
        params: Query parameters
        json: JSON data for request body
        headers: Additional headers (merged with session headers)
        timeout: Request timeout in seconds
        service: Service name used in log messages
        retry_on: Exception types to retry on
        backoff: Backoff configuration dict with keys: multiplier, min, max
        attempts: Maximum number of attempts

    Returns:
        HTTP response object with a 2xx/3xx status
    """
    if backoff is None:
        backoff = {"multiplier": 1, "min": 4, "max": 60}

    @retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(
            multiplier=backoff.get("multiplier", 1),
            min=backoff.get("min", 4),
            max=backoff.get("max", 60)
        ),
        retry=retry_if_exception_type(tuple(retry_on)),
        reraise=True
    )
    def _make_request() -> requests.Response:
        logger.debug(f"Making {method} request to {url} with params: {params}")

        response = session.request(
            method=method,
            url=url,
            params=params,
            json=json,
            headers=headers,
            timeout=timeout
        )
        raise_for_retryable_status(response, service)

        if 400 <= response.status_code < 500:
            logger.error(f"{service} client error {response.status_code}: {response.text}")
            response.raise_for_status()

        return response

    return _make_request()
