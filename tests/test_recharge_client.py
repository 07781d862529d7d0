"""
Tests for the ReCharge API client.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from storesync.adapters.recharge import RechargeClient, RechargeConfig


def make_response(body: dict, status_code: int = 200) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.headers = {}
    response.text = str(body)
    response.json.return_value = body
    return response


class TestRechargeConfig:
    """Test cases for ReCharge configuration."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("RECHARGE_API_TOKEN", "rc_token")
        monkeypatch.delenv("RECHARGE_API_BASE", raising=False)

        config = RechargeConfig.from_env()

        assert config.token == "rc_token"
        assert config.base_url == "https://api.rechargeapps.com"
        assert config.api_version == "2021-11"

    def test_from_env_requires_token(self, monkeypatch):
        monkeypatch.delenv("RECHARGE_API_TOKEN", raising=False)

        with pytest.raises(ValueError, match="RECHARGE_API_TOKEN"):
            RechargeConfig.from_env()


class TestRechargeClient:
    """Test cases for ReCharge API client."""

    @pytest.fixture
    def mock_config(self) -> RechargeConfig:
        return RechargeConfig(token="rc_test", base_url="https://api.example.test/")

    @patch("storesync.adapters.recharge.requests.Session")
    def test_auth_headers(self, mock_session, mock_config):
        RechargeClient(mock_config)

        headers = mock_session.return_value.headers.update.call_args[0][0]
        assert headers["X-Recharge-Access-Token"] == "rc_test"
        assert headers["X-Recharge-Version"] == "2021-11"

    @patch("storesync.adapters.recharge.requests.Session")
    def test_get_orders_page(self, mock_session, mock_config):
        session = mock_session.return_value
        session.request.return_value = make_response({"orders": [{"id": 3}, {"id": 2}]})

        client = RechargeClient(mock_config)
        orders = client.get_orders_page(2, limit=50)

        assert [o["id"] for o in orders] == [3, 2]
        kwargs = session.request.call_args[1]
        assert kwargs["method"] == "GET"
        assert kwargs["url"] == "https://api.example.test/orders"
        assert kwargs["params"] == {"limit": 50, "page": 2, "sort_by": "id-desc"}

    @patch("storesync.adapters.recharge.requests.Session")
    def test_get_orders_page_past_end(self, mock_session, mock_config):
        mock_session.return_value.request.return_value = make_response({"orders": []})

        client = RechargeClient(mock_config)

        assert client.get_orders_page(7) == []

    @patch("storesync.adapters.recharge.requests.Session")
    def test_get_subscription(self, mock_session, mock_config):
        session = mock_session.return_value
        session.request.return_value = make_response({"subscription": {"id": 42, "status": "active"}})

        client = RechargeClient(mock_config)

        assert client.get_subscription(42) == {"id": 42, "status": "active"}
        assert session.request.call_args[1]["url"] == "https://api.example.test/subscriptions/42"

    @patch("storesync.adapters.recharge.requests.Session")
    def test_get_subscription_without_body(self, mock_session, mock_config):
        mock_session.return_value.request.return_value = make_response({})

        client = RechargeClient(mock_config)

        assert client.get_subscription(42) is None

    @patch("storesync.adapters.recharge.requests.Session")
    def test_client_error_raises(self, mock_session, mock_config):
        response = make_response({"errors": "not found"}, status_code=404)
        response.raise_for_status.side_effect = requests.HTTPError("404 Client Error")
        mock_session.return_value.request.return_value = response

        client = RechargeClient(mock_config)

        with pytest.raises(requests.HTTPError):
            client.get_subscription(404)
        assert mock_session.return_value.request.call_count == 1
