"""
Tests for the ETL runner.
"""

from unittest.mock import Mock, patch

import pytest

from run_etl import ETLRunner


class TestETLRunner:
    """Test cases for job dispatch and reporting."""

    def test_jobs_registered_in_order(self):
        assert list(ETLRunner().jobs) == ["catalog_sync", "order_sync", "subscription_sync"]

    def test_unknown_job(self):
        with pytest.raises(ValueError, match="Unknown job"):
            ETLRunner().run_job("shipbob_orders")

    @patch("run_etl.importlib")
    def test_run_job_success(self, mock_importlib):
        module = Mock()
        module.run_order_sync.return_value = {"orders_processed": 3}
        mock_importlib.import_module.return_value = module

        result = ETLRunner().run_job("order_sync")

        assert result["status"] == "success"
        assert result["result"] == {"orders_processed": 3}
        mock_importlib.import_module.assert_called_once_with("storesync.jobs.order_sync")
        module.run_order_sync.assert_called_once_with(deadline=None)

    @patch("run_etl.importlib")
    def test_run_job_failure_reported(self, mock_importlib):
        module = Mock()
        module.run_catalog_sync.side_effect = RuntimeError("boom")
        mock_importlib.import_module.return_value = module

        result = ETLRunner().run_job("catalog_sync")

        assert result["status"] == "failed"
        assert result["error"] == "boom"

    @patch("run_etl.is_job_enabled", return_value=False)
    @patch("run_etl.importlib")
    def test_disabled_job_skipped(self, mock_importlib, mock_enabled):
        result = ETLRunner().run_job("subscription_sync")

        assert result["status"] == "skipped"
        mock_importlib.import_module.assert_not_called()

    @patch("run_etl.importlib")
    def test_run_all_continues_after_failure(self, mock_importlib):
        module = Mock()
        module.run_catalog_sync.side_effect = RuntimeError("boom")
        module.run_order_sync.return_value = {}
        module.run_subscription_sync.return_value = {}
        mock_importlib.import_module.return_value = module

        result = ETLRunner().run_all()

        assert result["summary"] == {"successful": 2, "failed": 1, "total": 3}
        module.run_subscription_sync.assert_called_once()
