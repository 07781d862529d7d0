#!/usr/bin/env python3
"""
Storesync ETL Runner

Runs the storesync batch jobs once, in order, with shared logging and
reporting. Scheduling is left to the caller (cron, a CI job, a container
orchestrator).

Usage:
    python run_etl.py --all                      # Run all enabled jobs
    python run_etl.py --job order_sync           # Run a specific job
    python run_etl.py --list                     # List available jobs
    python run_etl.py --init-db                  # Create missing tables
"""

import argparse
import importlib
import logging
import sys
from datetime import datetime

from storesync.config.loader import get_deadline_seconds, is_job_enabled
from storesync.utils.logging_config import setup_logging
from storesync.utils.time_windows import Deadline, format_duration

logger = logging.getLogger(__name__)


class ETLJob:
    """Represents a single ETL job."""

    def __init__(self, name: str, module_path: str, function_name: str, description: str):
        self.name = name
        self.module_path = module_path
        self.function_name = function_name
        self.description = description


class ETLRunner:
    """ETL job runner with per-job error handling and reporting."""

    def __init__(self):
        # subscription_sync matches line items written by order_sync
        self.jobs = {
            "catalog_sync": ETLJob(
                "catalog_sync",
                "storesync.jobs.catalog_sync",
                "run_catalog_sync",
                "Replace Shopify products and variants",
            ),
            "order_sync": ETLJob(
                "order_sync",
                "storesync.jobs.order_sync",
                "run_order_sync",
                "Import Shopify orders updated since the last run",
            ),
            "subscription_sync": ETLJob(
                "subscription_sync",
                "storesync.jobs.subscription_sync",
                "run_subscription_sync",
                "Link ReCharge subscriptions to stored line items",
            ),
        }

    def run_job(self, job_name: str) -> dict:
        """Run a single ETL job."""
        if job_name not in self.jobs:
            raise ValueError(f"Unknown job: {job_name}")

        job = self.jobs[job_name]
        if not is_job_enabled(job_name):
            logger.info(f"Skipping disabled job: {job.name}")
            return {"job": job_name, "status": "skipped", "duration": 0.0}

        logger.info(f"Starting ETL job: {job.name} - {job.description}")

        start_time = datetime.now()
        try:
            module = importlib.import_module(job.module_path)
            run_func = getattr(module, job.function_name)
            result = run_func(deadline=Deadline.after(get_deadline_seconds(job_name)))

            duration = (datetime.now() - start_time).total_seconds()
            logger.info(f"Job {job.name} completed successfully in {format_duration(duration)}")

            return {
                "job": job_name,
                "status": "success",
                "duration": duration,
                "result": result,
            }

        except Exception as e:
            duration = (datetime.now() - start_time).total_seconds()
            logger.exception(f"Job {job.name} failed after {format_duration(duration)}: {e}")

            return {
                "job": job_name,
                "status": "failed",
                "duration": duration,
                "error": str(e),
            }

    def run_all(self) -> dict:
        """Run every job in order; a failed job does not stop the rest."""
        logger.info("Starting full storesync ETL run")
        start_time = datetime.now()

        results = []
        for job_name in self.jobs:
            result = self.run_job(job_name)
            results.append(result)

            if result["status"] == "failed":
                logger.warning("Continuing with remaining jobs despite failure")

        duration = (datetime.now() - start_time).total_seconds()
        successful = sum(1 for r in results if r["status"] == "success")
        failed = sum(1 for r in results if r["status"] == "failed")

        logger.info(
            f"Full ETL run completed: {successful}/{len(results)} successful "
            f"in {format_duration(duration)}"
        )

        return {
            "duration": duration,
            "jobs": results,
            "summary": {"successful": successful, "failed": failed, "total": len(results)},
        }


def main():
    """CLI entry point for ETL runner."""
    parser = argparse.ArgumentParser(description="Storesync ETL Runner")

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--all", action="store_true", help="Run all enabled jobs")
    group.add_argument("--job", help="Run specific job by name")
    group.add_argument("--list", action="store_true", help="List available jobs")
    group.add_argument("--init-db", action="store_true", help="Create missing tables and exit")

    parser.add_argument("--log-level", help="Override the configured logging level")

    args = parser.parse_args()

    setup_logging(args.log_level)
    runner = ETLRunner()

    if args.list:
        for job in runner.jobs.values():
            state = "enabled" if is_job_enabled(job.name) else "disabled"
            print(f"{job.name:<20} {job.description} ({state})")
        return

    try:
        if args.init_db:
            from storesync.db.deps import init_db

            init_db()
            print("Database tables created")
            return

        if args.all:
            result = runner.run_all()
        else:
            job_result = runner.run_job(args.job)
            result = {
                "jobs": [job_result],
                "summary": {
                    "successful": int(job_result["status"] == "success"),
                    "failed": int(job_result["status"] == "failed"),
                    "total": 1,
                },
            }

        summary = result["summary"]
        print(f"\nSUMMARY: {summary['successful']}/{summary['total']} jobs successful")
        if summary["failed"] > 0:
            print(f"{summary['failed']} jobs failed - check logs for details")
            sys.exit(1)

        print("ETL run completed successfully")

    except Exception as e:
        logger.error(f"ETL run failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
