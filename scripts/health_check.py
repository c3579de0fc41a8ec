#!/usr/bin/env python3
"""
Health check script for the certificate synchronization controller.

This script performs health checks on the controller's dependencies:
- Configuration validation
- Kubernetes API connectivity (exports and imports can be listed)
- Export source secrets exist and are TLS-typed
- Import schedules parse and their exports resolve

Can be used as a pre-deployment validation or a periodic probe.

Usage:
    python scripts/health_check.py [--config CONFIG_PATH] [--json]

Exit codes:
    0: All checks passed
    1: One or more checks failed
"""

import argparse
import json
import sys
from datetime import datetime, timezone

import structlog

from cert_trust.errors import CertTrustError
from cert_trust.models.config import AppConfig
from cert_trust.store.base import ResourceStore
from cert_trust.sync.schedule_builder import ScheduleBuilder
from cert_trust.sync.sync_executor import SyncExecutor
from cert_trust.utils.config_loader import ConfigLoader

log = structlog.stdlib.get_logger()


class HealthChecker:
    """Performs health checks on controller dependencies."""

    def __init__(self, config_path: str | None = None, store: ResourceStore | None = None):
        """
        Initialize health checker.

        Args:
            config_path: Optional path to configuration file
            store: Optional resource store (a Kubernetes store is built if None)
        """
        self.config_path = config_path
        self.results: dict[str, dict] = {}
        self._config: AppConfig | None = None
        self._store = store

    def _get_store(self) -> ResourceStore:
        if self._store is None:
            from cert_trust.store.kubernetes import KubernetesResourceStore

            config = self._config or AppConfig()
            self._store = KubernetesResourceStore(config.kubernetes)
        return self._store

    def check_configuration(self) -> bool:
        """
        Check if configuration is valid.

        Returns:
            True if configuration is valid, False otherwise
        """
        check_name = "configuration"
        log.info("checking_configuration")

        try:
            config_loader = ConfigLoader()
            config = config_loader.load_config(self.config_path)
            warnings = config_loader.validate_config(config)
        except CertTrustError as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Configuration error: {e}",
                "details": {},
            }
            return False

        self._config = config
        self.results[check_name] = {
            "status": "warn" if warnings else "pass",
            "message": "Configuration loaded successfully",
            "details": {
                "in_cluster": config.kubernetes.in_cluster,
                "reschedule_interval_seconds": config.scheduler.reschedule_interval_seconds,
                "default_schedule": config.scheduler.default_schedule,
                "warnings": warnings,
            },
        }
        return True

    def check_cluster_connectivity(self) -> bool:
        """
        Check that exports and imports can be listed.

        Returns:
            True if the API server answered, False otherwise
        """
        check_name = "cluster_connectivity"
        log.info("checking_cluster_connectivity")

        try:
            store = self._get_store()
            exports = store.list_exports()
            imports = store.list_imports()
        except CertTrustError as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Cluster connection failed: {e}",
                "details": {},
            }
            return False

        self.results[check_name] = {
            "status": "pass",
            "message": "Successfully listed certificate resources",
            "details": {
                "exports": len(exports),
                "imports": len(imports),
            },
        }
        return True

    def check_export_sources(self) -> bool:
        """
        Check that every export's source secret exists and is TLS-typed.

        Returns:
            True if every export verified, False otherwise
        """
        check_name = "export_sources"
        log.info("checking_export_sources")

        try:
            store = self._get_store()
            exports = store.list_exports()
        except CertTrustError as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Could not list exports: {e}",
                "details": {},
            }
            return False

        if not exports:
            self.results[check_name] = {
                "status": "skip",
                "message": "No certificate exports declared",
                "details": {},
            }
            return True

        executor = SyncExecutor(store)
        failures = {}
        for export in exports:
            try:
                executor.sync_export(export.namespace, export.name, export.secret_ref)
            except CertTrustError as e:
                failures[str(export.key)] = str(e)

        self.results[check_name] = {
            "status": "fail" if failures else "pass",
            "message": f"{len(exports) - len(failures)} of {len(exports)} exports verified",
            "details": failures,
        }
        return not failures

    def check_import_schedules(self) -> bool:
        """
        Check that every import has a valid schedule and a resolvable export.

        Returns:
            True if every import could be scheduled, False otherwise
        """
        check_name = "import_schedules"
        log.info("checking_import_schedules")

        config = self._config or AppConfig()
        try:
            store = self._get_store()
            imports = store.list_imports()
            problems = {}
            for item in imports:
                if store.get_export(item.export_key) is None:
                    problems[str(item.key)] = f"export {item.export_key} not found"
        except CertTrustError as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Could not inspect imports: {e}",
                "details": {},
            }
            return False

        builder = ScheduleBuilder(
            job_factory=lambda item: lambda: None,
            default_schedule=config.scheduler.default_schedule,
            timezone=config.scheduler.timezone,
        )
        result = builder.build(imports)
        for diagnostic in result.diagnostics:
            problems[str(diagnostic.key)] = diagnostic.error

        self.results[check_name] = {
            "status": "fail" if problems else "pass",
            "message": f"{len(result.entries)} of {len(imports)} imports schedulable",
            "details": problems,
        }
        return not problems

    def run_all_checks(self) -> bool:
        """
        Run all health checks.

        Connectivity-dependent checks are skipped when configuration fails.

        Returns:
            True if all checks passed, False otherwise
        """
        if not self.check_configuration():
            return False

        checks = [
            self.check_cluster_connectivity,
            self.check_export_sources,
            self.check_import_schedules,
        ]

        all_passed = True
        for check in checks:
            if not check():
                all_passed = False

        return all_passed

    def get_summary(self) -> dict:
        """
        Get summary of all health check results.

        Returns:
            Dictionary with summary information
        """
        total_checks = len(self.results)
        passed = sum(1 for r in self.results.values() if r["status"] == "pass")
        failed = sum(1 for r in self.results.values() if r["status"] == "fail")
        warnings = sum(1 for r in self.results.values() if r["status"] == "warn")
        skipped = sum(1 for r in self.results.values() if r["status"] == "skip")

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "overall_status": "healthy" if failed == 0 else "unhealthy",
            "total_checks": total_checks,
            "passed": passed,
            "failed": failed,
            "warnings": warnings,
            "skipped": skipped,
            "checks": self.results,
        }


def main():
    """Main entry point for health check script."""
    parser = argparse.ArgumentParser(
        description="Health check for the certificate synchronization controller"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results in JSON format",
    )

    args = parser.parse_args()

    checker = HealthChecker(config_path=args.config)
    all_passed = checker.run_all_checks()
    summary = checker.get_summary()

    if args.json:
        print(json.dumps(summary, indent=2, default=str))
    else:
        print("\n" + "=" * 60)
        print("HEALTH CHECK SUMMARY")
        print("=" * 60)
        print(f"Timestamp: {summary['timestamp']}")
        print(f"Overall Status: {summary['overall_status'].upper()}")
        print(f"Total Checks: {summary['total_checks']}")
        print(f"Passed: {summary['passed']}")
        print(f"Failed: {summary['failed']}")
        print(f"Warnings: {summary['warnings']}")
        print(f"Skipped: {summary['skipped']}")
        print("\n" + "-" * 60)
        print("DETAILED RESULTS")
        print("-" * 60)

        for check_name, result in summary["checks"].items():
            status_symbol = {
                "pass": "✓",
                "fail": "✗",
                "warn": "⚠",
                "skip": "○",
            }.get(result["status"], "?")

            print(f"\n{status_symbol} {check_name.replace('_', ' ').title()}")
            print(f"  Status: {result['status'].upper()}")
            print(f"  Message: {result['message']}")

            if result["details"]:
                print("  Details:")
                for key, value in result["details"].items():
                    print(f"    - {key}: {value}")

        print("\n" + "=" * 60)

    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    main()
