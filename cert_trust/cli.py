"""Command line entry point for the certificate synchronization controller.

Usage:
    cert-trust [--config CONFIG_PATH] [--log-level LEVEL] [--console-logs] run
    cert-trust sync-once
    cert-trust verify-exports
"""

import argparse
import signal
import sys

import structlog

from cert_trust import __version__
from cert_trust.errors import CertTrustError
from cert_trust.models.config import AppConfig
from cert_trust.store.kubernetes import KubernetesResourceStore
from cert_trust.sync.controller import SyncController
from cert_trust.utils.config_loader import ConfigLoader
from cert_trust.utils.logging_config import configure_logging_from_config

log = structlog.stdlib.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cert-trust",
        description="Keep TLS secrets synchronized across namespaces on a schedule",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
        default=None,
    )
    parser.add_argument(
        "--console-logs",
        action="store_true",
        help="Human-readable console logs instead of JSON",
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the controller until interrupted")
    run_parser.add_argument(
        "--reschedule-interval",
        type=float,
        help="Seconds between resource discovery passes",
        default=None,
    )
    run_parser.add_argument(
        "--no-immediate-sync",
        action="store_true",
        help="Do not sync every import once after the first schedule build",
    )

    subparsers.add_parser("sync-once", help="Synchronize every import once and exit")
    subparsers.add_parser("verify-exports", help="Check every export's source secret and exit")

    return parser


def load_app_config(args: argparse.Namespace) -> AppConfig:
    """Load configuration and apply command line overrides."""
    config = ConfigLoader().load_config(args.config)

    if args.log_level:
        config.logging.log_level = args.log_level
    if args.console_logs:
        config.logging.json_logs = False

    if getattr(args, "reschedule_interval", None):
        config.scheduler.reschedule_interval_seconds = args.reschedule_interval
    if getattr(args, "no_immediate_sync", False):
        config.scheduler.immediate_on_start = False

    return config


def run_controller(controller: SyncController) -> int:
    def handle_signal(signum, frame):
        log.info("received_shutdown_signal", signal=signal.Signals(signum).name)
        controller.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    controller.run()
    return 0


def sync_once(controller: SyncController) -> int:
    succeeded, failed = controller.sync_all_imports()
    log.info("sync_once_completed", succeeded=succeeded, failed=failed)

    print(f"Imports synced: {succeeded}, failed: {failed}")
    return 0 if failed == 0 else 1


def verify_exports(controller: SyncController) -> int:
    outcomes = controller.verify_exports()
    failed = 0

    for export, outcome in outcomes:
        if isinstance(outcome, CertTrustError):
            failed += 1
            print(f"✗ {export.key}: {outcome}")
        else:
            print(f"✓ {export.key}: {export.secret_ref} is a TLS secret")

    print(f"Exports verified: {len(outcomes) - failed}, failed: {failed}")
    return 0 if failed == 0 else 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command or "run"

    try:
        config = load_app_config(args)
    except CertTrustError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging_from_config(config.logging)
    ConfigLoader().validate_config(config)

    try:
        store = KubernetesResourceStore(config.kubernetes)
        controller = SyncController(store, config.scheduler)

        if command == "sync-once":
            return sync_once(controller)
        if command == "verify-exports":
            return verify_exports(controller)
        return run_controller(controller)
    except CertTrustError as e:
        log.error("controller_failed", command=command, error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
