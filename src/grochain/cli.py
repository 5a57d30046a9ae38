"""Command-line entry point for the standalone payment reconciler.

Usage:
    grochain-reconciler start              # run passes until SIGINT/SIGTERM
    grochain-reconciler stop               # signal the process in the pid file
    grochain-reconciler verify <reference> # one manual verification, JSON out
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import signal
import sys
from pathlib import Path

from grochain.config import Settings, get_settings
from grochain.logging_config import get_logger, setup_logging

logger = get_logger("grochain.cli")


# ---------------------------------------------------------------------------
# PID file
# ---------------------------------------------------------------------------


def write_pid_file(path: str | Path) -> None:
    Path(path).write_text(f"{os.getpid()}\n", encoding="utf-8")


def read_pid_file(path: str | Path) -> int | None:
    """Return the pid recorded in ``path``, or None if absent or unreadable."""
    try:
        return int(Path(path).read_text(encoding="utf-8").strip())
    except (FileNotFoundError, ValueError):
        return None


def remove_pid_file(path: str | Path) -> None:
    Path(path).unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_reconciler(settings: Settings, stop_event: asyncio.Event | None = None) -> None:
    """Run the verifier on its schedule until ``stop_event`` is set."""
    from grochain.infrastructure.database.engine import close_db, get_session_factory
    from grochain.infrastructure.paystack_client import PaystackClient
    from grochain.services.payment_verifier import PaymentVerifier

    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)

    provider = PaystackClient.from_settings(settings)
    verifier = PaymentVerifier(get_session_factory(), provider, settings)
    write_pid_file(settings.reconciler_pid_file)
    try:
        verifier.start()
        await stop_event.wait()
        logger.info("reconciler.signal_received")
    finally:
        await verifier.stop()
        await provider.aclose()
        await close_db()
        remove_pid_file(settings.reconciler_pid_file)
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)


def stop_reconciler(settings: Settings) -> int:
    """Send SIGTERM to the running reconciler. Returns a process exit code."""
    pid = read_pid_file(settings.reconciler_pid_file)
    if pid is None:
        logger.warning("reconciler.not_running", pid_file=settings.reconciler_pid_file)
        return 1
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        logger.warning("reconciler.stale_pid_file", pid=pid)
        remove_pid_file(settings.reconciler_pid_file)
        return 1
    logger.info("reconciler.stop_requested", pid=pid)
    return 0


async def verify_once(settings: Settings, reference: str) -> dict:
    from grochain.infrastructure.database.engine import close_db, get_session_factory
    from grochain.infrastructure.paystack_client import PaystackClient
    from grochain.services.payment_verifier import PaymentVerifier

    async with PaystackClient.from_settings(settings) as provider:
        verifier = PaymentVerifier(get_session_factory(), provider, settings)
        try:
            return await verifier.verify_reference(reference)
        finally:
            await close_db()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="grochain-reconciler",
        description="GroChain payment reconciler",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: APP_LOG_LEVEL)",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("start", help="Run reconciliation passes until interrupted")
    commands.add_parser("stop", help="Stop the reconciler recorded in the pid file")
    verify = commands.add_parser("verify", help="Verify one payment reference")
    verify.add_argument("reference", help="Payment reference, e.g. GROCHAIN_...")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(
        log_level=args.log_level or settings.app_log_level,
        json_logs=not settings.is_development,
    )

    if args.command == "start":
        asyncio.run(run_reconciler(settings))
        return 0

    if args.command == "stop":
        return stop_reconciler(settings)

    from grochain.domain.exceptions import TransactionNotFoundError

    try:
        result = asyncio.run(verify_once(settings, args.reference))
    except TransactionNotFoundError as exc:
        print(json.dumps({"error": exc.code, "message": exc.message}), file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
