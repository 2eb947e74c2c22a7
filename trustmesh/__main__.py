#!/usr/bin/env python3
"""
Session Trust Mesh CLI Entrypoint

Commands:
    trustmesh demo      Create, authenticate and delete a session end to end
    trustmesh report    Print the security report for the configured store
    trustmesh verify    Run one hardware self-test
    trustmesh version   Show version info

Usage:
    python -m trustmesh demo

    # Against redis
    TRUSTMESH_STORE_BACKEND=redis TRUSTMESH_REDIS_HOST=redis.example.com python -m trustmesh report
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import NoReturn

from trustmesh.core.config import TrustMeshConfig
from trustmesh.observability.logging import LogLevel, setup_logging


def main() -> NoReturn:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="trustmesh",
        description="Session trust mesh: fingerprint-gated session records",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override TRUSTMESH_LOG_LEVEL (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--plain-logs",
        action="store_true",
        help="Human-readable logs instead of JSON",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    demo_parser = subparsers.add_parser("demo", help="Run the end-to-end demo")
    demo_parser.add_argument(
        "--operations", "-n",
        type=int,
        default=3,
        help="Number of operations to create (default: 3)",
    )

    subparsers.add_parser("report", help="Print the security report")
    subparsers.add_parser("verify", help="Run one hardware self-test")
    subparsers.add_parser("version", help="Show version info")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "version":
        print(f"trustmesh {_get_version()}")
        sys.exit(0)

    config_result = TrustMeshConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}")
        sys.exit(1)
    config = config_result.unwrap()

    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}")
        sys.exit(1)

    level = LogLevel.from_name(args.log_level or config.observability.log_level)
    setup_logging(level, json_output=config.observability.log_json and not args.plain_logs)

    if args.command == "demo":
        sys.exit(asyncio.run(_run_demo(config, args.operations)))
    if args.command == "report":
        sys.exit(asyncio.run(_run_report(config)))
    if args.command == "verify":
        sys.exit(_run_verify(config))

    parser.print_help()
    sys.exit(1)


def _get_version() -> str:
    from trustmesh import __version__
    return __version__


async def _open(config: TrustMeshConfig):
    from trustmesh.session.coordinator import SessionTrustCoordinator
    from trustmesh.storage.factory import open_document_store
    from trustmesh.trust.identity import LocalIdentityProvider

    opened = await open_document_store(config.store)
    if opened.is_err():
        print(f"Store error: {opened.error}")
        return None, None

    documents = opened.unwrap()
    coordinator = SessionTrustCoordinator.from_config(config, documents, LocalIdentityProvider())
    await coordinator.start()
    await coordinator.loader.wait()
    return coordinator, documents


async def _close(coordinator, documents) -> None:
    await coordinator.stop()
    close = getattr(documents, "close", None)
    if close is not None:
        await close()


async def _run_demo(config: TrustMeshConfig, operation_count: int) -> int:
    from trustmesh.core.errors import TrustMeshError
    from trustmesh.session.models import (
        AuthenticationType,
        OperationDraft,
        SecurityLevel,
        SessionDraft,
    )

    print("\n" + "=" * 60)
    print("Session Trust Mesh - Demo")
    print("=" * 60 + "\n")

    coordinator, documents = await _open(config)
    if coordinator is None:
        return 1

    print(f"✓ Store ready: {coordinator.ready.value}")
    print(f"  Owner: {coordinator.owner}")

    try:
        draft = SessionDraft(
            session_name="Firmware rollout",
            security_level=SecurityLevel.QUANTUM,
            authentication_type=AuthenticationType.QUOREMIND,
        )
        operations = [
            OperationDraft(session_name=f"Step {i + 1}", authentication_type=AuthenticationType.GMAK)
            for i in range(operation_count)
        ]
        session_id = await coordinator.create_session_with_operations(draft, operations)
        await coordinator.loader.wait()
        print(f"\n✓ Created session {session_id} with {operation_count} operations")

        bundle = (await coordinator.store.get_session_with_operations(session_id)).unwrap()
        bundle = await coordinator.set_session_authentication(bundle, True)
        print(f"  {bundle.session.session_name}: {bundle.session.status_text()}")
        for op in bundle.operations:
            print(f"    [{op.order}] {op.session_name}: {op.status_text()} hash={op.auth_hash}")

        print(await coordinator.generate_report())

        removed = await coordinator.delete_session(session_id)
        print(f"✓ Deleted session and {removed} operations")
    except TrustMeshError as e:
        print(f"✗ {e}")
        return 1
    finally:
        await _close(coordinator, documents)

    return 0


async def _run_report(config: TrustMeshConfig) -> int:
    coordinator, documents = await _open(config)
    if coordinator is None:
        return 1
    try:
        print(await coordinator.generate_report())
    finally:
        await _close(coordinator, documents)
    return 0


def _run_verify(config: TrustMeshConfig) -> int:
    from trustmesh.trust.fingerprint import FingerprintVerifier

    reading = FingerprintVerifier(config.trust).verify()
    status = "SECURE" if reading.is_valid else "COMPROMISED"
    print(f"{status}: measured {reading.measured:.6f}, expected {reading.expected}")
    return 0 if reading.is_valid else 2


if __name__ == "__main__":
    main()
