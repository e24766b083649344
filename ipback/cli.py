"""Command line entry point.

    ipback run --fleet-size 4 --target 20.19.8.7
    ipback cleanup --fleet-size 4 --keep-slot 2

Flags override ``ipback.toml`` and ``IPBACK_*`` environment variables.
Exit codes: 0 address acquired (or cleanup clean), 1 fatal provider error,
2 invalid configuration, 3 attempt budget exhausted, 130 interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from loguru import logger
from rich.console import Console
from rich.text import Text

from ipback.config import CleanupSettings, RawConfig, Settings, load_config, resolve_cleanup, resolve_settings
from ipback.errors import ConfigError
from ipback.events import use_callback
from ipback.fleet import EXIT_ABORTED, EXIT_COMMITTED, EXIT_CONFIG, EXIT_INTERRUPTED, Fleet, FleetResult
from ipback.logging import setup_logging, teardown_logging
from ipback.providers.azure import Azure, AzureGateway
from ipback.providers.gateway import ProviderGateway
from ipback.reaper import Reaper, TeardownReport
from ipback.retry import RateLimiter
from ipback.summary import RunSummary
from ipback.types import Slot

type GatewayFactory = Callable[[Azure], ProviderGateway]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ipback", description="Re-acquire a specific Azure public IP address")
    sub = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, default=None, help="Config file (default: ./ipback.toml)")
    common.add_argument("--fleet-size", type=int, default=None)
    common.add_argument("--log-dir", type=str, default=None, help="Directory for the address ledger")
    common.add_argument("--log-level", type=str, default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    common.add_argument("--throttle-cooldown", type=float, default=None, help="Seconds to wait when throttled")

    run = sub.add_parser("run", parents=[common], help="Provision the fleet and hunt for the target address")
    run.add_argument("--target", type=str, default=None, help="Public IP address to acquire")
    run.add_argument("--max-attempts", type=int, default=None, help="Fleet-wide cap on allocation attempts")
    run.add_argument("--spot", action=argparse.BooleanOptionalAction, default=None)
    run.add_argument("--settle-delay", type=float, default=None, help="Seconds between attach and read-back")
    run.add_argument("--keep-losers", action="store_true", default=None, help="Keep losing slots after a match")
    run.add_argument(
        "--teardown-on-abort",
        action="store_true",
        default=None,
        help="Delete every slot's resources after a fatal error",
    )

    cleanup = sub.add_parser("cleanup", parents=[common], help="Delete every slot's resources by name")
    cleanup.add_argument("--keep-slot", type=int, action="append", default=[], help="Slot index to leave alone")

    return parser


def _overrides(args: argparse.Namespace) -> RawConfig:
    flags: dict[str, tuple[str, str]] = {
        "fleet_size": ("run", "fleet_size"),
        "target": ("run", "target_address"),
        "max_attempts": ("run", "max_attempts"),
        "spot": ("run", "spot"),
        "settle_delay": ("run", "settle_delay"),
        "throttle_cooldown": ("run", "throttle_cooldown"),
        "keep_losers": ("run", "keep_losers"),
        "teardown_on_abort": ("run", "teardown_on_abort"),
        "log_dir": ("log", "directory"),
        "log_level": ("log", "level"),
    }
    raw: RawConfig = {}
    for attr, (table, key) in flags.items():
        value = getattr(args, attr, None)
        if value is not None:
            raw.setdefault(table, {})[key] = value
    return raw


# =============================================================================
# Commands
# =============================================================================


async def _run(settings: Settings, factory: GatewayFactory, summary: RunSummary) -> FleetResult:
    gateway = factory(settings.azure)
    try:
        with use_callback(summary):
            return await Fleet(settings.run, gateway).run()
    finally:
        await gateway.close()


async def _cleanup(settings: CleanupSettings, factory: GatewayFactory, keep: set[int]) -> list[TeardownReport]:
    gateway = factory(settings.azure)
    try:
        reaper = Reaper(gateway, RateLimiter(settings.throttle_cooldown, settings.throttle_markers))
        slots = [Slot(i, settings.naming) for i in range(settings.fleet_size) if i not in keep]
        return await reaper.teardown_slots(slots)
    finally:
        await gateway.close()


def _command_run(raw: RawConfig, factory: GatewayFactory, console: Console) -> int:
    settings = resolve_settings(raw)
    handler_ids = setup_logging(settings.log)
    summary = RunSummary(target_address=settings.run.target_address)
    try:
        result = asyncio.run(_run(settings, factory, summary))
    finally:
        teardown_logging(handler_ids)
    console.print(summary.render())
    if result.error is not None:
        console.print(Text(str(result.error), style="red"))
    return result.exit_code


def _command_cleanup(raw: RawConfig, factory: GatewayFactory, keep: set[int], console: Console) -> int:
    settings = resolve_cleanup(raw)
    handler_ids = setup_logging(settings.log)
    try:
        reports = asyncio.run(_cleanup(settings, factory, keep))
    finally:
        teardown_logging(handler_ids)
    deleted = sum(len(r.deleted) for r in reports)
    failed = [(ref, err) for r in reports for ref, err in r.failed]
    console.print(Text(f"Deleted {deleted} resource(s) across {len(reports)} slot(s)"))
    for ref, err in failed:
        console.print(Text.assemble((f"Failed to delete {ref}: ", "red"), str(err)))
    return EXIT_ABORTED if failed else EXIT_COMMITTED


def main(
    argv: Sequence[str] | None = None,
    *,
    gateway_factory: GatewayFactory = AzureGateway.create,
    environ: Mapping[str, str] | None = None,
    console: Console | None = None,
) -> int:
    args = build_parser().parse_args(argv)
    console = console or Console(stderr=True)
    logger.remove()

    try:
        raw = load_config(config_file=args.config, environ=environ, overrides=_overrides(args))
        match args.command:
            case "run":
                return _command_run(raw, gateway_factory, console)
            case "cleanup":
                return _command_cleanup(raw, gateway_factory, set(args.keep_slot), console)
            case _:
                raise AssertionError(args.command)
    except ConfigError as e:
        console.print(Text.assemble(("Configuration error: ", "red"), str(e)))
        return EXIT_CONFIG
    except KeyboardInterrupt:
        console.print(Text("Interrupted", style="yellow"))
        return EXIT_INTERRUPTED


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
