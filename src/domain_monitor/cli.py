"""
Command-line interface for the domain monitor.

Commands:
- run: Start the monitoring loop (or a single cycle with --once)
- check: Observe every configured domain once and print its fingerprint
- config: Configuration management (init, show, validate)

The configuration path defaults to $DOMAIN_MONITOR_CONFIG (a .env file in
the working directory is honored) and then to ./config.yaml.
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from . import __version__
from .audit_logger import AuditLogger
from .config import (
    DEFAULT_CONFIG_PATH,
    MonitorConfig,
    create_default_config,
    load_config,
    save_config,
)
from .exceptions import ConfigLoadFailure
from .fingerprint import fingerprint, normalize
from .orchestrator import CycleOrchestrator
from .scheduler import PollScheduler

CONFIG_ENV_VAR = "DOMAIN_MONITOR_CONFIG"


def resolve_config_path(cli_value: Optional[str]) -> Path:
    """Pick the configuration path: CLI flag, then environment, then default."""
    if cli_value:
        return Path(cli_value)
    env_value = os.getenv(CONFIG_ENV_VAR, "").strip()
    if env_value:
        return Path(env_value)
    return DEFAULT_CONFIG_PATH


def _load_or_report(config_path: Path) -> Optional[MonitorConfig]:
    try:
        return load_config(config_path)
    except ConfigLoadFailure as e:
        print(f"Error loading config: {e.message}", file=sys.stderr)
        return None


async def run_monitor(
    config_path: Path,
    config: MonitorConfig,
    dry_run: bool = False,
    once: bool = False,
) -> int:
    """
    Run the monitoring loop until interrupted.

    Args:
        config_path: Configuration file, re-read every cycle
        config: Configuration loaded at startup (for logger settings)
        dry_run: Render notifications without sending them
        once: Run a single cycle and exit

    Returns:
        Exit code
    """
    logger = AuditLogger.from_config(config.logging)
    scheduler = PollScheduler(config_path=config_path, logger=logger, dry_run=dry_run)

    logger.info(
        "PollScheduler",
        "Domain monitor started",
        {
            "version": __version__,
            "config_path": str(config_path),
            "domains": len(config.domains),
            "interval_minutes": config.effective_interval,
            "dry_run": dry_run or config.dry_run,
        },
    )

    try:
        await scheduler.run(max_cycles=1 if once else None)
    except ConfigLoadFailure as e:
        logger.log_error("PollScheduler", "Configuration could not be loaded", error=e)
        return 1
    return 0


async def check_domains(config: MonitorConfig, as_json: bool = False) -> int:
    """
    Observe every configured domain once and print its canonical state.

    No notifications are sent.

    Returns:
        Exit code (0 if every domain could be observed, 1 otherwise)
    """
    logger = AuditLogger.from_config(config.logging)
    orchestrator = CycleOrchestrator.from_config(config, logger=logger, dry_run=True)
    observations, skipped = await orchestrator.collect_all(config)

    results = []
    for observation in observations:
        canonical = normalize(observation)
        results.append({
            "domain": observation.domain,
            "fingerprint": fingerprint(canonical),
            "canonical": canonical.as_dict(),
        })

    if as_json:
        print(json.dumps({
            "observed": results,
            "skipped": [
                {"domain": s.domain, "error_code": s.error_code, "error": s.error}
                for s in skipped
            ],
        }, indent=2, ensure_ascii=False))
    else:
        for result in results:
            canonical = result["canonical"]
            print(f"{result['domain']}: {result['fingerprint']}")
            print(f"  Registrar: {canonical['registrar']}")
            print(f"  Name Servers: {', '.join(canonical['name_servers']) or 'unknown'}")
            print(f"  Created: {canonical['created']}")
            print(f"  Expires: {canonical['expires']}")
            print(f"  Updated: {canonical['updated']}")
            print(f"  Address: {canonical['address']}")
        for skip in skipped:
            print(f"{skip.domain}: skipped ({skip.error_code}: {skip.error})")

    return 0 if not skipped else 1


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    config_path = resolve_config_path(args.config)
    config = _load_or_report(config_path)
    if config is None:
        return 1

    try:
        return asyncio.run(run_monitor(
            config_path=config_path,
            config=config,
            dry_run=args.dry_run,
            once=args.once,
        ))
    except KeyboardInterrupt:
        return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command."""
    config = _load_or_report(resolve_config_path(args.config))
    if config is None:
        return 1
    return asyncio.run(check_domains(config, as_json=args.json))


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = resolve_config_path(args.path)

    if args.action == "show":
        config = _load_or_report(config_path)
        if config is None:
            print("Use 'config init' to create a default configuration.")
            return 1

        print(f"Configuration from: {config_path}")
        print(f"  Interval: {config.effective_interval} minute(s)")
        print(f"  Workers: {config.max_workers}")
        print(f"  Dry run: {config.dry_run}")
        print(f"  Global webhooks: {', '.join(s.kind for s in config.webhooks) or '(none)'}")
        print("  Domains:")
        for domain in config.domains:
            kinds = ", ".join(s.kind for s in domain.webhooks) or "(global only)"
            print(f"    - {domain.name} [{kinds}]")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        try:
            save_config(create_default_config(), config_path)
        except OSError as e:
            print(f"Error saving config: {e}", file=sys.stderr)
            return 1
        print(f"Configuration created at: {config_path}")
        return 0

    elif args.action == "validate":
        config = _load_or_report(config_path)
        if config is None:
            return 1

        print(f"Configuration at {config_path} is valid.")
        if config.interval != config.effective_interval:
            print(
                f"Note: interval {config.interval} is below the minimum and "
                f"will run every {config.effective_interval} minutes."
            )
        return 0

    return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="domain-monitor",
        description="Watch WHOIS and DNS state of domains and notify webhooks on change",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'run' command
    run_parser = subparsers.add_parser(
        "run",
        help="Start the monitoring loop",
    )
    run_parser.add_argument(
        "--config", "-c",
        help=f"Path to configuration file (default: ${CONFIG_ENV_VAR} or config.yaml)",
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Render notifications without sending them",
    )
    run_parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit",
    )
    run_parser.set_defaults(func=cmd_run)

    # 'check' command
    check_parser = subparsers.add_parser(
        "check",
        help="Observe all configured domains once and print their fingerprints",
    )
    check_parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    check_parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON",
    )
    check_parser.set_defaults(func=cmd_check)

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
