#!/usr/bin/env python
"""
CLI for directive-driven table provisioning
Usage: python -m tableprov.cli --config config/provision.yaml --source "raw.*" --target "..."
"""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from tableprov.common.config_models import load_batch_options, load_platform_config
from tableprov.common.errors import ConfigError, DirectiveParseError
from tableprov.common.logger import LogFormat, get_logger, init_logger
from tableprov.common.utils import expand_env, load_yaml, set_dotted
from tableprov.core.orchestrator import BatchStatus, provision
from tableprov.plugins.registry import get_platform

EXIT_CODES = {
    BatchStatus.SUCCEEDED: 0,
    BatchStatus.PARTIAL: 2,
    BatchStatus.FAILED: 1,
}


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Provision tables from a directive list",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tableprov.cli --source "raw.orders raw.customers" --target "orders customers(promote=yes)"
  python -m tableprov.cli --source "raw.*" --promote --persist
  python -m tableprov.cli --source raw.events --target "events(append=force)"
  python -m tableprov.cli --config config/provision.yaml --set batch.widen_threshold=32 --dry-run

Exit codes: 0 all tables completed, 2 some tables completed, 1 nothing completed or invalid input
        """
    )
    parser.add_argument(
        "--config",
        default="config/provision.yaml",
        help="Path to configuration file (default: config/provision.yaml)"
    )
    parser.add_argument("--dotenv", help="Path to .env file to load (optional)")
    parser.add_argument(
        "--set",
        action="append",
        help="Override config with dotted.key=value (repeatable)"
    )
    parser.add_argument("--source", help="Source tables, e.g. \"raw.orders raw.customers\" or \"raw.*\"")
    parser.add_argument("--target", help="Destination directives, e.g. \"orders(partition=(region))\"")

    opts = parser.add_argument_group("batch options")
    opts.add_argument("--promote", action=argparse.BooleanOptionalAction, default=None,
                      help="Promote tables to global scope")
    opts.add_argument("--persist", action=argparse.BooleanOptionalAction, default=None,
                      help="Persist promoted tables")
    opts.add_argument("--append", choices=["none", "normal", "force"], default=None,
                      help="Batch append mode")
    opts.add_argument("--fast-promote", action=argparse.BooleanOptionalAction, default=None,
                      help="Load into staging, then promote")
    opts.add_argument("--widen", action=argparse.BooleanOptionalAction, default=None,
                      help="Widen long fixed-width text columns")
    opts.add_argument("--widen-threshold", default=None,
                      help="Byte length above which text columns are widened (default 16)")
    opts.add_argument("--preserve-labels", action=argparse.BooleanOptionalAction, default=None,
                      help="Keep source column labels")
    opts.add_argument("--lowercase", action=argparse.BooleanOptionalAction, default=None,
                      help="Lowercase column names")
    opts.add_argument("--notes", action=argparse.BooleanOptionalAction, default=None,
                      help="Emit informational NOTE lines")

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and validate, print the plan per table, change nothing"
    )
    parser.add_argument(
        "--log-level",
        choices=["user", "dev", "debug"],
        default="user",
        help="Logging verbosity: user (clean), dev (detailed), debug (very verbose)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output logs in JSON-Lines format"
    )
    return parser


def _load_config(args: argparse.Namespace) -> Dict[str, Any]:
    config_path = Path(args.config)
    if config_path.exists():
        config = load_yaml(config_path)
        if not isinstance(config, dict):
            raise ConfigError(f"Config must be a mapping: {config_path}")
    elif args.config != "config/provision.yaml":
        raise ConfigError(f"Config not found: {config_path}")
    else:
        config = {}

    for override in args.set or []:
        if "=" not in override:
            raise ConfigError(f"--set expects dotted.key=value, got: {override}")
        key, value = override.split("=", 1)
        set_dotted(config, key.strip(), value)

    return expand_env(config)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)

    # Initialize logger
    log_format = LogFormat.JSON if args.json else LogFormat.TEXT
    init_logger(args.log_level, log_format)
    log = get_logger()

    # Load environment
    load_dotenv(args.dotenv) if args.dotenv else load_dotenv()

    try:
        config = _load_config(args)
        platform_cfg = load_platform_config(config.get("platform"))
        options = load_batch_options(
            config.get("batch"),
            promote=args.promote,
            persist=args.persist,
            append=args.append,
            fast_promote=args.fast_promote,
            widen_text=args.widen,
            widen_threshold=args.widen_threshold,
            preserve_labels=args.preserve_labels,
            lowercase_columns=args.lowercase,
            notes=args.notes,
        )
        sources = args.source or config.get("sources")
        if not sources:
            raise ConfigError("No source tables given (--source or 'sources' in config)")
        destinations = args.target if args.target is not None else config.get("destinations")
        try:
            platform = get_platform(platform_cfg)
        except ValueError as e:
            raise ConfigError(str(e)) from e
    except ConfigError as e:
        log.error(str(e))
        return 1

    try:
        platform.connect()
    except Exception as e:
        log.error(f"Could not open {platform.name} platform at {platform_cfg.path}: {e}")
        return 1

    try:
        if args.dry_run:
            log.info("DRY RUN MODE - no tables will be changed")
        result = provision(platform, str(sources), destinations, options, log=log, dry_run=args.dry_run)
    except (DirectiveParseError, ConfigError) as e:
        log.error(str(e))
        return 1
    finally:
        platform.close()

    log.info(result.summary())
    return EXIT_CODES[result.status]


if __name__ == "__main__":
    raise SystemExit(main())
