# AutoBlockIP - CLI: run, scan, inspect the blocklist, manage config
from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

from autoblockip import __version__
from autoblockip.config import (
    CONFIG_ENV,
    check_config,
    find_config_path,
    get_default_config,
    get_default_config_path,
    load_config,
    save_config,
    set_config_key,
    validate_config,
)
from autoblockip.errors import ConfigError, FeedUnavailable, FirewallReadError
from autoblockip.models import ExitCode

logger = __import__("logging").getLogger("autoblockip.cli")


# --- Pipeline commands ---

async def cmd_run(config: dict[str, Any], dry_run: bool) -> ExitCode:
    from autoblockip.pipeline import BlockPipeline
    pipeline = BlockPipeline(config, dry_run=dry_run or None)
    report = await pipeline.run()
    result = report.result
    if result is not None:
        logger.info(
            "done: suspicious=%d added=%d applied=%s%s",
            len(report.suspicious),
            len(result.added_addresses),
            result.applied,
            " (dry run)" if result.dry_run else "",
        )
    else:
        logger.info("done: no reconciliation (%s)", "; ".join(report.errors) or "aborted")
    return report.exit_code


async def cmd_scan(config: dict[str, Any]) -> ExitCode:
    from autoblockip.pipeline import BlockPipeline
    pipeline = BlockPipeline(config)
    try:
        out = await pipeline.scan()
    except FeedUnavailable as e:
        logger.error("Audit log unavailable: %s", e)
        return ExitCode.FEED_UNAVAILABLE
    print(json.dumps(out, indent=2))
    return ExitCode.OK


async def cmd_blocklist(config: dict[str, Any]) -> ExitCode:
    from autoblockip.pipeline import BlockPipeline
    pipeline = BlockPipeline(config)
    try:
        current = await pipeline.read_blocklist()
    except FirewallReadError as e:
        logger.error("Cannot read blocklist: %s", e)
        return ExitCode.UNEXPECTED_ERROR
    print(json.dumps({
        "rule_name": pipeline.gateway.rule_name,
        "addresses": sorted(current.addresses),
        "count": len(current.addresses),
        "errors": current.errors,
    }, indent=2))
    return ExitCode.OK


def cmd_export_audit(config: dict[str, Any], path: str | None) -> ExitCode:
    from autoblockip.reporter.audit import read_audit
    audit_path = path or config.get("audit", {}).get("file", "")
    if not audit_path or not Path(audit_path).exists():
        print("[]")
        return ExitCode.OK
    print(json.dumps(read_audit(audit_path), indent=2))
    return ExitCode.OK


# --- Setup & config commands ---

def cmd_setup(config_dir: str | None, force: bool) -> ExitCode:
    """Write a default config file."""
    config_path = Path(config_dir).expanduser() / "config.yaml" if config_dir else get_default_config_path()
    if config_path.exists() and not force:
        print(f"Config already exists at {config_path} (use --force to overwrite)")
        return ExitCode.OK
    cfg = get_default_config()
    cfg["audit"]["file"] = str(config_path.parent / "audit.jsonl")
    try:
        save_config(config_path, cfg)
    except PermissionError:
        print(f"Cannot write {config_path} (permission denied). Use --config-dir with a writable path.", file=sys.stderr)
        return ExitCode.UNEXPECTED_ERROR
    print(f"Wrote default config to {config_path}")
    print("Next: autoblockip --config", config_path, "config validate")
    return ExitCode.OK


def cmd_config_show(config: dict[str, Any]) -> ExitCode:
    """Print merged config as YAML."""
    import yaml
    print(yaml.safe_dump(config, default_flow_style=False, allow_unicode=True, sort_keys=False))
    return ExitCode.OK


def cmd_config_validate(config: dict[str, Any]) -> ExitCode:
    errs = validate_config(config)
    if not errs:
        print("Config is valid.")
        return ExitCode.OK
    for e in errs:
        print(f"Error: {e}", file=sys.stderr)
    return ExitCode.UNEXPECTED_ERROR


def cmd_config_set(config_path: str | None, key: str, value: str, output_path: str | None) -> ExitCode:
    """Set a config key (dot notation) and save."""
    path = find_config_path(config_path)
    if path is None:
        print("Error: No config file found. Run 'autoblockip setup' first.", file=sys.stderr)
        return ExitCode.UNEXPECTED_ERROR
    config = load_config(path)
    try:
        set_config_key(config, key, value)
    except (ValueError, TypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return ExitCode.UNEXPECTED_ERROR
    out = Path(output_path or path)
    save_config(out, config)
    print(f"Set {key} = {value!r}; saved to {out}")
    return ExitCode.OK


def cmd_status(config: dict[str, Any], config_path: str | None) -> ExitCode:
    resolved = find_config_path(config_path)
    det = config.get("detection", {})
    print("AutoBlockIP status")
    print("  Version:  ", __version__)
    print("  Config:   ", resolved or config_path or os.environ.get(CONFIG_ENV) or "(defaults only)")
    print("  Feed:     ", config.get("feed", {}).get("source"))
    print("  Rule:     ", config.get("firewall", {}).get("rule_name"))
    print("  Threshold:", det.get("threshold"), f"failures in {det.get('window_minutes')} min")
    print("  Audit:    ", config.get("audit", {}).get("file"))
    return ExitCode.OK


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="autoblockip", description="Block brute-force logon sources in the host firewall")
    ap.add_argument("--config", "-c", help="Config file path")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = ap.add_subparsers(dest="command")

    p_run = sub.add_parser("run", help="Run one detection and blocklist update pass (default)")
    p_run.add_argument("--dry-run", action="store_true", help="Compute the update but do not write the firewall rule")
    p_run.add_argument("--pause", action="store_true", help="Wait for Enter before exiting")

    sub.add_parser("scan", help="Show suspicious addresses and offense counts (no firewall access)")
    sub.add_parser("blocklist", help="Show the addresses currently blocked by the rule")

    p_setup = sub.add_parser("setup", help="Write a default config file")
    p_setup.add_argument("--config-dir", help="Config directory")
    p_setup.add_argument("--force", action="store_true", help="Overwrite existing config")

    p_config = sub.add_parser("config", help="config show|validate|set")
    p_config_sub = p_config.add_subparsers(dest="config_cmd", required=True)
    p_config_sub.add_parser("show", help="Show merged config (YAML)")
    p_config_sub.add_parser("validate", help="Validate config file")
    p_config_set = p_config_sub.add_parser("set", help="Set a key (e.g. detection.threshold 5)")
    p_config_set.add_argument("key", help="Dot-separated key")
    p_config_set.add_argument("value", help="Value (string; true/false and numbers auto-parsed)")
    p_config_set.add_argument("--output", "-o", help="Write to this path instead of --config")

    sub.add_parser("status", help="Show version, config path and settings")

    p_ea = sub.add_parser("export-audit", help="Export audit log as JSON")
    p_ea.add_argument("--path", "-p", help="Audit file path")
    return ap


def main(argv: list[str] | None = None) -> ExitCode:
    from autoblockip.main import configure_logging

    args = build_parser().parse_args(argv)
    config_path = args.config
    config = load_config(config_path)
    configure_logging(config, verbose=args.verbose)
    command = args.command or "run"

    if command == "run":
        try:
            check_config(config)
        except ConfigError as e:
            logger.error("Invalid config: %s", e)
            return ExitCode.UNEXPECTED_ERROR
        code = asyncio.run(cmd_run(config, getattr(args, "dry_run", False)))
        if getattr(args, "pause", False):
            try:
                input("Press Enter to exit...")
            except EOFError:
                pass
        return code
    if command == "scan":
        return asyncio.run(cmd_scan(config))
    if command == "blocklist":
        return asyncio.run(cmd_blocklist(config))
    if command == "setup":
        return cmd_setup(args.config_dir, args.force)
    if command == "config":
        if args.config_cmd == "show":
            return cmd_config_show(config)
        if args.config_cmd == "validate":
            return cmd_config_validate(config)
        return cmd_config_set(config_path, args.key, args.value, args.output)
    if command == "status":
        return cmd_status(config, config_path)
    if command == "export-audit":
        return cmd_export_audit(config, args.path)
    return ExitCode.OK
