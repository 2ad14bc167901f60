"""
BrowserBridge CLI: drive the bridge from a terminal.

Usage:
    python -m browserbridge.cli run capture screenshot
    python -m browserbridge.cli run audit accessibility https://example.com
    python -m browserbridge.cli status
    python -m browserbridge.cli complete browser-audit
    python -m browserbridge.cli install

Commands:
    run         Ensure a server is running, execute one command, print the result.
    status      Probe the configured endpoint and report install state.
    complete    List the actions a command domain accepts.
    install     Install the server package into the private npm prefix.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from browserbridge.bridge import BrowserToolsBridge
from browserbridge.commands.formatting import render_result, section_label
from browserbridge.core.config import BridgeConfig
from browserbridge.core.types import Command, CommandDomain, Failed
from browserbridge.errors import InstallError
from browserbridge.platform import get_log_dir, get_platform_info
from browserbridge.server.installer import DependencyInstaller
from browserbridge.server.locator import ProcessLocator


# ─────────────────────────────────────────────────────────────────────────────
# Setup
# ─────────────────────────────────────────────────────────────────────────────

def _configure_logging(level: str, verbose: bool) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    if verbose:
        logging.basicConfig(level=numeric, format=fmt, stream=sys.stderr)
        return
    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=numeric,
        format=fmt,
        filename=str(log_dir / "browserbridge.log"),
        filemode="a",
    )


def _load_config(args: argparse.Namespace) -> BridgeConfig:
    config = BridgeConfig.from_yaml(str(args.config)) if args.config else BridgeConfig.from_env()
    updates = {}
    if args.host:
        updates["host"] = args.host
    if args.port:
        updates["port"] = args.port
    if updates:
        config.server = config.server.model_copy(update=updates)
    return config


def _installer(config: BridgeConfig) -> DependencyInstaller:
    return DependencyInstaller(
        Path(config.package.install_dir),
        npm_command=config.package.npm_command,
        timeout=config.package.install_timeout_sec,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────

async def _run(args: argparse.Namespace, config: BridgeConfig) -> int:
    try:
        domain = CommandDomain.from_name(args.domain)
    except ValueError:
        print(f"Unknown command domain: {args.domain}", file=sys.stderr)
        return 2
    command = Command(domain=domain, action=args.action, arguments=tuple(args.arguments))

    bridge = BrowserToolsBridge(config)
    try:
        result = await bridge.run(command)
    finally:
        await bridge.close(stop_server=not args.keep_server)

    if args.json:
        print(result.model_dump_json(indent=2))
    else:
        print(f"== {section_label(result)} ==")
        print(render_result(result))
    return 1 if isinstance(result, Failed) else 0


async def _status(args: argparse.Namespace, config: BridgeConfig) -> int:
    endpoint = config.server.endpoint()
    locator = ProcessLocator(timeout=config.startup.probe_timeout_sec)
    try:
        reachable = await locator.probe(endpoint)
    finally:
        await locator.close()
    installed = _installer(config).is_installed(config.package.package_spec)

    if args.json:
        print(json.dumps(
            {
                "endpoint": str(endpoint),
                "reachable": reachable,
                "package": config.package.package_spec,
                "installed": installed,
                "platform": get_platform_info(),
            },
            indent=2,
        ))
    else:
        print("\nBrowserBridge Status")
        print("=" * 50)
        print(f"Endpoint: {endpoint.base_url}")
        print(f"Server reachable: {'YES' if reachable else 'NO'}")
        print(f"Package: {config.package.package_spec}")
        print(f"Installed under {config.package.install_dir}: {'YES' if installed else 'NO'}")
        print()
    return 0 if reachable else 1


def _complete(args: argparse.Namespace) -> int:
    try:
        completions = BrowserToolsBridge.complete(args.domain)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    for label, action in completions:
        print(f"{action}\t{label}")
    return 0


async def _install(args: argparse.Namespace, config: BridgeConfig) -> int:
    spec = args.package or config.package.package_spec
    config.ensure_directories()
    try:
        await _installer(config).ensure_available(spec)
    except InstallError as exc:
        print(f"Install failed: {exc.message}", file=sys.stderr)
        if exc.hint:
            print(exc.hint, file=sys.stderr)
        return 1
    print(f"{spec} is installed under {config.package.install_dir}")
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# Argument parser
# ─────────────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="browserbridge",
        description="BrowserBridge CLI: run BrowserTools commands from a terminal.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  browserbridge run capture screenshot\n"
               "  browserbridge run browser-audit seo --json\n"
               "  browserbridge status\n"
               "  browserbridge complete capture\n",
    )
    parser.add_argument("--config", type=Path, default=None, metavar="PATH",
                        help="YAML config file (default: environment variables).")
    parser.add_argument("--host", default=None, help="Override the server host.")
    parser.add_argument("--port", type=int, default=None, help="Override the server port.")
    parser.add_argument("-v", "--verbose", action="store_true", default=False,
                        help="Log to stderr instead of the log file.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Execute one command against the server.")
    run.add_argument("domain", help="capture | audit | debug (or browser-<domain>)")
    run.add_argument("action", help="Action within the domain, e.g. screenshot.")
    run.add_argument("arguments", nargs="*", help="Action arguments.")
    run.add_argument("--json", action="store_true", default=False,
                     help="Print the raw result as JSON.")
    run.add_argument("--keep-server", action="store_true", default=False,
                     help="Leave a server started by this run alive on exit.")

    status = subparsers.add_parser("status", help="Probe the configured endpoint.")
    status.add_argument("--json", action="store_true", default=False)

    complete = subparsers.add_parser("complete", help="List actions for a domain.")
    complete.add_argument("domain")

    install = subparsers.add_parser("install", help="Install the server package.")
    install.add_argument("--package", default=None, metavar="SPEC",
                         help="npm package spec (default: configured package).")
    return parser


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "complete":
        return _complete(args)

    config = _load_config(args)
    _configure_logging(config.log_level, args.verbose)

    if args.command == "run":
        return asyncio.run(_run(args, config))
    if args.command == "status":
        return asyncio.run(_status(args, config))
    if args.command == "install":
        return asyncio.run(_install(args, config))

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
