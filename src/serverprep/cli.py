"""Command-line interface for serverprep."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import CONFIG_FILE, ProvisioningConfig, SSHSettings, init_config, load_config, load_ssh_settings
from .errors import ServerPrepError
from .orchestrator import ProvisioningOrchestrator, TeardownOrchestrator
from .secrets import LocalSecrets
from .ssh import ContentTransfer, RemoteExecutor
from .utils.logging import get_logger, set_verbose

logger = get_logger(__name__)


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: ProvisioningConfig
    ssh: SSHSettings
    app_root: Path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="serverprep",
        description="Prepare a server over SSH for a Puma/nginx application.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=CONFIG_FILE,
        help=f"Path to the configuration file (default: {CONFIG_FILE}).",
    )
    parser.add_argument(
        "--app-root",
        type=str,
        default=None,
        help="Local application directory holding config/master.key (default: cwd).",
    )
    parser.add_argument("--port", type=int, default=None, help="SSH port")
    parser.add_argument("--key-path", default=None, help="Path to SSH private key")
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Log every script sent to the server",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("init", help="Create a sample configuration file")
    subparsers.add_parser(
        "check", help="Check server dependencies and passwordless sudo without changing anything"
    )
    subparsers.add_parser("server", help="Prepare the remote server for deployment")
    teardown_parser = subparsers.add_parser(
        "teardown", help="Remove the application's service and nginx site"
    )
    teardown_parser.add_argument(
        "--yes", "-y", action="store_true",
        help="Do not ask for confirmation",
    )
    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    return CLIContext(
        config=load_config(args.config),
        ssh=load_ssh_settings(port=args.port, key_path=args.key_path),
        app_root=Path(args.app_root) if args.app_root else Path.cwd(),
    )


def handle_init_command(args: argparse.Namespace) -> int:
    if init_config(args.config):
        print(f"Created {args.config}")
    else:
        print(f"Configuration file {args.config} already exists.")
    return 0


def _confirm_teardown(config: ProvisioningConfig) -> bool:
    try:
        answer = input(
            f"⚠️  Remove {config.app_name} service and nginx site from {config.server}? "
            "(type 'yes' to confirm): "
        )
    except EOFError:
        return False
    return answer.strip().lower() == "yes"


def dispatch_command(args: argparse.Namespace) -> int:
    if args.command == "init":
        return handle_init_command(args)

    context = _build_context(args)
    executor = RemoteExecutor()

    if args.command in ("check", "server"):
        orchestrator = ProvisioningOrchestrator(
            context.config,
            executor,
            ContentTransfer(executor),
            LocalSecrets(root=context.app_root),
            ssh=context.ssh,
        )
        if args.command == "check":
            orchestrator.check()
        else:
            orchestrator.run()
            print("\nServer preparation complete.")
        return 0

    if args.command == "teardown":
        if not args.yes and not _confirm_teardown(context.config):
            print("❌ Cancelled")
            return 1
        TeardownOrchestrator(context.config, executor, ssh=context.ssh).run()
        print("Teardown complete.")
        return 0

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    set_verbose(args.verbose)
    try:
        return dispatch_command(args)
    except ServerPrepError as exc:
        if exc.context:
            logger.debug("Context: %s", exc.context)
        print(f"error: {exc.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nerror: interrupted", file=sys.stderr)
        return 130
