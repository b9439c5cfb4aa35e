"""Main CLI entry point for the AgriChain developer launcher."""

import argparse
import asyncio
import sys
from pathlib import Path

from .. import __version__
from ..shared.exceptions import RpcError
from ..shared.rpc_client import NetworkRpcClient, probe_http
from ..shared.types import HealthStatusType
from .config import DevctlConfig, DevctlConfigManager
from .logging import init_cli_logging
from .signal_handler import ShutdownSignalHandler
from .status import get_status_display
from .supervisor import PipelineSupervisor


def _config_manager(args: argparse.Namespace) -> DevctlConfigManager:
    config_path = getattr(args, "config", None)
    return DevctlConfigManager(Path(config_path) if config_path else None)


async def _run_pipeline(config: DevctlConfig) -> int:
    supervisor = PipelineSupervisor(config)
    handler = ShutdownSignalHandler(supervisor.interrupt)
    handler.install()
    try:
        outcome = await supervisor.run()
    finally:
        handler.uninstall()
    return outcome.exit_code


def cmd_start(args: argparse.Namespace) -> int:
    """Start the network, deploy, seed and start the backend server."""
    try:
        config = _config_manager(args).load_config(override_args=vars(args))
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    cli_logger = init_cli_logging(config)
    try:
        return asyncio.run(_run_pipeline(config))
    finally:
        log_file = cli_logger.get_log_file_path()
        if log_file:
            print(f"Debug log written to {log_file}")
        cli_logger.shutdown()


async def _probe(config: DevctlConfig, timeout: float) -> list[dict[str, str]]:
    """Probe the network and the server once each."""
    results = []

    client = NetworkRpcClient(config.network_url, timeout=timeout)
    try:
        network_id = await client.network_version()
        block = await client.block_number()
        results.append(
            {
                "service": "network",
                "url": config.network_url,
                "status": HealthStatusType.HEALTHY.value,
                "details": f"network id {network_id}, block {block}",
            }
        )
    except RpcError as e:
        results.append(
            {
                "service": "network",
                "url": config.network_url,
                "status": HealthStatusType.UNHEALTHY.value,
                "details": str(e),
            }
        )
    finally:
        await client.close()

    try:
        code = await probe_http(config.server_url, timeout=timeout)
        results.append(
            {
                "service": "server",
                "url": config.server_url,
                # Any HTTP answer means the server is up
                "status": HealthStatusType.HEALTHY.value,
                "details": f"HTTP {code}",
            }
        )
    except RpcError as e:
        results.append(
            {
                "service": "server",
                "url": config.server_url,
                "status": HealthStatusType.UNHEALTHY.value,
                "details": str(e),
            }
        )

    return results


def cmd_status(args: argparse.Namespace) -> int:
    """Report whether the network and the server answer."""
    try:
        config = _config_manager(args).load_config(override_args=vars(args))
        status_display = get_status_display()

        results = asyncio.run(_probe(config, args.timeout))
        rows = [[r["service"], r["url"], r["status"], r["details"]] for r in results]
        print(
            status_display.formatter.format_table(
                ["Service", "URL", "Status", "Details"], rows, title="AgriChain services"
            )
        )

        healthy = all(r["status"] == HealthStatusType.HEALTHY.value for r in results)
        if healthy:
            print(status_display.show_success("All services are healthy"))
            return 0
        print(status_display.show_warning("Some services are not reachable"))
        return 1

    except Exception as e:
        print(f"Status check failed: {e}", file=sys.stderr)
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Manage launcher configuration."""
    try:
        manager = _config_manager(args)

        if args.config_action == "show":
            output_format = getattr(args, "format", "yaml")
            print(manager.show_config(format=output_format))

        elif args.config_action == "reset":
            config = manager.reset_to_defaults()
            manager.save_config(config)
            print("Configuration reset to defaults")

        elif args.config_action == "path":
            print(f"Configuration file: {manager.config_path}")

        elif args.config_action == "save":
            # Save current runtime configuration as defaults
            config = manager.get_config()
            manager.save_config(config)
            print(f"Current configuration saved to {manager.config_path}")

        else:
            print("Error: a configuration action is required", file=sys.stderr)
            return 1

        return 0

    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""

    description = """AgriChain developer launcher

Brings up the local development stack in order: blockchain network, contract
deployment, server configuration, test data, backend server.

Examples:
  agrichain-dev start                       Start everything with defaults
  agrichain-dev start --project-dir ~/agri  Start a project elsewhere
  agrichain-dev start --network-port 8545   Use another network port
  agrichain-dev status                      Check that services answer
  agrichain-dev config show                 Show the effective configuration"""

    epilog = """Troubleshooting:
  - If the network does not start, check that port 7545 is free
  - Run with --debug to keep a full log under ~/.agrichain/logs"""

    parser = argparse.ArgumentParser(
        prog="agrichain-dev",
        description=description,
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"agrichain-dev {__version__}",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        metavar="FILE",
        help="Configuration file (default: ~/.agrichain/devctl.json)",
    )
    common.add_argument(
        "--project-dir",
        metavar="DIR",
        help="Project root holding server/, build/ and package.json",
    )
    common.add_argument(
        "--network-port",
        type=int,
        help="Blockchain network port (default: 7545)",
    )
    common.add_argument(
        "--server-port",
        type=int,
        help="Backend server port (default: 5000)",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        metavar="COMMAND",
    )

    # Start command
    start_help = """Start the AgriChain development stack

Runs each stage in order and stops at the first failure, terminating every
process started so far. Once everything is up the launcher keeps running
until interrupted with Ctrl+C."""

    start_parser = subparsers.add_parser(
        "start",
        parents=[common],
        help="Start the development stack",
        description=start_help,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    start_parser.add_argument(
        "--seed-data",
        metavar="FILE",
        help="JSON list of items to create instead of the built-in ones",
    )
    start_parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Console log level (default: INFO)",
    )
    start_parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Enable debug logging to ~/.agrichain/logs/devctl.log",
    )
    start_parser.set_defaults(func=cmd_start)

    # Status command
    status_parser = subparsers.add_parser(
        "status",
        parents=[common],
        help="Check whether the network and server answer",
    )
    status_parser.add_argument(
        "--timeout",
        type=float,
        default=5,
        help="Seconds to wait for each service (default: 5)",
    )
    status_parser.set_defaults(func=cmd_status)

    # Config command
    config_help = """Manage launcher configuration

Examples:
  agrichain-dev config show                  # Show current configuration
  agrichain-dev config show --format json    # Show config in JSON format
  agrichain-dev config save                  # Save current config as defaults
  agrichain-dev config reset                 # Reset to defaults
  agrichain-dev config path                  # Show config file location"""

    config_parser = subparsers.add_parser(
        "config",
        help="Manage launcher configuration",
        description=config_help,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.add_argument(
        "--config",
        metavar="FILE",
        help="Configuration file (default: ~/.agrichain/devctl.json)",
    )

    config_subparsers = config_parser.add_subparsers(
        dest="config_action",
        help="Configuration actions",
        metavar="ACTION",
    )

    show_parser = config_subparsers.add_parser(
        "show",
        help="Show current configuration",
    )
    show_parser.add_argument(
        "--format",
        choices=["yaml", "json"],
        default="yaml",
        help="Output format (default: yaml)",
    )

    config_subparsers.add_parser(
        "reset",
        help="Reset configuration to defaults",
    )

    config_subparsers.add_parser(
        "path",
        help="Show configuration file path",
    )

    config_subparsers.add_parser(
        "save",
        help="Save current configuration as defaults",
    )

    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the AgriChain developer launcher."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
