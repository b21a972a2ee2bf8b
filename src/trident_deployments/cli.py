"""Command line entry point: trident-deploy."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from .accounts import AccountResolver
from .chain import Web3ChainClient
from .compilers import CompilerSelector, SolcxCompiler
from .exceptions import ConfigurationError
from .logging_config import setup_logger
from .networks import NetworkRegistry, mask_url
from .orchestrator import DeploymentOrchestrator
from .plan import load_manifest, select_by_tags
from .records import open_store
from .reporting import GasReporter
from .retry import Backoff
from .settings import Settings
from .types import RunReport
from .verification import EtherscanVerifier, VerificationGateway

logger = logging.getLogger(__name__)


async def _run_deploy(orchestrator: DeploymentOrchestrator, specs, force) -> RunReport:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    # First Ctrl-C stops new steps; in-flight transactions are still awaited
    loop.add_signal_handler(signal.SIGINT, cancel.set)
    try:
        return await orchestrator.run(specs, force=force, cancel=cancel)
    finally:
        loop.remove_signal_handler(signal.SIGINT)


def cmd_deploy(args: argparse.Namespace, settings: Settings) -> int:
    registry = NetworkRegistry.from_settings(settings)
    network = registry.resolve(args.network)
    specs = select_by_tags(load_manifest(args.manifest), args.tags)

    verifier = None
    if network.live and network.explorer and settings.etherscan_api_key and not args.no_verify:
        verifier = VerificationGateway(
            EtherscanVerifier(network.explorer.api_url, settings.etherscan_api_key, network=network.name)
        )
    reporter = GasReporter.from_settings(settings, output_file=args.gas_report) if settings.report_gas else None

    orchestrator = DeploymentOrchestrator(
        network,
        Web3ChainClient(network),
        open_store(network, args.deployments_dir),
        CompilerSelector(sources_root=args.sources),
        SolcxCompiler(args.sources),
        concurrency=args.concurrency,
        confirmation_attempts=args.confirmation_attempts,
        backoff=Backoff(),
        verifier=verifier,
        reporter=reporter,
    )

    # --force alone redeploys everything, --force A B only the named contracts
    force = False if args.force is None else (args.force or True)
    report = asyncio.run(_run_deploy(orchestrator, specs, force))
    print(report.format_table())
    print(f"\n{report.transactions} transaction(s) sent on {network.name}")
    return report.exit_code


def cmd_networks(args: argparse.Namespace, settings: Settings) -> int:
    registry = NetworkRegistry.from_settings(settings)
    profiles = registry.list_by_tag(args.tag) if args.tag else list(registry)
    for p in profiles:
        status = "live" if p.live else "local"
        missing = f"  (needs {', '.join(p.missing_secrets)})" if p.missing_secrets else ""
        print(f"{p.name:<18} {p.chain_id:>10}  {status:<5}  {','.join(p.tags):<12} {mask_url(p.url)}{missing}")
    return 0


def cmd_accounts(args: argparse.Namespace, settings: Settings) -> int:
    registry = NetworkRegistry.from_settings(settings)
    network = registry.resolve(args.network)
    addresses = AccountResolver().named_addresses(network.accounts, network)
    for role, address in addresses.items():
        print(f"{role:<10} {address}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trident-deploy", description="Multi-chain contract deployments")
    parser.add_argument("--env-file", help="Path to .env file to load before reading the environment")
    parser.add_argument("--log-dir", help="Directory for rotating log files (default: console only)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_deploy = sub.add_parser("deploy", help="Deploy the contracts of a manifest to a network")
    p_deploy.add_argument("network", help="Network name (see 'networks')")
    p_deploy.add_argument("--manifest", required=True, help="JSON manifest of contracts to deploy")
    p_deploy.add_argument("--tags", nargs="+", help="Only deploy contracts with these tags (plus dependencies)")
    p_deploy.add_argument("--force", nargs="*", metavar="NAME", help="Redeploy all, or only the named contracts")
    p_deploy.add_argument("--concurrency", type=int, default=4, help="Maximum RPC calls in flight (default 4)")
    p_deploy.add_argument("--confirmation-attempts", type=int, default=3, help="Confirmation waits before failing (default 3)")
    p_deploy.add_argument("--deployments-dir", help="Deployment records root (default ./deployments)")
    p_deploy.add_argument("--sources", default="contracts", help="Solidity sources root (default ./contracts)")
    p_deploy.add_argument("--gas-report", help="Write the gas report as JSON to this file")
    p_deploy.add_argument("--no-verify", action="store_true", help="Skip explorer verification")
    p_deploy.set_defaults(func=cmd_deploy)

    p_networks = sub.add_parser("networks", help="List supported networks")
    p_networks.add_argument("--tag", help="Only networks with this tag")
    p_networks.set_defaults(func=cmd_networks)

    p_accounts = sub.add_parser("accounts", help="Show named account addresses on a network")
    p_accounts.add_argument("network", help="Network name")
    p_accounts.set_defaults(func=cmd_accounts)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logger(level=logging.DEBUG if args.verbose else logging.INFO, log_dir=args.log_dir)
    settings = Settings.from_env(env_file=args.env_file)
    try:
        return args.func(args, settings)
    except ConfigurationError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
