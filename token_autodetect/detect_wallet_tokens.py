#!/usr/bin/env python3
"""
Detect the tokens a wallet holds on one network.

This script looks at the wallet's token transfer history and at a curated
list of partner contracts, adds every token it finds to a token list (kept
across runs with --store), and writes the list as a CSV report.
"""

import argparse
import logging
import sys
from concurrent.futures import Future
from typing import List, Optional

from token_autodetect.lib.chain_client import NETWORKS, ChainClient
from token_autodetect.lib.config import DetectionConfig
from token_autodetect.lib.coordinator import TokenCoordinator
from token_autodetect.lib.formatters import format_report, write_csv
from token_autodetect.lib.models import parse_address
from token_autodetect.lib.token_store import TokensDataStore


SUPPORTED_NETWORKS = list(NETWORKS)


def log(network: str, message: str) -> None:
    """Log a message with network prefix."""
    print(f"[{network}] {message}", file=sys.stderr)


def validate_network(network: str) -> str:
    """
    Validate and normalize a network name.

    Args:
        network: Network name

    Returns:
        Lowercase network name

    Raises:
        ValueError: If the network is not supported
    """
    network_lower = network.lower()
    if network_lower not in SUPPORTED_NETWORKS:
        raise ValueError(
            f"Unsupported network: {network}. " f"Supported: {', '.join(SUPPORTED_NETWORKS)}"
        )
    return network_lower


def validate_wallet(wallet: str) -> str:
    """
    Validate a wallet address.

    Returns:
        The checksummed wallet address

    Raises:
        ValueError: If the address cannot be parsed
    """
    checksummed = parse_address(wallet)
    if checksummed is None:
        raise ValueError(f"Invalid wallet address: {wallet}")
    return checksummed


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = argparse.ArgumentParser(
        description="Detect the tokens a wallet holds and write them as a CSV report.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Detect mainnet tokens, output to stdout
  %(prog)s --wallet 0x... --rpc-api-key INFURA_KEY --explorer-api-key ETHERSCAN_KEY

  # Keep the token list between runs and save the report to a file
  %(prog)s --wallet 0x... --network xdai --store tokens.json --output tokens.csv
        """,
    )

    parser.add_argument(
        "--wallet",
        required=True,
        help="Wallet address to detect tokens for",
    )
    parser.add_argument(
        "--network",
        help=f"Network to query (default: main). Supported: {', '.join(SUPPORTED_NETWORKS)}",
    )
    parser.add_argument(
        "--rpc-api-key",
        help="API key for the network's JSON-RPC node",
    )
    parser.add_argument(
        "--explorer-api-key",
        help="Etherscan-compatible explorer API key",
    )
    parser.add_argument(
        "--store",
        help="JSON file holding the token list between runs",
    )
    parser.add_argument(
        "--import",
        dest="imports",
        nargs="+",
        default=[],
        metavar="CONTRACT",
        help="Token contracts to import in addition to auto-detection",
    )
    parser.add_argument(
        "--output",
        help="Output file path (timestamp auto-appended). If not specified, outputs to stdout.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log per-contract progress",
    )

    parsed_args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = DetectionConfig.from_env(
            network=parsed_args.network,
            rpc_api_key=parsed_args.rpc_api_key,
            explorer_api_key=parsed_args.explorer_api_key,
        )
        network = validate_network(config.network)
        wallet = validate_wallet(parsed_args.wallet)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    client = ChainClient(
        network,
        rpc_api_key=config.rpc_api_key,
        explorer_api_key=config.explorer_api_key,
    )
    if parsed_args.store:
        store = TokensDataStore.load(parsed_args.store, client, wallet, network)
    else:
        store = TokensDataStore(client, wallet, network)

    def on_tokens_changed() -> None:
        log(network, f"Token list now has {len(store.list_enabled())} tokens")

    log(network, f"Starting token detection ({client.get_native_token_info()['symbol']} network)...")

    with TokenCoordinator(client, store, config, wallet_provider=lambda: wallet) as coordinator:
        coordinator.add_listener(on_tokens_changed)

        passes = coordinator.start_auto_detection(wallet)
        imports: List[Future] = [
            coordinator.add_imported_token(contract) for contract in parsed_args.imports
        ]

        for detection in passes:
            log(network, format_report(detection.result()))
        for contract, imported in zip(parsed_args.imports, imports):
            log(network, f"Import {contract}: {imported.result().value}")

    if store.save():
        log(network, f"Token list saved to {store.path}")

    output_file = write_csv(store.enabled_tokens(), parsed_args.output)
    if output_file:
        print(f"\nResults written to: {output_file}", file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())
