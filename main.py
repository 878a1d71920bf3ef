import argparse
import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from functools import partial

from config import settings
from connection_pool import HTTPSessionManager
from display import describe_event, event_to_dict
from exceptions import ActivityHistoryError, UpstreamUnavailableError
from history import get_activity_history
from logger import configure_logging
from metadata import fetch_nft_metadata
from pricing import fetch_sol_price
from rpc_client import SolanaRpcClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan():
    """Open the shared HTTP pool and RPC client for one lookup"""
    session_manager = HTTPSessionManager(pool_size=settings.pool_size, timeout=settings.rpc_timeout)
    try:
        async with SolanaRpcClient(settings.rpc_url, session_manager) as client:
            yield session_manager, client
    finally:
        await session_manager.stop()


async def run(mint_address: str, show_usd: bool = False, as_json: bool = False) -> int:
    async with lifespan() as (session_manager, client):
        try:
            fetch_metadata = partial(
                fetch_nft_metadata,
                session=session_manager.session,
                rpc_url=settings.rpc_url
            )
            history = await get_activity_history(mint_address, client, fetch_metadata)
        except ActivityHistoryError as e:
            logger.error(f"Failed to fetch activity history: {str(e)}")
            print(f"Error: {e}", file=sys.stderr)
            return 1

        sol_price = None
        if show_usd:
            try:
                sol_price = await fetch_sol_price(session_manager.session)
            except UpstreamUnavailableError as e:
                logger.warning(f"Showing prices in SOL only: {str(e)}")

    if as_json:
        print(json.dumps([event_to_dict(event) for event in history], indent=2))
    elif not history:
        print("No activity found")
    else:
        for event in history:
            print(describe_event(event, sol_price))
    return 0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Reconstruct the marketplace activity history of a Solana NFT")
    parser.add_argument("mint_address", help="NFT mint address")
    parser.add_argument("--usd", action="store_true", help="Show sale prices in USD as well")
    parser.add_argument("--json", action="store_true", help="Print events as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging("DEBUG" if args.verbose else settings.log_level, settings.log_file)
    try:
        return asyncio.run(run(args.mint_address, show_usd=args.usd, as_json=args.json))
    except KeyboardInterrupt:
        logger.info("Lookup cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
