"""
NFT activity history assembly.

Fetching a history goes through a few steps:

1. Validate the mint address by loading its NFT metadata
2. Scan the mint address history for mint and transfer events, recording
   every associated token account
3. Search each token account history for marketplace events
4. Sort everything by block time, newest first

This makes a lot of RPC calls and is slow against public nodes. Any failure
aborts the whole lookup, a partial history is never returned.
"""
import logging
from typing import Awaitable, Callable, Iterable, List, Optional

from marketplace import MarketplaceClassifier
from metadata import validate_mint_address
from mint_scanner import MintAccountScanner
from models import ActivityEvent, NftMetadata

logger = logging.getLogger(__name__)

MetadataFetcher = Callable[[str], Awaitable[NftMetadata]]


def _block_time_key(event: ActivityEvent):
    # Events without a block time go after every timestamped event
    block_time = event.tx.block_time
    return (block_time is None, -(block_time or 0))


def assemble(
    scan_events: Iterable[ActivityEvent],
    classify_events: Iterable[ActivityEvent]
) -> List[ActivityEvent]:
    """Combine scanner and classifier events, newest first"""
    history = list(scan_events) + list(classify_events)
    return sorted(history, key=_block_time_key)


async def get_activity_history(
    mint_address: str,
    client,
    metadata_fetcher: Optional[MetadataFetcher] = None
) -> List[ActivityEvent]:
    """Fetch the activity history for an NFT mint address"""
    validate_mint_address(mint_address)

    # Raises InvalidAddressError for addresses which are not NFT mints
    if metadata_fetcher is not None:
        await metadata_fetcher(mint_address)

    scan = await MintAccountScanner(client).scan(mint_address)
    marketplace_events = await MarketplaceClassifier(client).classify(scan.token_accounts)

    history = assemble(scan.events, marketplace_events)
    logger.info(f"Assembled {len(history)} activity events for {mint_address}")
    return history
