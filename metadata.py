import asyncio
import logging
from typing import Optional, Tuple

import aiohttp
from pydantic import ValidationError
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solders.pubkey import Pubkey

from config import settings
from exceptions import InvalidAddressError, UpstreamUnavailableError
from models import NftMetadata

logger = logging.getLogger(__name__)

METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

# key (1) + update authority (32) + mint (32)
METADATA_STRINGS_OFFSET = 65


def validate_mint_address(address: str) -> Pubkey:
    """Validate a Solana address using the official library"""
    try:
        return Pubkey.from_string(address)
    except (ValueError, TypeError) as e:
        raise InvalidAddressError(f"Invalid Solana address: {address}") from e


def get_metadata_pda(mint: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [b"metadata", bytes(METADATA_PROGRAM_ID), bytes(mint)],
        METADATA_PROGRAM_ID
    )[0]


def _read_borsh_string(data: bytes, offset: int) -> Tuple[str, int]:
    length = int.from_bytes(data[offset:offset+4], byteorder='little')
    offset += 4
    value = data[offset:offset+length].decode('utf-8', 'ignore')
    return value.replace('\x00', '').strip(), offset + length


def parse_metadata_account(data: bytes) -> Tuple[str, str, str]:
    """Decode name, symbol and uri from a Metaplex metadata account"""
    offset = METADATA_STRINGS_OFFSET
    name, offset = _read_borsh_string(data, offset)
    symbol, offset = _read_borsh_string(data, offset)
    uri, _ = _read_borsh_string(data, offset)
    return name, symbol, uri


async def fetch_nft_metadata(
    address: str,
    session: aiohttp.ClientSession,
    rpc_url: Optional[str] = None
) -> NftMetadata:
    """
    Derive the on-chain metadata account for a mint and fetch the full
    off-chain metadata record it points at.

    Raises InvalidAddressError when the address is not an NFT mint, which is
    how callers gate the activity history lookup.
    """
    mint = validate_mint_address(address)
    metadata_pda = get_metadata_pda(mint)

    try:
        async with AsyncClient(rpc_url or settings.rpc_url) as client:
            account_info = await client.get_account_info(metadata_pda)
    except SolanaRpcException as e:
        logger.error(f"Metadata account lookup failed: {str(e)}")
        raise UpstreamUnavailableError(f"Metadata lookup failed for {address}") from e

    if account_info.value is None:
        raise InvalidAddressError(f"No NFT metadata found for {address}")

    name, symbol, uri = parse_metadata_account(bytes(account_info.value.data))
    if not uri:
        raise InvalidAddressError(f"NFT metadata for {address} has no uri")
    logger.info(f"Resolved metadata for {name or address} ({symbol or 'UNK'})")

    try:
        async with session.get(uri) as response:
            response.raise_for_status()
            payload = await response.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.error(f"Metadata fetch from {uri} failed: {str(e)}")
        raise UpstreamUnavailableError(f"Metadata fetch failed for {address}") from e
    except ValueError as e:
        raise InvalidAddressError(f"Metadata for {address} is not valid JSON") from e

    try:
        return NftMetadata.model_validate(payload)
    except ValidationError as e:
        raise InvalidAddressError(f"Metadata for {address} is malformed") from e
