"""
Tests for NFT metadata decoding and the mint address validity gate.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from solders.pubkey import Pubkey

from exceptions import InvalidAddressError
from factories import MINT
from metadata import (
    METADATA_PROGRAM_ID,
    fetch_nft_metadata,
    get_metadata_pda,
    parse_metadata_account,
    validate_mint_address,
)

URI = "https://www.arweave.net/luuNTv5eE5oN8uh-F6U5f4aXOF9WUGfyLrsyF6ivSHM"


def _borsh(value: str, padded: int) -> bytes:
    raw = value.encode().ljust(padded, b"\x00")
    return len(raw).to_bytes(4, "little") + raw


def _metadata_account(name="MBB #2047", symbol="MBB", uri=URI) -> bytes:
    return (
        b"\x04"
        + bytes(Pubkey.default())
        + bytes(Pubkey.from_string(MINT))
        + _borsh(name, 32)
        + _borsh(symbol, 10)
        + _borsh(uri, 200)
        + b"\x01\xf4"
    )


def _patched_rpc(value):
    rpc = MagicMock()
    rpc.get_account_info = AsyncMock(return_value=MagicMock(value=value))
    async_client = MagicMock()
    async_client.return_value.__aenter__.return_value = rpc
    return async_client


def _session(payload):
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json = AsyncMock(return_value=payload)
    session = MagicMock()
    session.get.return_value.__aenter__.return_value = response
    return session


def test_parse_metadata_account_strips_padding():
    assert parse_metadata_account(_metadata_account()) == ("MBB #2047", "MBB", URI)


def test_metadata_pda_is_derived_from_mint():
    mint = Pubkey.from_string(MINT)
    expected = Pubkey.find_program_address(
        [b"metadata", bytes(METADATA_PROGRAM_ID), bytes(mint)], METADATA_PROGRAM_ID
    )[0]
    assert get_metadata_pda(mint) == expected


def test_validate_mint_address():
    assert str(validate_mint_address(MINT)) == MINT
    with pytest.raises(InvalidAddressError):
        validate_mint_address("not-a-valid-pubkey")


@pytest.mark.asyncio
async def test_fetch_nft_metadata():
    payload = {"name": "MBB #2047", "symbol": "MBB", "seller_fee_basis_points": 500, "external_url": ""}
    session = _session(payload)
    account = MagicMock(data=_metadata_account())

    with patch("metadata.AsyncClient", _patched_rpc(account)):
        metadata = await fetch_nft_metadata(MINT, session, rpc_url="http://localhost:8899")

    assert metadata.name == "MBB #2047"
    assert metadata.seller_fee_basis_points == 500
    session.get.assert_called_once_with(URI)


@pytest.mark.asyncio
async def test_fetch_nft_metadata_without_account_is_invalid():
    session = _session({})
    with patch("metadata.AsyncClient", _patched_rpc(None)):
        with pytest.raises(InvalidAddressError):
            await fetch_nft_metadata(MINT, session, rpc_url="http://localhost:8899")
    session.get.assert_not_called()
