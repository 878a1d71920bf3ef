"""
Mint address history scanning.

Walks every transaction that touched an NFT mint and picks out mint and
transfer events. Along the way it records each token account that has held
the token, so the marketplace classifier knows which histories to search next.
"""
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from models import (
    ActivityEvent,
    MintEvent,
    ParsedInstruction,
    TransactionRecord,
    TransferEvent,
)

logger = logging.getLogger(__name__)

OwnerLookup = Callable[[str], Awaitable[Optional[str]]]


class ScanResult(BaseModel):
    """Accumulated scan output. Token accounts are unique and kept in discovery order."""
    model_config = ConfigDict(frozen=True)

    events: Tuple[ActivityEvent, ...] = ()
    token_accounts: Tuple[str, ...] = ()

    def with_event(self, event: ActivityEvent) -> "ScanResult":
        return self.model_copy(update={"events": self.events + (event,)})

    def with_token_account(self, account: Optional[str]) -> "ScanResult":
        if not account or account in self.token_accounts:
            return self
        return self.model_copy(update={"token_accounts": self.token_accounts + (account,)})


@dataclass(frozen=True)
class MatcherContext:
    address: str
    tx: TransactionRecord
    ix: ParsedInstruction
    lookup_owner: OwnerLookup


MintAccountMatcher = Callable[[MatcherContext, ScanResult], Awaitable[ScanResult]]


async def match_mint(ctx: MatcherContext, result: ScanResult) -> ScanResult:
    """Match an NFT mint instruction"""
    ix = ctx.ix
    if ix.type != "mintTo" or ix.info.get('mint') != ctx.address:
        return result

    # No regular authority usually means the mint is controlled by a multisig
    minter = ix.info.get('mintAuthority') or ix.info.get('multisigMintAuthority')
    token_account = ix.info.get('account')

    event = MintEvent.for_transaction(ctx.tx, minter=minter, token_account=token_account)
    return result.with_event(event).with_token_account(token_account)


async def match_create(ctx: MatcherContext, result: ScanResult) -> ScanResult:
    """Match an associated token account creation for this mint"""
    ix = ctx.ix
    if ix.type != "create" or ix.info.get('mint') != ctx.address:
        return result
    return result.with_token_account(ix.info.get('account'))


async def match_transfer(ctx: MatcherContext, result: ScanResult) -> ScanResult:
    """Match a token transfer of this mint"""
    ix = ctx.ix
    if ix.type != "transferChecked" or ix.info.get('mint') != ctx.address:
        return result

    source = ix.info.get('source')
    destination = ix.info.get('destination')

    # Prefer the wallet from a create instruction in the same transaction.
    # Otherwise ask the node who owns the destination now; a closed account
    # has no data, so the owner stays unknown.
    new_owner_address = None
    create_ix = next((x for x in ctx.tx.instructions if x.type == "create"), None)
    if create_ix:
        new_owner_address = create_ix.info.get('wallet')
    if new_owner_address is None and destination:
        new_owner_address = await ctx.lookup_owner(destination)

    event = TransferEvent.for_transaction(
        ctx.tx,
        source=source,
        new_owner_address=new_owner_address,
        destination_token_account=destination
    )
    return result.with_event(event).with_token_account(destination)


# Every matcher runs for every instruction, add new ones here
MINT_ACCOUNT_MATCHERS: Tuple[MintAccountMatcher, ...] = (
    match_mint,
    match_create,
    match_transfer,
)


def iter_parsed_instructions(tx: TransactionRecord) -> Iterator[ParsedInstruction]:
    """Top-level instructions first, then each inner instruction group"""
    for ix in tx.instructions:
        if ix.is_parsed:
            yield ix
    for group in tx.inner_instructions:
        for ix in group.instructions:
            if ix.is_parsed:
                yield ix


class MintAccountScanner:
    def __init__(self, client, matchers: Tuple[MintAccountMatcher, ...] = MINT_ACCOUNT_MATCHERS):
        self.client = client
        self.matchers = matchers

    async def scan(self, mint_address: str) -> ScanResult:
        """Scan the mint address history for mint and transfer events"""
        txs = await self.client.get_all_transactions_for_address(mint_address)
        logger.info(f"Scanning {len(txs)} transactions for mint {mint_address}")

        result = ScanResult()
        for tx in txs:
            for ix in iter_parsed_instructions(tx):
                ctx = MatcherContext(
                    address=mint_address,
                    tx=tx,
                    ix=ix,
                    lookup_owner=self._lookup_owner
                )
                for matcher in self.matchers:
                    result = await matcher(ctx, result)

        logger.info(
            f"Mint scan found {len(result.events)} events and "
            f"{len(result.token_accounts)} token accounts"
        )
        return result

    async def _lookup_owner(self, token_account: str) -> Optional[str]:
        account = await self.client.get_account_info(token_account)
        if account is None:
            logger.debug(f"Token account {token_account} no longer exists")
            return None
        return account.owner
