"""
Magic Eden marketplace event classification.

The marketplace program's instruction layout is not public, so listings,
cancelled listings and sales are recognised from the token program side
effects they leave in a transaction's inner instructions: authority hand-offs
to the listing account, delegate approvals and the SOL transfers of a sale.
This is guesswork. Event kinds that were never observed will be missed, and
listing prices cannot be recovered at all.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Set, Tuple

from models import (
    ActivityEvent,
    CancelListingEvent,
    InstructionGroup,
    ListingEvent,
    Marketplace,
    ParsedInstruction,
    SaleEvent,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

# Mainnet account Magic Eden takes token authority with when an NFT is listed
MAGIC_EDEN_LISTING_ACCOUNT = "GUfCR9mK6azb9vcpsxgXyj7XRPAKJd4KMHTTVvtncGgp"

# Delegate used by the newer approve/revoke listing flow, also the transfer
# authority in its sales
DELEGATE_ADDRESS = "1BWutmTvYPwDtmw9abTkS4Ssr8no61spGAvW1X6NDix"

# Multisig transfer authorities seen in sale transactions. Likely incomplete.
MULTI_SIG_ADDRESSES = frozenset({
    "4pUQS4Jo2dsfWzt3VgHXy3H6RYnEDd11oWPiaM2rdAPw",
    "3D49QorJyNaL4rcpiynbuS3pRH4Y7EXEM6v6ZGaqfFGK",
    "F4ghBzHFNgJxV4wEQDchU5i7n4XWWMBSaq7CuswGiVsr",
})


@dataclass(frozen=True)
class MatchContext:
    tx: TransactionRecord
    ix: ParsedInstruction
    group: InstructionGroup


MarketplaceMatcher = Callable[[MatchContext], Optional[ActivityEvent]]


def _is_sale(ctx: MatchContext) -> bool:
    ix, size = ctx.ix, len(ctx.group)

    if ix.type == "transfer":
        authority = ix.info.get('authority')
        multisig = ix.info.get('multisigAuthority')
        if authority == DELEGATE_ADDRESS or multisig in MULTI_SIG_ADDRESSES:
            # A sale closes the escrow token account and pays out SOL legs;
            # returning a delisted token carries no SOL transfers.
            return size > 2
    elif ix.type == "setAuthority":
        if ix.info.get('authority') == MAGIC_EDEN_LISTING_ACCOUNT:
            # A lone authority hand-back is a cancelled listing
            return size > 1
    return False


def match_sale(ctx: MatchContext) -> Optional[ActivityEvent]:
    """Match a Magic Eden sale and total the lamports paid out"""
    if not _is_sale(ctx):
        return None

    buyer = None
    lamports = 0
    # Royalty splits produce several SOL legs. The buyer ends up as the
    # source of the last leg visited.
    for leg in ctx.group.instructions:
        if leg.type != "transfer":
            continue
        amount = leg.info.get('lamports')
        if isinstance(amount, int) and not isinstance(amount, bool):
            buyer = leg.info.get('source')
            lamports += amount

    return SaleEvent.for_transaction(
        ctx.tx,
        buyer=buyer,
        lamports=lamports,
        marketplace=Marketplace.MAGIC_EDEN
    )


def match_listing(ctx: MatchContext) -> Optional[ActivityEvent]:
    """Match a Magic Eden listing"""
    ix = ctx.ix

    if ix.type == "approve":
        if ix.info.get('delegate') == DELEGATE_ADDRESS:
            return ListingEvent.for_transaction(
                ctx.tx, seller=ix.info.get('owner'), marketplace=Marketplace.MAGIC_EDEN
            )
    elif ix.type == "setAuthority":
        if ix.info.get('newAuthority') == MAGIC_EDEN_LISTING_ACCOUNT:
            return ListingEvent.for_transaction(
                ctx.tx, seller=ix.info.get('authority'), marketplace=Marketplace.MAGIC_EDEN
            )
    return None


def match_cancel_listing(ctx: MatchContext) -> Optional[ActivityEvent]:
    """Match a cancelled Magic Eden listing"""
    ix = ctx.ix

    if ix.type == "revoke":
        return CancelListingEvent.for_transaction(
            ctx.tx, seller=ix.info.get('owner'), marketplace=Marketplace.MAGIC_EDEN
        )
    elif ix.type == "setAuthority":
        if ix.info.get('authority') == MAGIC_EDEN_LISTING_ACCOUNT and len(ctx.group) == 1:
            return CancelListingEvent.for_transaction(
                ctx.tx, seller=ix.info.get('newAuthority'), marketplace=Marketplace.MAGIC_EDEN
            )
    return None


# Order matters, the first matcher to return an event wins. Sale must come
# before cancel listing since both key on authority leaving the listing account.
MARKETPLACE_MATCHERS: Tuple[MarketplaceMatcher, ...] = (
    match_sale,
    match_listing,
    match_cancel_listing,
)


def classify_group(
    tx: TransactionRecord,
    group: InstructionGroup,
    matchers: Tuple[MarketplaceMatcher, ...] = MARKETPLACE_MATCHERS
) -> Optional[ActivityEvent]:
    """Return the first marketplace event found in an inner instruction group"""
    for ix in group.instructions:
        if not ix.is_parsed:
            continue
        ctx = MatchContext(tx=tx, ix=ix, group=group)
        for matcher in matchers:
            event = matcher(ctx)
            if event is not None:
                return event
    return None


def classify_transaction(
    tx: TransactionRecord,
    matchers: Tuple[MarketplaceMatcher, ...] = MARKETPLACE_MATCHERS
) -> Optional[ActivityEvent]:
    for group in tx.inner_instructions:
        event = classify_group(tx, group, matchers)
        if event is not None:
            return event
    logger.debug(f"No marketplace event in {tx.signature}")
    return None


class MarketplaceClassifier:
    def __init__(self, client, matchers: Tuple[MarketplaceMatcher, ...] = MARKETPLACE_MATCHERS):
        self.client = client
        self.matchers = matchers

    async def classify(self, token_accounts: Iterable[str]) -> List[ActivityEvent]:
        """
        Search the history of each token account for marketplace events.

        The same transaction shows up under every token account it touched,
        e.g. both sides of a sale, so each signature yields at most one event.
        """
        seen: Set[str] = set()
        events: List[ActivityEvent] = []

        for account in dict.fromkeys(token_accounts):
            txs = await self.client.get_all_transactions_for_address(account)
            logger.debug(f"Classifying {len(txs)} transactions for token account {account}")

            for tx in txs:
                key = tx.signature_key
                if key in seen:
                    continue
                event = classify_transaction(tx, self.matchers)
                if event is None:
                    continue
                seen.add(key)
                events.append(event)

        logger.info(f"Marketplace classifier found {len(events)} events")
        return events
