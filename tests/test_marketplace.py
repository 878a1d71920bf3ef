"""
Tests for Magic Eden marketplace event classification.
"""

import pytest

from factories import (
    BUYER,
    BUYER_TOKEN_ACCOUNT,
    MINT_TOKEN_ACCOUNT,
    SELLER,
    FakeRpcClient,
    make_tx,
    parsed_ix,
    raw_ix,
    sol_transfer,
)
from marketplace import (
    DELEGATE_ADDRESS,
    MAGIC_EDEN_LISTING_ACCOUNT,
    MULTI_SIG_ADDRESSES,
    MarketplaceClassifier,
    classify_group,
    classify_transaction,
    match_sale,
    MatchContext,
)
from models import CancelListingEvent, ListingEvent, Marketplace, SaleEvent

ESCROW = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
CREATOR = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
TREASURY = "2NZukH2TXpcuZP4htiuT8CFxcaQSWzkkR6kepSWnZ24Q"


def _listing_ix(owner=SELLER):
    return parsed_ix("setAuthority", authority=owner, newAuthority=MAGIC_EDEN_LISTING_ACCOUNT,
                     account=ESCROW, authorityType="accountOwner")


def _release_ix(new_owner):
    return parsed_ix("setAuthority", authority=MAGIC_EDEN_LISTING_ACCOUNT, newAuthority=new_owner,
                     account=ESCROW, authorityType="accountOwner")


def _only_event(tx):
    return classify_transaction(tx)


def test_listing_via_set_authority():
    event = _only_event(make_tx("list", inner=[[_listing_ix()]]))
    assert isinstance(event, ListingEvent)
    assert event.seller == SELLER
    assert event.marketplace is Marketplace.MAGIC_EDEN


def test_listing_via_delegate_approve():
    tx = make_tx("list", inner=[[parsed_ix("approve", owner=SELLER, delegate=DELEGATE_ADDRESS, amount="1")]])
    event = _only_event(tx)
    assert isinstance(event, ListingEvent)
    assert event.seller == SELLER


def test_approve_to_unknown_delegate_is_not_a_listing():
    tx = make_tx("approve", inner=[[parsed_ix("approve", owner=SELLER, delegate=BUYER, amount="1")]])
    assert _only_event(tx) is None


def test_cancel_listing_via_revoke():
    event = _only_event(make_tx("revoke", inner=[[parsed_ix("revoke", owner=SELLER, source=ESCROW)]]))
    assert isinstance(event, CancelListingEvent)
    assert event.seller == SELLER


def test_lone_authority_release_is_a_cancel():
    event = _only_event(make_tx("cancel", inner=[[_release_ix(SELLER)]]))
    assert isinstance(event, CancelListingEvent)
    assert event.seller == SELLER


def test_authority_release_with_payments_is_a_sale():
    tx = make_tx("sale", inner=[[
        _release_ix(BUYER),
        sol_transfer(BUYER, SELLER, 10_450_000_000),
        sol_transfer(BUYER, CREATOR, 550_000_000),
    ]])
    event = _only_event(tx)
    assert isinstance(event, SaleEvent)
    assert event.buyer == BUYER
    assert event.lamports == 11_000_000_000


def test_unparsed_instructions_count_towards_group_size():
    # The opaque program call makes this a two instruction group, so a sale
    tx = make_tx("sale", inner=[[_release_ix(BUYER), raw_ix()]])
    event = _only_event(tx)
    assert isinstance(event, SaleEvent)
    assert event.buyer is None
    assert event.lamports == 0


def test_sale_price_sums_every_lamport_leg():
    tx = make_tx("sale", inner=[[
        _release_ix(BUYER),
        sol_transfer(BUYER, SELLER, 9_500_000_000),
        sol_transfer(BUYER, CREATOR, 500_000_000),
        sol_transfer(TREASURY, ESCROW, 1_000_000),
    ]])
    event = _only_event(tx)
    assert event.lamports == 10_001_000_000
    # The buyer is taken from the last lamport leg
    assert event.buyer == TREASURY


def test_token_transfers_without_lamports_are_not_priced():
    tx = make_tx("sale", inner=[[
        parsed_ix("transfer", authority=DELEGATE_ADDRESS, source=ESCROW, destination=BUYER_TOKEN_ACCOUNT, amount="1"),
        parsed_ix("closeAccount", account=ESCROW, destination=SELLER, owner=DELEGATE_ADDRESS),
        sol_transfer(BUYER, SELLER, 2_000_000_000),
    ]])
    event = _only_event(tx)
    assert isinstance(event, SaleEvent)
    assert event.lamports == 2_000_000_000
    assert event.buyer == BUYER


@pytest.mark.parametrize("multisig", sorted(MULTI_SIG_ADDRESSES))
def test_sale_via_multisig_transfer_authority(multisig):
    tx = make_tx("sale", inner=[[
        parsed_ix("transfer", multisigAuthority=multisig, signers=[multisig], source=ESCROW,
                  destination=BUYER_TOKEN_ACCOUNT, amount="1"),
        parsed_ix("closeAccount", account=ESCROW, destination=SELLER, multisigOwner=multisig),
        sol_transfer(BUYER, SELLER, 1_000_000_000),
    ]])
    assert isinstance(_only_event(tx), SaleEvent)


def test_delegate_transfer_in_small_group_is_not_a_sale():
    # Returning a delisted token has no SOL legs
    tx = make_tx("return", inner=[[
        parsed_ix("transfer", authority=DELEGATE_ADDRESS, source=ESCROW, destination=MINT_TOKEN_ACCOUNT, amount="1"),
        parsed_ix("closeAccount", account=ESCROW, destination=SELLER, owner=DELEGATE_ADDRESS),
    ]])
    assert _only_event(tx) is None


def test_match_sale_returns_none_for_unrelated_instruction():
    tx = make_tx("other", inner=[[sol_transfer(BUYER, SELLER, 5)]])
    group = tx.inner_instructions[0]
    assert match_sale(MatchContext(tx=tx, ix=group.instructions[0], group=group)) is None


def test_group_yields_first_matching_instruction():
    tx = make_tx("mixed", inner=[[
        parsed_ix("revoke", owner=BUYER, source=ESCROW),
        _listing_ix(SELLER),
    ]])
    event = classify_group(tx, tx.inner_instructions[0])
    assert isinstance(event, CancelListingEvent)
    assert event.seller == BUYER


def test_custom_matcher_chain_is_respected():
    tx = make_tx("list", inner=[[_listing_ix()]])
    assert classify_transaction(tx, matchers=(match_sale,)) is None


@pytest.mark.asyncio
async def test_listing_then_cancel_then_sale_scenario():
    history = [
        make_tx("list", block_time=1_000, inner=[[_listing_ix(SELLER)]]),
        make_tx("cancel", block_time=2_000, inner=[[_release_ix(SELLER)]]),
        make_tx("sale", block_time=3_000, inner=[[
            _release_ix(BUYER),
            sol_transfer(BUYER, SELLER, 10_000_000_000),
            sol_transfer(BUYER, CREATOR, 1_000_000_000),
        ]]),
    ]
    client = FakeRpcClient(histories={MINT_TOKEN_ACCOUNT: history})

    events = await MarketplaceClassifier(client).classify((MINT_TOKEN_ACCOUNT,))

    assert [type(e) for e in events] == [ListingEvent, CancelListingEvent, SaleEvent]
    assert events[0].seller == SELLER
    assert events[1].seller == SELLER
    assert events[2].buyer == BUYER
    assert events[2].lamports == 11_000_000_000


@pytest.mark.asyncio
async def test_transaction_seen_from_two_accounts_counts_once():
    sale = make_tx("sale", inner=[[
        _release_ix(BUYER),
        sol_transfer(BUYER, SELLER, 1_000_000_000),
    ]])
    client = FakeRpcClient(histories={
        MINT_TOKEN_ACCOUNT: [sale],
        BUYER_TOKEN_ACCOUNT: [sale],
    })

    events = await MarketplaceClassifier(client).classify([MINT_TOKEN_ACCOUNT, BUYER_TOKEN_ACCOUNT])

    assert len(events) == 1
    assert client.history_calls == [MINT_TOKEN_ACCOUNT, BUYER_TOKEN_ACCOUNT]


@pytest.mark.asyncio
async def test_one_marketplace_event_per_transaction():
    tx = make_tx("double", inner=[
        [_listing_ix(SELLER)],
        [parsed_ix("approve", owner=SELLER, delegate=DELEGATE_ADDRESS, amount="1")],
    ])
    events = await MarketplaceClassifier(FakeRpcClient(histories={ESCROW: [tx]})).classify([ESCROW])
    assert len(events) == 1
    signatures = [e.tx.signature_key for e in events]
    assert len(signatures) == len(set(signatures))


@pytest.mark.asyncio
async def test_duplicate_accounts_are_fetched_once():
    client = FakeRpcClient()
    await MarketplaceClassifier(client).classify([ESCROW, ESCROW])
    assert client.history_calls == [ESCROW]


@pytest.mark.asyncio
async def test_dedup_state_is_fresh_per_call():
    sale = make_tx("sale", inner=[[_release_ix(BUYER), sol_transfer(BUYER, SELLER, 1)]])
    classifier = MarketplaceClassifier(FakeRpcClient(histories={ESCROW: [sale]}))

    first = await classifier.classify([ESCROW])
    second = await classifier.classify([ESCROW])

    assert first == second
    assert len(second) == 1


@pytest.mark.asyncio
async def test_unmatched_groups_produce_nothing():
    tx = make_tx("noise", inner=[[sol_transfer(BUYER, SELLER, 5), raw_ix()]])
    events = await MarketplaceClassifier(FakeRpcClient(histories={ESCROW: [tx]})).classify([ESCROW])
    assert events == []
