from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from models import (
    ActivityEvent,
    CancelListingEvent,
    ListingEvent,
    MintEvent,
    SaleEvent,
    TransferEvent,
)
from time_utils import format_date, format_time_ago

LAMPORTS_PER_SOL = Decimal(1_000_000_000)


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(lamports) / LAMPORTS_PER_SOL


def format_number(value: Decimal) -> str:
    return f"{value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,}"


def format_fiat_price(sol: Decimal, price: Decimal) -> str:
    return f"${format_number(sol * price)} USD"


def abbreviate_address(address: Optional[str]) -> str:
    if not address:
        return "unknown"
    return f"{address[:4]}...{address[-4:]}"


def describe_event(event: ActivityEvent, sol_price: Optional[Decimal] = None) -> str:
    """One line summary of an activity event"""
    if isinstance(event, MintEvent):
        detail = f"Minted by {abbreviate_address(event.minter)}"
    elif isinstance(event, TransferEvent):
        detail = (
            f"Transferred from {abbreviate_address(event.source)} "
            f"to {abbreviate_address(event.new_owner_address)}"
        )
    elif isinstance(event, ListingEvent):
        detail = f"Listed on {event.marketplace.value} by {abbreviate_address(event.seller)}"
    elif isinstance(event, CancelListingEvent):
        detail = f"Listing cancelled on {event.marketplace.value} by {abbreviate_address(event.seller)}"
    elif isinstance(event, SaleEvent):
        sol = lamports_to_sol(event.lamports)
        detail = (
            f"Sold on {event.marketplace.value} to {abbreviate_address(event.buyer)} "
            f"for {format_number(sol)} SOL"
        )
        if sol_price is not None:
            detail += f" ({format_fiat_price(sol, sol_price)})"
    else:
        raise ValueError(f"Unknown activity event: {event!r}")

    when = f"{format_date(event.block_time)} ({format_time_ago(event.block_time)})"
    return f"{event.type:<14} {when:<45} {detail}"


def event_to_dict(event: ActivityEvent) -> Dict[str, Any]:
    """JSON friendly view of an event, without the raw transaction"""
    data = event.model_dump(mode="json", exclude={"tx"})
    data["blockTime"] = event.block_time
    if isinstance(event, SaleEvent):
        # Keep lamports exact for consumers that parse JSON numbers as floats
        data["lamports"] = str(event.lamports)
    return data
