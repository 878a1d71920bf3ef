from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

class ParsedInstruction(BaseModel):
    """A single instruction as returned by a jsonParsed RPC response.

    ``type`` is None when the node could not decode the instruction, e.g. an
    opaque marketplace program call. Those are kept so group sizes match the
    on-chain instruction count.
    """
    model_config = ConfigDict(frozen=True)

    type: Optional[str] = None
    info: Dict[str, Any] = Field(default_factory=dict)
    program: Optional[str] = None
    program_id: Optional[str] = None

    @property
    def is_parsed(self) -> bool:
        return self.type is not None

    @classmethod
    def from_rpc(cls, data: dict) -> "ParsedInstruction":
        parsed = data.get('parsed')
        if isinstance(parsed, dict):
            return cls(
                type=parsed.get('type'),
                info=parsed.get('info') or {},
                program=data.get('program'),
                program_id=data.get('programId')
            )
        # Unparsed instruction, or a program whose parsed form is a bare string (memo)
        return cls(program=data.get('program'), program_id=data.get('programId'))


class InstructionGroup(BaseModel):
    """Inner instructions produced by the top-level instruction at ``index``"""
    model_config = ConfigDict(frozen=True)

    index: int = 0
    instructions: List[ParsedInstruction] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.instructions)


class TransactionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    signatures: List[str]
    block_time: Optional[int] = None
    slot: Optional[int] = None
    instructions: List[ParsedInstruction] = Field(default_factory=list)
    inner_instructions: List[InstructionGroup] = Field(default_factory=list)

    @property
    def signature(self) -> str:
        return self.signatures[0] if self.signatures else ""

    @property
    def signature_key(self) -> str:
        return "".join(self.signatures)

    @classmethod
    def from_rpc(cls, data: dict) -> "TransactionRecord":
        """Build a record from a ``getTransaction`` jsonParsed result"""
        transaction = data.get('transaction') or {}
        message = transaction.get('message') or {}
        meta = data.get('meta') or {}

        return cls(
            signatures=transaction.get('signatures', []),
            block_time=data.get('blockTime'),
            slot=data.get('slot'),
            instructions=[
                ParsedInstruction.from_rpc(ix) for ix in message.get('instructions', [])
            ],
            inner_instructions=[
                InstructionGroup(
                    index=group.get('index', 0),
                    instructions=[ParsedInstruction.from_rpc(ix) for ix in group.get('instructions', [])]
                )
                for group in meta.get('innerInstructions') or []
            ]
        )


class AccountInfo(BaseModel):
    owner: Optional[str] = None


class Marketplace(str, Enum):
    MAGIC_EDEN = "Magic Eden"


class ActivityEventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    tx: TransactionRecord
    signatures: List[str]

    @property
    def block_time(self) -> Optional[int]:
        return self.tx.block_time

    @classmethod
    def for_transaction(cls, tx: TransactionRecord, **fields):
        return cls(tx=tx, signatures=list(tx.signatures), **fields)


class MintEvent(ActivityEventBase):
    type: Literal["Mint"] = "Mint"
    minter: Optional[str] = None
    token_account: Optional[str] = None


class TransferEvent(ActivityEventBase):
    type: Literal["Transfer"] = "Transfer"
    source: str
    new_owner_address: Optional[str] = None
    destination_token_account: str


class ListingEvent(ActivityEventBase):
    type: Literal["Listing"] = "Listing"
    seller: Optional[str] = None
    marketplace: Marketplace = Marketplace.MAGIC_EDEN


class CancelListingEvent(ActivityEventBase):
    type: Literal["CancelListing"] = "CancelListing"
    seller: Optional[str] = None
    marketplace: Marketplace = Marketplace.MAGIC_EDEN


class SaleEvent(ActivityEventBase):
    type: Literal["Sale"] = "Sale"
    buyer: Optional[str] = None
    lamports: int = Field(default=0, ge=0)
    marketplace: Marketplace = Marketplace.MAGIC_EDEN


ActivityEvent = Annotated[
    Union[MintEvent, TransferEvent, ListingEvent, CancelListingEvent, SaleEvent],
    Field(discriminator="type")
]


class NftMetadata(BaseModel):
    """Off-chain Metaplex JSON metadata"""
    model_config = ConfigDict(extra="allow")

    name: str = ""
    symbol: str = ""
    image: Optional[str] = None
    description: Optional[str] = None
    seller_fee_basis_points: Optional[int] = None
    attributes: List[Dict[str, Any]] = Field(default_factory=list)
    collection: Optional[Dict[str, Any]] = None
    properties: Optional[Dict[str, Any]] = None
