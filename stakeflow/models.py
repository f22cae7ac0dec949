"""Value types shared across stakeflow.

Chain values are frozen dataclasses; plan, node and record documents that
cross the off-chain boundary are pydantic models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


SECONDS_PER_DAY = 86_400


class ActionKind(Enum):
    BUY_POSITION = "buy_position"
    STAKE = "stake"
    SPLIT_INVEST = "split_invest"


class TxStatus(Enum):
    PENDING = "pending"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class PendingAction:
    """An action that may have to wait for a token approval before it is sent.

    ``contract`` is both the spender the allowance is granted to and the
    contract the action is sent to, except for node purchases where the
    allowance goes to the pay wallet (``extra["spender"]``). ``extra["token"]``
    overrides the orchestrator's default token.
    """

    kind: ActionKind
    amount: int
    contract: str
    target_addresses: Tuple[str, ...] = ()
    shares: Tuple[int, ...] = ()
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def spender(self) -> str:
        return self.extra.get("spender") or self.contract


@dataclass
class TransactionRecord:
    hash: str
    status: TxStatus = TxStatus.PENDING
    block_number: Optional[int] = None
    block_timestamp: Optional[int] = None

    @property
    def final(self) -> bool:
        return self.status in (TxStatus.CONFIRMED, TxStatus.FAILED)

    def mark_confirming(self) -> None:
        self._require_open()
        self.status = TxStatus.CONFIRMING

    def settle(self, success: bool, block_number: int, block_timestamp: Optional[int] = None) -> None:
        self._require_open()
        self.status = TxStatus.CONFIRMED if success else TxStatus.FAILED
        self.block_number = block_number
        self.block_timestamp = block_timestamp

    def _require_open(self) -> None:
        if self.final:
            raise RuntimeError(f"transaction {self.hash} is already {self.status.value}")


@dataclass(frozen=True)
class Receipt:
    status: int
    block_number: int

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass(frozen=True)
class BlockInfo:
    number: int
    timestamp: int


@dataclass(frozen=True)
class PositionSlot:
    token: str
    principal: int
    start_time: int
    unlock_time: int = 0
    rate_bps: int = 0
    withdrawn: bool = False

    @property
    def empty(self) -> bool:
        return self.principal == 0

    @staticmethod
    def from_tuple(raw: Any) -> "PositionSlot":
        token, principal, start, unlock, rate_bps, withdrawn = raw
        return PositionSlot(
            token=str(token),
            principal=int(principal),
            start_time=int(start),
            unlock_time=int(unlock),
            rate_bps=int(rate_bps),
            withdrawn=bool(withdrawn),
        )


@dataclass(frozen=True)
class PositionSearchQuery:
    owner_address: str
    expected_principal: int
    expected_token_address: str
    reference_timestamp: int
    tolerance_seconds: int = 300

    def matches(self, slot: PositionSlot) -> bool:
        return (
            slot.token.lower() == self.expected_token_address.lower()
            and slot.principal == self.expected_principal
            and abs(slot.start_time - self.reference_timestamp) < self.tolerance_seconds
        )


@dataclass(frozen=True)
class PositionSearchResult:
    position_id: Optional[int]
    reads: int = 0

    @property
    def found(self) -> bool:
        return self.position_id is not None

    @staticmethod
    def not_found(reads: int = 0) -> "PositionSearchResult":
        return PositionSearchResult(position_id=None, reads=reads)


@dataclass(frozen=True)
class Allocation:
    address: str
    share: int


# Catalog documents come from the off-chain store as loose JSON, so they are
# parsed with pydantic like the other external payloads.


class WalletSlot(BaseModel):
    address: str = ""
    percentage: int = 0
    use_caller_address: bool = False

    @field_validator("address", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str:
        return (v or "").strip()


class AllocationPlan(BaseModel):
    plan_id: str
    name: str = ""
    wallet1: WalletSlot = Field(default_factory=WalletSlot)
    wallet2: WalletSlot = Field(default_factory=WalletSlot)
    wallet3: WalletSlot = Field(default_factory=WalletSlot)
    single_destination: bool = False
    min_deposit: Decimal = Decimal("0")
    max_deposit: Optional[Decimal] = None

    @property
    def slots(self) -> Tuple[WalletSlot, WalletSlot, WalletSlot]:
        return (self.wallet1, self.wallet2, self.wallet3)


class StakingPlan(BaseModel):
    plan_id: str
    title: str = ""
    token: str
    lock_days: int
    daily_rate_bps: int
    min_deposit: Decimal = Decimal("0")
    max_deposit: Optional[Decimal] = None


class NodeOffer(BaseModel):
    node_id: int
    name: str = ""
    price: Decimal


class PositionRecord(BaseModel):
    kind: ActionKind
    owner_address: str
    position_id: Optional[int]
    plan_or_node_id: str
    token: str
    principal: int
    lock_duration: Optional[int] = None
    start_time: int
    unlock_time: Optional[int] = None
    transaction_hash: str
    status: str = "active"
