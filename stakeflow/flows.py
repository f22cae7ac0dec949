"""Deposit flows: from a user's intent to a confirmed, reconciled position.

Each flow validates the amount against the plan, builds the pending action,
hands it to the approval orchestrator and, once the action is confirmed,
links it to the off-chain record store. A failed link never turns a
confirmed deposit into an error; it is reported as a warning instead.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Tuple

from .allocation import resolve, to_contract_shares
from .chain import ChainClient
from .config import Config
from .errors import ProviderError, RecordStoreError, ValidationError
from .locator import PositionLocator
from .models import (
    ActionKind,
    AllocationPlan,
    NodeOffer,
    PendingAction,
    PositionRecord,
    PositionSearchQuery,
    PositionSearchResult,
    StakingPlan,
    TransactionRecord,
)
from .orchestrator import ApprovalOrchestrator
from .records import HttpRecordStore, LogRecordStore, RecordStore, build_record

logger = logging.getLogger(__name__)

POSITION_NOT_FOUND = (
    "deposit confirmed but its position id could not be found on-chain; "
    "the off-chain record needs manual follow-up"
)
RECORD_NOT_SAVED = "deposit confirmed but the off-chain record could not be saved"


@dataclass(frozen=True)
class DepositOutcome:
    transaction: TransactionRecord
    record: Optional[PositionRecord] = None
    warnings: Tuple[str, ...] = ()

    @property
    def position_id(self) -> Optional[int]:
        return self.record.position_id if self.record is not None else None

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


def to_units(amount: Decimal, decimals: int) -> int:
    return int(Decimal(amount) * (10 ** decimals))


def check_limits(amount: Decimal, minimum: Decimal, maximum: Optional[Decimal]) -> None:
    if amount <= 0:
        raise ValidationError("amount must be positive")
    if amount < minimum:
        raise ValidationError(f"minimum deposit is {minimum}")
    if maximum is not None and amount > maximum:
        raise ValidationError(f"maximum deposit is {maximum}")


class DepositFlows:
    def __init__(
        self,
        chain,
        records: RecordStore,
        token: str,
        staking_vault: str,
        investment_contract: str,
        node_pay_wallet: str,
        share_scale: int = 100,
        tolerance_seconds: int = 300,
        max_positions: int = 128,
        settle_delay: float = 3.0,
        token_decimals: Optional[int] = None,
    ) -> None:
        self.chain = chain
        self.records = records
        self.token = token
        self.staking_vault = staking_vault
        self.investment_contract = investment_contract
        self.node_pay_wallet = node_pay_wallet
        self.share_scale = share_scale
        self.tolerance_seconds = tolerance_seconds
        self.settle_delay = settle_delay
        self.orchestrator = ApprovalOrchestrator(chain, token, chain.address)
        self.locator = PositionLocator(chain, staking_vault, max_positions=max_positions)
        self._decimals: Dict[str, int] = {}
        if token_decimals is not None:
            self._decimals[token.lower()] = token_decimals

    @staticmethod
    def from_config(cfg: Config, chain=None, records: Optional[RecordStore] = None) -> "DepositFlows":
        if records is None:
            if cfg.record_store_url:
                records = HttpRecordStore(cfg.record_store_url, cfg.record_store_api_key)
            else:
                records = LogRecordStore()
        return DepositFlows(
            chain or ChainClient.connect(cfg),
            records,
            token=cfg.token_address,
            staking_vault=cfg.staking_vault_address,
            investment_contract=cfg.investment_contract_address,
            node_pay_wallet=cfg.node_pay_wallet,
            share_scale=cfg.split_share_scale,
            tolerance_seconds=cfg.locator_tolerance_seconds,
            max_positions=cfg.locator_max_positions,
            settle_delay=cfg.settle_delay,
            token_decimals=cfg.token_decimals,
        )

    @property
    def owner(self) -> str:
        return self.chain.address

    async def decimals(self, token: str) -> int:
        key = token.lower()
        if key not in self._decimals:
            self._decimals[key] = await self.chain.read_decimals(token)
        return self._decimals[key]

    # -- flows ---------------------------------------------------------------

    async def stake(self, plan: StakingPlan, amount: Decimal) -> DepositOutcome:
        check_limits(amount, plan.min_deposit, plan.max_deposit)
        units = to_units(amount, await self.decimals(plan.token))
        action = PendingAction(
            kind=ActionKind.STAKE,
            amount=units,
            contract=self.staking_vault,
            target_addresses=(self.staking_vault,),
            extra={
                "token": plan.token,
                "plan_id": plan.plan_id,
                "lock_days": plan.lock_days,
                "rate_bps": plan.daily_rate_bps,
            },
        )
        tx = await self.orchestrator.request_action(action)

        await asyncio.sleep(self.settle_delay)
        try:
            result = await self.locate(units, plan.token, tx.block_timestamp or 0)
        except ProviderError as exc:
            logger.warning(f"Position search for stake {tx.hash} failed: {exc}")
            return DepositOutcome(transaction=tx, warnings=(POSITION_NOT_FOUND,))
        if not result.found:
            logger.warning(f"Stake {tx.hash} confirmed without a position id")
            return DepositOutcome(transaction=tx, warnings=(POSITION_NOT_FOUND,))
        return await self._reconcile(action, tx, plan.token, result.position_id)

    async def invest_split(self, plan: AllocationPlan, amount: Decimal) -> DepositOutcome:
        check_limits(amount, plan.min_deposit, plan.max_deposit)
        allocations = resolve(plan, self.owner)
        units = to_units(amount, await self.decimals(self.token))
        action = PendingAction(
            kind=ActionKind.SPLIT_INVEST,
            amount=units,
            contract=self.investment_contract,
            target_addresses=tuple(a.address for a in allocations),
            shares=to_contract_shares(allocations, self.share_scale),
            extra={"plan_id": plan.plan_id},
        )
        tx = await self.orchestrator.request_action(action)
        return await self._reconcile(action, tx, self.token)

    async def buy_node(self, node: NodeOffer) -> DepositOutcome:
        check_limits(node.price, Decimal("0"), None)
        units = to_units(node.price, await self.decimals(self.token))
        action = PendingAction(
            kind=ActionKind.BUY_POSITION,
            amount=units,
            contract=self.investment_contract,
            target_addresses=(self.node_pay_wallet,),
            extra={"node_id": node.node_id, "spender": self.node_pay_wallet},
        )
        tx = await self.orchestrator.request_action(action)
        return await self._reconcile(action, tx, self.token)

    # -- reconciliation ------------------------------------------------------

    async def locate(self, principal: int, token: str, reference_timestamp: int) -> PositionSearchResult:
        query = PositionSearchQuery(
            owner_address=self.owner,
            expected_principal=principal,
            expected_token_address=token,
            reference_timestamp=reference_timestamp,
            tolerance_seconds=self.tolerance_seconds,
        )
        return await self.locator.locate(query)

    async def _reconcile(
        self,
        action: PendingAction,
        tx: TransactionRecord,
        token: str,
        position_id: Optional[int] = None,
    ) -> DepositOutcome:
        record = build_record(action, tx, self.owner, token, position_id)
        try:
            await self.records.write(record)
        except RecordStoreError as exc:
            logger.warning(f"Could not save record for {tx.hash}: {exc}")
            return DepositOutcome(transaction=tx, record=record, warnings=(RECORD_NOT_SAVED,))
        return DepositOutcome(transaction=tx, record=record)
