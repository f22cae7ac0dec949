"""Approval-gated action orchestrator.

Makes "approve, then act" behave like one call: at most one action is in
flight, the action is only sent after the approval receipt succeeded, and it
is sent without further input once it has.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, List, Optional, Tuple

from web3 import Web3

from .errors import (
    ActionInProgressError,
    ApprovalFailedError,
    InsufficientBalanceError,
    TransactionFailedError,
    ValidationError,
)
from .models import ActionKind, PendingAction, TransactionRecord

logger = logging.getLogger(__name__)

MAX_SHARE_TOTAL = 10_000


class OrchestratorState(Enum):
    IDLE = "idle"
    CHECKING_ALLOWANCE = "checking_allowance"
    AWAITING_APPROVAL = "awaiting_approval"
    AWAITING_ACTION = "awaiting_action"


def action_call(action: PendingAction, token: str) -> Tuple[str, List[Any]]:
    """Contract function name and arguments for an action."""
    extra = action.extra
    if action.kind == ActionKind.STAKE:
        return "stake", [token, action.amount, int(extra["lock_days"]), int(extra["rate_bps"])]
    if action.kind == ActionKind.SPLIT_INVEST:
        wallet_a, wallet_b, wallet_c = action.target_addresses
        p_a, p_b, p_c = action.shares
        return "investSplit", [action.amount, wallet_a, wallet_b, wallet_c, p_a, p_b, p_c]
    if action.kind == ActionKind.BUY_POSITION:
        return "buyNode", [int(extra["node_id"]), action.amount, action.target_addresses[0]]
    raise ValidationError(f"unsupported action kind {action.kind}")


def validate_action(action: PendingAction) -> None:
    if action.amount <= 0:
        raise ValidationError("amount must be positive")
    if not Web3.is_address(action.contract):
        raise ValidationError(f"contract address {action.contract!r} is invalid")
    if not Web3.is_address(action.spender):
        raise ValidationError(f"spender address {action.spender!r} is invalid")
    if not 1 <= len(action.target_addresses) <= 3:
        raise ValidationError("an action needs one to three target addresses")
    for address in action.target_addresses:
        if not Web3.is_address(address):
            raise ValidationError(f"target address {address!r} is invalid")
    if action.shares:
        if len(action.shares) != len(action.target_addresses):
            raise ValidationError("shares and target addresses differ in length")
        if any(share < 0 for share in action.shares) or sum(action.shares) > MAX_SHARE_TOTAL:
            raise ValidationError(f"shares must be non-negative and sum to at most {MAX_SHARE_TOTAL}")
    if action.kind == ActionKind.SPLIT_INVEST and len(action.target_addresses) != 3:
        raise ValidationError("split investments need exactly three target addresses")
    if action.kind == ActionKind.STAKE and not {"lock_days", "rate_bps"} <= action.extra.keys():
        raise ValidationError("stake actions need lock_days and rate_bps")
    if action.kind == ActionKind.BUY_POSITION and "node_id" not in action.extra:
        raise ValidationError("node purchases need a node_id")


class ApprovalOrchestrator:
    """Single-slot state machine driving one approval cycle at a time.

    ``chain`` is a ``ChainClient`` (or anything with the same coroutines);
    ``owner`` is the address whose balance and allowance are checked.
    """

    def __init__(self, chain, token: str, owner: str) -> None:
        self._chain = chain
        self._token = token
        self._owner = owner
        self._state = OrchestratorState.IDLE
        self._pending: Optional[PendingAction] = None

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def pending(self) -> Optional[PendingAction]:
        return self._pending

    @property
    def busy(self) -> bool:
        return self._state != OrchestratorState.IDLE

    async def request_action(self, action: PendingAction) -> TransactionRecord:
        # must stay free of awaits until the slot is taken
        if self.busy:
            raise ActionInProgressError(f"action already in progress ({self._state.value})")
        validate_action(action)
        token = action.extra.get("token") or self._token
        function_name, args = action_call(action, token)

        self._state = OrchestratorState.CHECKING_ALLOWANCE
        self._pending = action
        try:
            balance = await self._chain.read_balance(token, self._owner)
            if balance < action.amount:
                raise InsufficientBalanceError(balance, action.amount)

            allowance = await self._chain.read_allowance(token, self._owner, action.spender)
            if allowance < action.amount:
                await self._approve(action, token)

            self._state = OrchestratorState.AWAITING_ACTION
            return await self._act(action.contract, function_name, args)
        finally:
            self._state = OrchestratorState.IDLE
            self._pending = None

    async def _approve(self, action: PendingAction, token: str) -> None:
        self._state = OrchestratorState.AWAITING_APPROVAL
        logger.info(f"Approving {action.amount} of {token} for {action.spender}")
        tx_hash = await self._chain.submit_approval(token, action.spender, action.amount)
        receipt = await self._chain.get_receipt(tx_hash)
        if not receipt.succeeded:
            logger.error(f"Approval {tx_hash} reverted in block {receipt.block_number}")
            raise ApprovalFailedError(f"approval transaction {tx_hash} reverted")
        logger.info(f"Approval {tx_hash} confirmed in block {receipt.block_number}")

    async def _act(self, contract: str, function_name: str, args: List[Any]) -> TransactionRecord:
        tx_hash = await self._chain.submit_action(contract, function_name, args)
        record = TransactionRecord(hash=tx_hash)
        record.mark_confirming()
        receipt = await self._chain.get_receipt(tx_hash)
        block = await self._chain.get_block(receipt.block_number)
        record.settle(receipt.succeeded, receipt.block_number, block.timestamp)
        if not receipt.succeeded:
            logger.error(f"{function_name} transaction {tx_hash} reverted")
            raise TransactionFailedError(f"{function_name} transaction {tx_hash} reverted", record=record)
        logger.info(f"{function_name} transaction {tx_hash} confirmed in block {receipt.block_number}")
        return record
