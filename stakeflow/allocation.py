"""Split-wallet allocation: turn a plan's wallet configuration into three
(address, share) pairs the split contract accepts.

Rules are applied in a fixed order so every caller (the deposit flow and the
display helper) sees the same fallbacks:

1. a slot is present when it has an address or uses the caller's address
   (which must then be known);
2. slot 1 must be present;
3. no slot 2 and no slot 3, or a single-destination plan, means 100/0/0;
4. otherwise present slots keep their percentage, absent ones get 0, and an
   all-zero configuration puts 100 on slot 1;
5. every present address must be valid and the shares may not exceed 100;
6. absent slots are padded with slot 1's address at share 0.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import List, Optional, Sequence, Tuple

from web3 import Web3

from .errors import AllocationError
from .models import Allocation, AllocationPlan, WalletSlot

FULL_SHARE = 100


def _slot_address(index: int, slot: WalletSlot, caller_address: Optional[str]) -> Optional[str]:
    if slot.use_caller_address:
        if not caller_address:
            raise AllocationError(f"wallet {index} pays the caller but no caller address was given", slot=index)
        return caller_address
    return slot.address or None


def resolve(plan: AllocationPlan, caller_address: Optional[str]) -> Tuple[Allocation, ...]:
    addresses = [_slot_address(i, slot, caller_address) for i, slot in enumerate(plan.slots, start=1)]

    if addresses[0] is None:
        raise AllocationError("plan has no destination for wallet 1", slot=1)

    if plan.single_destination or (addresses[1] is None and addresses[2] is None):
        shares = [FULL_SHARE, 0, 0]
    else:
        shares = [
            slot.percentage if address is not None else 0
            for slot, address in zip(plan.slots, addresses)
        ]
        if not any(shares):
            shares = [FULL_SHARE, 0, 0]

    for index, (address, share) in enumerate(zip(addresses, shares), start=1):
        if address is not None and not Web3.is_address(address):
            raise AllocationError(f"wallet {index} address {address!r} is not a valid address", slot=index)
        if share < 0 or share > FULL_SHARE:
            raise AllocationError(f"wallet {index} share {share} is outside 0..{FULL_SHARE}", slot=index)

    if sum(shares) > FULL_SHARE:
        worst = max(range(3), key=lambda i: shares[i]) + 1
        raise AllocationError(f"shares sum to {sum(shares)}, above {FULL_SHARE}", slot=worst)

    primary = Web3.to_checksum_address(addresses[0])
    return tuple(
        Allocation(
            address=Web3.to_checksum_address(address) if address is not None else primary,
            share=share,
        )
        for address, share in zip(addresses, shares)
    )


def to_contract_shares(allocations: Sequence[Allocation], scale: int = 100) -> Tuple[int, ...]:
    """Whole-percent shares scaled to the split contract's units (100 -> basis points)."""
    return tuple(a.share * scale for a in allocations)


def describe_allocation(
    plan: AllocationPlan, caller_address: Optional[str], amount: Decimal
) -> List[Tuple[str, int, Decimal]]:
    """Per-destination amounts for display; zero-share padding slots are left out."""
    rows = []
    for allocation in resolve(plan, caller_address):
        if allocation.share == 0:
            continue
        part = (amount * allocation.share / FULL_SHARE).quantize(Decimal("0.000001"), rounding=ROUND_DOWN)
        rows.append((allocation.address, allocation.share, part))
    return rows
