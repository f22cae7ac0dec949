"""Recover the id a staking vault assigned to a freshly created position.

The vault's ``stake`` call returns nothing to an external caller, so the id
is found by reading ``stakes(owner, id)`` directly:

* exponential probe over ids 1, 2, 4, ... (clamped to ``max_positions``)
  until a slot comes back empty;
* reverse scan from just below the first empty probe down to 1, returning
  the first slot whose token and principal match exactly and whose start
  time is within tolerance. Empty ids met on the way are skipped.

Ids are allocated sequentially from 1, so the newest position is met first.
Every id is read at most once per query, which caps a search at
``max_positions`` reads.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from .models import PositionSearchQuery, PositionSearchResult, PositionSlot

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300
DEFAULT_MAX_POSITIONS = 128


class _SlotReader:
    """Per-query read cache that also counts storage reads."""

    def __init__(self, chain, contract: str, owner: str) -> None:
        self._chain = chain
        self._contract = contract
        self._owner = owner
        self._cache: Dict[int, Optional[PositionSlot]] = {}
        self.reads = 0

    async def get(self, position_id: int) -> Optional[PositionSlot]:
        if position_id not in self._cache:
            self.reads += 1
            slot = await self._chain.read_position_slot(self._contract, self._owner, position_id)
            self._cache[position_id] = None if slot is None or slot.empty else slot
        return self._cache[position_id]

    async def occupied(self, position_id: int) -> bool:
        return await self.get(position_id) is not None


class PositionLocator:
    def __init__(self, chain, contract: str, max_positions: int = DEFAULT_MAX_POSITIONS) -> None:
        if max_positions < 1:
            raise ValueError("max_positions must be at least 1")
        self._chain = chain
        self._contract = contract
        self.max_positions = max_positions

    async def locate(self, query: PositionSearchQuery) -> PositionSearchResult:
        reader = _SlotReader(self._chain, self._contract, query.owner_address)
        upper = await self._upper_bound(reader)
        logger.debug(f"Position upper bound for {query.owner_address}: {upper} after {reader.reads} reads")

        for position_id in range(upper, 0, -1):
            slot = await reader.get(position_id)
            if slot is not None and query.matches(slot):
                logger.info(f"Located position {position_id} for {query.owner_address} in {reader.reads} reads")
                return PositionSearchResult(position_id=position_id, reads=reader.reads)

        logger.warning(
            f"No position for {query.owner_address} matches principal {query.expected_principal} "
            f"of {query.expected_token_address} near {query.reference_timestamp} ({reader.reads} reads)"
        )
        return PositionSearchResult.not_found(reads=reader.reads)

    async def _upper_bound(self, reader: _SlotReader) -> int:
        """Highest id worth scanning, or 0 when the owner has no positions."""
        candidate = 1
        while await reader.occupied(candidate):
            if candidate >= self.max_positions:
                return candidate
            candidate = min(candidate * 2, self.max_positions)
        return candidate - 1
