"""Find the position id of an already confirmed stake transaction.

Manual follow-up for a stake whose position id could not be located right
after confirmation. Reads STAKE_TX_HASH, AMOUNT_TOKEN and optionally
STAKE_TOKEN from the environment.
"""

from __future__ import annotations

import asyncio
import logging
import os
from decimal import Decimal

from dotenv import load_dotenv
load_dotenv()

from stakeflow.config import load_config
from stakeflow.flows import DepositFlows, to_units


async def _recover(tx_hash: str, amount: Decimal, token: str) -> int:
    cfg = load_config()
    flows = DepositFlows.from_config(cfg)
    receipt = await flows.chain.get_receipt(tx_hash)
    if not receipt.succeeded:
        print(f"❌ Transaction {tx_hash} reverted; nothing to recover")
        return 1
    block = await flows.chain.get_block(receipt.block_number)
    principal = to_units(amount, await flows.decimals(token))
    result = await flows.locate(principal, token, block.timestamp)
    if not result.found:
        print(f"❌ No position matches {amount} near block {receipt.block_number} ({result.reads} reads)")
        return 1
    print(f"Position id: {result.position_id} (block {receipt.block_number}, {result.reads} reads)")
    return 0


def main() -> int:
    tx_hash = os.getenv("STAKE_TX_HASH")
    amount = os.getenv("AMOUNT_TOKEN")
    if not tx_hash or not amount:
        print("❌ Missing STAKE_TX_HASH or AMOUNT_TOKEN")
        return 2
    logging.basicConfig(level=logging.INFO)
    token = os.getenv("STAKE_TOKEN") or load_config().token_address
    return asyncio.run(_recover(tx_hash, Decimal(amount), token))


if __name__ == "__main__":
    raise SystemExit(main())
