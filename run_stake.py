from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
import os
from decimal import Decimal

from stakeflow.config import load_config
from stakeflow.flows import DepositFlows
from stakeflow.models import StakingPlan

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

cfg = load_config()
plan = StakingPlan(
    plan_id=os.getenv("PLAN_ID", "manual"),
    token=os.getenv("STAKE_TOKEN") or cfg.token_address,
    lock_days=int(os.getenv("LOCK_DAYS") or "30"),
    daily_rate_bps=int(os.getenv("RATE_BPS") or "0"),
)
amount = Decimal(os.getenv("AMOUNT_TOKEN") or "0")

print("Staking:", amount, "on plan", plan.plan_id)
outcome = asyncio.run(DepositFlows.from_config(cfg).stake(plan, amount))
print({
    "ok": True,
    "tx": outcome.transaction.hash,
    "block": outcome.transaction.block_number,
    "position_id": outcome.position_id,
    "warnings": list(outcome.warnings),
})
