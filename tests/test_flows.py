import unittest
from decimal import Decimal

from web3 import Web3

from fakes import (
    BLOCK_TIME,
    INVEST,
    OWNER,
    PAY_WALLET,
    TOKEN,
    VAULT,
    WALLET_1,
    WALLET_2,
    FakeChain,
    RecordingStore,
    provider_error,
)
from stakeflow.config import Config
from stakeflow.errors import InsufficientBalanceError, RecordStoreError, ValidationError
from stakeflow.flows import POSITION_NOT_FOUND, RECORD_NOT_SAVED, DepositFlows, check_limits, to_units
from stakeflow.models import (
    SECONDS_PER_DAY,
    ActionKind,
    AllocationPlan,
    NodeOffer,
    PositionSlot,
    StakingPlan,
    TxStatus,
    WalletSlot,
)
from stakeflow.records import HttpRecordStore, LogRecordStore

ONE = 10**18


def make_flows(chain: FakeChain, store: RecordingStore) -> DepositFlows:
    return DepositFlows(
        chain,
        store,
        token=TOKEN,
        staking_vault=VAULT,
        investment_contract=INVEST,
        node_pay_wallet=PAY_WALLET,
        settle_delay=0,
    )


def staking_plan(**kwargs) -> StakingPlan:
    fields = dict(plan_id="stake-30", token=TOKEN, lock_days=30, daily_rate_bps=50, min_deposit=Decimal("10"))
    fields.update(kwargs)
    return StakingPlan(**fields)


class StakeFlowTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.chain = FakeChain()
        self.store = RecordingStore()
        self.flows = make_flows(self.chain, self.store)

    async def test_confirmed_stake_is_linked_to_its_position(self) -> None:
        for position_id in (1, 2, 3):
            self.chain.slots[position_id] = PositionSlot(token=TOKEN, principal=ONE, start_time=BLOCK_TIME - 86400)

        outcome = await self.flows.stake(staking_plan(), Decimal("100"))

        self.assertFalse(outcome.degraded)
        self.assertEqual(outcome.transaction.status, TxStatus.CONFIRMED)
        self.assertEqual(outcome.position_id, 4)
        self.assertEqual(self.store.records, [outcome.record])

        record = outcome.record
        self.assertEqual(record.kind, ActionKind.STAKE)
        self.assertEqual(record.owner_address, OWNER.lower())
        self.assertEqual(record.principal, 100 * ONE)
        self.assertEqual(record.plan_or_node_id, "stake-30")
        self.assertEqual(record.lock_duration, 30)
        self.assertEqual(record.start_time, BLOCK_TIME)
        self.assertEqual(record.unlock_time, BLOCK_TIME + 30 * SECONDS_PER_DAY)
        self.assertEqual(record.transaction_hash, outcome.transaction.hash)

    async def test_stake_sends_plan_terms(self) -> None:
        await self.flows.stake(staking_plan(), Decimal("12.5"))

        action = [call for call in self.chain.calls if call[0] == "submit_action"]
        self.assertEqual(action, [("submit_action", VAULT, "stake", [TOKEN, 12_500_000_000_000_000_000, 30, 50])])

    async def test_amount_below_minimum_is_rejected_up_front(self) -> None:
        with self.assertRaises(ValidationError):
            await self.flows.stake(staking_plan(), Decimal("5"))
        self.assertEqual(self.chain.calls, [])

    async def test_amount_above_maximum_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            await self.flows.stake(staking_plan(max_deposit=Decimal("50")), Decimal("51"))
        self.assertEqual(self.chain.calls, [])

    async def test_insufficient_balance_stops_the_flow(self) -> None:
        self.chain.balance = ONE
        with self.assertRaises(InsufficientBalanceError):
            await self.flows.stake(staking_plan(), Decimal("100"))
        self.assertNotIn("submit_action", self.chain.names())
        self.assertEqual(self.store.records, [])

    async def test_unlocated_position_is_degraded_success(self) -> None:
        self.chain.create_stake_slots = False

        outcome = await self.flows.stake(staking_plan(), Decimal("100"))

        self.assertEqual(outcome.transaction.status, TxStatus.CONFIRMED)
        self.assertTrue(outcome.degraded)
        self.assertEqual(outcome.warnings, (POSITION_NOT_FOUND,))
        self.assertIsNone(outcome.record)
        self.assertIsNone(outcome.position_id)
        self.assertEqual(self.store.records, [])

    async def test_rpc_error_during_search_keeps_the_deposit(self) -> None:
        self.chain.failures["read_position_slot"] = provider_error("rpc timeout")

        outcome = await self.flows.stake(staking_plan(), Decimal("100"))

        self.assertEqual(outcome.transaction.status, TxStatus.CONFIRMED)
        self.assertEqual(outcome.transaction.block_number, self.chain.block_number)
        self.assertEqual(outcome.warnings, (POSITION_NOT_FOUND,))
        self.assertIsNone(outcome.record)
        self.assertEqual(self.store.records, [])

    async def test_record_store_failure_keeps_the_deposit(self) -> None:
        self.flows.records = RecordingStore(error=RecordStoreError("store unavailable"))

        outcome = await self.flows.stake(staking_plan(), Decimal("100"))

        self.assertEqual(outcome.warnings, (RECORD_NOT_SAVED,))
        self.assertEqual(outcome.position_id, 1)
        self.assertEqual(outcome.transaction.status, TxStatus.CONFIRMED)

    async def test_decimals_are_read_once_per_token(self) -> None:
        self.chain.allowance = 10**30
        await self.flows.stake(staking_plan(), Decimal("10"))
        await self.flows.stake(staking_plan(), Decimal("20"))
        self.assertEqual(self.chain.names().count("read_decimals"), 1)


class SplitAndNodeFlowTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.chain = FakeChain()
        self.store = RecordingStore()
        self.flows = make_flows(self.chain, self.store)

    async def test_split_investment_uses_resolved_allocation(self) -> None:
        plan = AllocationPlan(
            plan_id="plan-7",
            wallet1=WalletSlot(address=WALLET_1, percentage=60),
            wallet2=WalletSlot(address=WALLET_2, percentage=40),
        )
        outcome = await self.flows.invest_split(plan, Decimal("250"))

        w1 = Web3.to_checksum_address(WALLET_1)
        w2 = Web3.to_checksum_address(WALLET_2)
        self.assertIn(("submit_approval", TOKEN, INVEST, 250 * ONE), self.chain.calls)
        self.assertIn(
            ("submit_action", INVEST, "investSplit", [250 * ONE, w1, w2, w1, 6000, 4000, 0]),
            self.chain.calls,
        )
        self.assertEqual(outcome.record.kind, ActionKind.SPLIT_INVEST)
        self.assertEqual(outcome.record.plan_or_node_id, "plan-7")
        self.assertIsNone(outcome.record.position_id)
        self.assertIsNone(outcome.record.unlock_time)

    async def test_bad_allocation_submits_nothing(self) -> None:
        plan = AllocationPlan(plan_id="broken", wallet2=WalletSlot(address=WALLET_2, percentage=100))
        with self.assertRaises(ValidationError):
            await self.flows.invest_split(plan, Decimal("250"))
        self.assertEqual(self.chain.calls, [])

    async def test_node_purchase_pays_the_node_wallet(self) -> None:
        outcome = await self.flows.buy_node(NodeOffer(node_id=3, name="Genesis", price=Decimal("99.5")))

        units = 99_500_000_000_000_000_000
        self.assertIn(("submit_approval", TOKEN, PAY_WALLET, units), self.chain.calls)
        self.assertIn(("submit_action", INVEST, "buyNode", [3, units, PAY_WALLET]), self.chain.calls)
        self.assertEqual(outcome.record.kind, ActionKind.BUY_POSITION)
        self.assertEqual(outcome.record.plan_or_node_id, "3")
        self.assertEqual(self.store.records, [outcome.record])


class FlowHelpersTests(unittest.TestCase):
    def test_to_units(self) -> None:
        self.assertEqual(to_units(Decimal("1.5"), 6), 1_500_000)
        self.assertEqual(to_units(Decimal("0.000001"), 18), 10**12)

    def test_check_limits(self) -> None:
        check_limits(Decimal("10"), Decimal("10"), Decimal("10"))
        with self.assertRaises(ValidationError):
            check_limits(Decimal("0"), Decimal("0"), None)

    def test_from_config_picks_record_store(self) -> None:
        env = {"RPC_URL": "http://127.0.0.1:8545", "PRIVATE_KEY": "0x" + "11" * 32}
        flows = DepositFlows.from_config(Config.model_validate(env), chain=FakeChain())
        self.assertIsInstance(flows.records, LogRecordStore)
        self.assertEqual(flows.share_scale, 100)

        env["RECORD_STORE_URL"] = "https://records.example/api/"
        flows = DepositFlows.from_config(Config.model_validate(env), chain=FakeChain())
        self.assertIsInstance(flows.records, HttpRecordStore)
        self.assertEqual(flows.records.url, "https://records.example/api")


if __name__ == "__main__":
    unittest.main()
