"""Async read/write access to one EVM network for a single signing account."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from eth_account import Account
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential
from web3 import AsyncWeb3, Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError
from web3.middleware import ExtraDataToPOAMiddleware

from .abi import ACTION_ABIS, ERC20_ABI, STAKING_VAULT_ABI
from .config import Config
from .errors import ProviderError
from .models import BlockInfo, PositionSlot, Receipt

logger = logging.getLogger(__name__)

_REVERTS = (ContractLogicError, BadFunctionCallOutput)
_DEFAULT_GAS = 300_000

_read_retry = retry(
    reraise=True,
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_not_exception_type(_REVERTS),
)


def checksum_args(args: Sequence[Any]) -> list:
    return [Web3.to_checksum_address(a) if isinstance(a, str) and Web3.is_address(a) else a for a in args]


class ChainClient:
    """Facade over AsyncWeb3 used by the orchestrator and the position locator.

    Reads are retried; writes are sent exactly once. Every failure that is
    not a contract revert on a read surfaces as ``ProviderError`` carrying
    the provider's message.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        private_key: str,
        chain_id: int,
        receipt_timeout: float = 180.0,
        gas_multiplier: float = 1.2,
    ) -> None:
        self.w3 = w3
        self.account = Account.from_key(private_key)
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.gas_multiplier = gas_multiplier

    @staticmethod
    def connect(cfg: Config) -> "ChainClient":
        w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(cfg.rpc_url, request_kwargs={"timeout": 60}))
        # BSC and other PoA chains carry oversized extraData
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        return ChainClient(
            w3,
            cfg.private_key,
            cfg.chain_id,
            receipt_timeout=cfg.receipt_timeout,
            gas_multiplier=cfg.gas_multiplier,
        )

    @property
    def address(self) -> str:
        return self.account.address

    def contract(self, address: str, abi: Any):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    # -- reads ---------------------------------------------------------------

    async def read_allowance(self, token: str, owner: str, spender: str) -> int:
        fn = self.contract(token, ERC20_ABI).functions.allowance(
            Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)
        )
        return int(await self._read(fn, "allowance"))

    async def read_balance(self, token: str, owner: str) -> int:
        fn = self.contract(token, ERC20_ABI).functions.balanceOf(Web3.to_checksum_address(owner))
        return int(await self._read(fn, "balanceOf"))

    async def read_decimals(self, token: str) -> int:
        fn = self.contract(token, ERC20_ABI).functions.decimals()
        return int(await self._read(fn, "decimals"))

    async def read_position_slot(self, contract: str, owner: str, position_id: int) -> Optional[PositionSlot]:
        fn = self.contract(contract, STAKING_VAULT_ABI).functions.stakes(
            Web3.to_checksum_address(owner), int(position_id)
        )
        try:
            raw = await self._call(fn)
        except _REVERTS:
            # unallocated ids revert on some vault builds instead of returning zeros
            return None
        except Exception as exc:
            raise ProviderError(str(exc)) from exc
        return PositionSlot.from_tuple(raw)

    async def get_block(self, block_number: int) -> BlockInfo:
        try:
            block = await self._get_block(block_number)
        except Exception as exc:
            raise ProviderError(str(exc)) from exc
        return BlockInfo(number=int(block["number"]), timestamp=int(block["timestamp"]))

    async def get_receipt(self, tx_hash: str) -> Receipt:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except Exception as exc:
            logger.error(f"Receipt wait failed for {tx_hash}: {exc}")
            raise ProviderError(str(exc)) from exc
        return Receipt(status=int(receipt["status"]), block_number=int(receipt["blockNumber"]))

    # -- writes --------------------------------------------------------------

    async def submit_approval(self, token: str, spender: str, amount: int) -> str:
        fn = self.contract(token, ERC20_ABI).functions.approve(Web3.to_checksum_address(spender), int(amount))
        return await self._send(fn)

    async def submit_action(self, contract: str, function_name: str, args: Sequence[Any]) -> str:
        abi = ACTION_ABIS.get(function_name)
        if abi is None:
            raise ProviderError(f"no ABI known for {function_name}")
        fn = getattr(self.contract(contract, abi).functions, function_name)(*checksum_args(args))
        return await self._send(fn)

    # -- internals -----------------------------------------------------------

    async def _read(self, fn, name: str) -> Any:
        try:
            return await self._call(fn)
        except Exception as exc:
            logger.error(f"Error calling {name}: {exc}")
            raise ProviderError(str(exc)) from exc

    @_read_retry
    async def _call(self, fn) -> Any:
        return await fn.call()

    @_read_retry
    async def _get_block(self, block_number: int) -> Any:
        return await self.w3.eth.get_block(block_number)

    async def _send(self, fn) -> str:
        sender = self.account.address
        try:
            nonce = await self.w3.eth.get_transaction_count(sender, "pending")
            try:
                gas_est = await fn.estimate_gas({"from": sender})
            except Exception as exc:
                logger.warning(f"Gas estimation failed: {exc}. Using default {_DEFAULT_GAS}")
                gas_est = _DEFAULT_GAS
            tx = await fn.build_transaction({
                "from": sender,
                "nonce": nonce,
                "chainId": self.chain_id,
                "gas": int(gas_est * self.gas_multiplier),
                "gasPrice": await self.w3.eth.gas_price,
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as exc:
            logger.error(f"Transaction error: {exc}")
            raise ProviderError(str(exc)) from exc
        tx_hex = Web3.to_hex(tx_hash)
        logger.info(f"Transaction sent: {tx_hex}")
        return tx_hex
