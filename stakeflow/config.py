"""Environment-driven settings for the chain client, locator and record store."""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from web3 import Web3


USDT_BSC = "0x55d398326f99059fF775485246999027B3197955"
STAKING_VAULT = "0xf3251686EfAb8707AA6ec9157aB30Ca0578C56f5"
INVESTMENT_CONTRACT = "0xAA01B013E7dB427dF2d00AEAa49a9F7417e3BA97"
NODE_PAY_WALLET = "0x5259ec6B9DdCB6213cf8350d92641623EA2a0C4F"

_ENV_KEYS = (
    "RPC_URL",
    "PRIVATE_KEY",
    "CHAIN_ID",
    "TOKEN_ADDRESS",
    "STAKING_VAULT_ADDRESS",
    "INVESTMENT_CONTRACT_ADDRESS",
    "NODE_PAY_WALLET",
    "TOKEN_DECIMALS",
    "RECEIPT_TIMEOUT",
    "SETTLE_DELAY",
    "LOCATOR_TOLERANCE_SECONDS",
    "LOCATOR_MAX_POSITIONS",
    "SPLIT_SHARE_SCALE",
    "GAS_MULTIPLIER",
    "RECORD_STORE_URL",
    "RECORD_STORE_API_KEY",
)


class Config(BaseModel):
    rpc_url: str = Field(..., alias="RPC_URL")
    private_key: str = Field(..., alias="PRIVATE_KEY")
    chain_id: int = Field(56, alias="CHAIN_ID")
    token_address: str = Field(USDT_BSC, alias="TOKEN_ADDRESS")
    staking_vault_address: str = Field(STAKING_VAULT, alias="STAKING_VAULT_ADDRESS")
    investment_contract_address: str = Field(INVESTMENT_CONTRACT, alias="INVESTMENT_CONTRACT_ADDRESS")
    node_pay_wallet: str = Field(NODE_PAY_WALLET, alias="NODE_PAY_WALLET")
    token_decimals: Optional[int] = Field(None, alias="TOKEN_DECIMALS")
    receipt_timeout: float = Field(180.0, alias="RECEIPT_TIMEOUT")
    settle_delay: float = Field(3.0, alias="SETTLE_DELAY")
    locator_tolerance_seconds: int = Field(300, alias="LOCATOR_TOLERANCE_SECONDS")
    locator_max_positions: int = Field(128, alias="LOCATOR_MAX_POSITIONS")
    split_share_scale: int = Field(100, alias="SPLIT_SHARE_SCALE")
    gas_multiplier: float = Field(1.2, alias="GAS_MULTIPLIER")
    record_store_url: Optional[str] = Field(None, alias="RECORD_STORE_URL")
    record_store_api_key: Optional[str] = Field(None, alias="RECORD_STORE_API_KEY")

    @field_validator("private_key")
    @classmethod
    def _pk_hex(cls, v: str) -> str:
        if not isinstance(v, str) or not v.startswith("0x") or len(v) != 66:
            raise ValueError("PRIVATE_KEY must be 0x + 64 hex")
        int(v[2:], 16)  # will raise if invalid
        return v

    @field_validator("token_address", "staking_vault_address", "investment_contract_address", "node_pay_wallet")
    @classmethod
    def _addr_hex(cls, v: str) -> str:
        if not Web3.is_address(v):
            raise ValueError(f"{v!r} is not a hex address")
        return Web3.to_checksum_address(v)

    @field_validator("locator_tolerance_seconds", "locator_max_positions", "split_share_scale")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v


def load_config() -> Config:
    # dotenv is loaded by the entry script; unset keys fall back to defaults
    env = {k: v for k, v in ((k, os.getenv(k)) for k in _ENV_KEYS) if v not in (None, "")}
    return Config.model_validate(env)
