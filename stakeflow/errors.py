"""Exceptions raised by stakeflow."""

from __future__ import annotations

from typing import Any, Optional


class StakeflowError(Exception):
    """Base class for every error raised by stakeflow."""


class ValidationError(StakeflowError, ValueError):
    """Raised before any transaction is submitted when inputs are unusable."""


class AllocationError(ValidationError):
    def __init__(self, message: str, slot: Optional[int] = None) -> None:
        super().__init__(message)
        self.slot = slot


class InsufficientBalanceError(ValidationError):
    def __init__(self, balance: int, required: int) -> None:
        super().__init__(f"insufficient balance: have {balance}, need {required}")
        self.balance = balance
        self.required = required


class ProviderError(StakeflowError):
    """Wallet, signing or RPC failure; message is the provider's own."""


class ApprovalFailedError(ProviderError):
    pass


class TransactionFailedError(ProviderError):
    def __init__(self, message: str, record: Any = None) -> None:
        super().__init__(message)
        self.record = record


class ActionInProgressError(StakeflowError, RuntimeError):
    """A second action was requested while one is still in flight."""


class RecordStoreError(StakeflowError):
    pass
