"""Off-chain position records and the stores they are written to."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional, Protocol

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import RecordStoreError
from .models import SECONDS_PER_DAY, ActionKind, PendingAction, PositionRecord, TransactionRecord

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    async def write(self, record: PositionRecord) -> None:
        ...


def build_record(
    action: PendingAction,
    tx: TransactionRecord,
    owner: str,
    token: str,
    position_id: Optional[int] = None,
) -> PositionRecord:
    start_time = int(tx.block_timestamp or 0)
    lock_days = action.extra.get("lock_days") if action.kind == ActionKind.STAKE else None
    if action.kind == ActionKind.BUY_POSITION:
        ref = str(action.extra.get("node_id", ""))
    else:
        ref = str(action.extra.get("plan_id", ""))
    return PositionRecord(
        kind=action.kind,
        owner_address=owner.lower(),
        position_id=position_id,
        plan_or_node_id=ref,
        token=token,
        principal=action.amount,
        lock_duration=lock_days,
        start_time=start_time,
        unlock_time=start_time + int(lock_days) * SECONDS_PER_DAY if lock_days is not None else None,
        transaction_hash=tx.hash,
    )


class LogRecordStore:
    """Used when no record store URL is configured."""

    async def write(self, record: PositionRecord) -> None:
        logger.info(f"record: {record.model_dump(mode='json')}")


class HttpRecordStore:
    def __init__(self, url: str, api_key: Optional[str] = None, timeout: float = 30) -> None:
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self, record: PositionRecord) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            # one key per on-chain transaction so a retried POST is not stored twice
            "X-Idempotency-Key": str(uuid.uuid5(uuid.NAMESPACE_URL, record.transaction_hash)),
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    )
    def _post(self, record: PositionRecord) -> Any:
        resp = requests.post(
            f"{self.url}/positions",
            json=record.model_dump(mode="json"),
            headers=self._headers(record),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json() if resp.content else None

    async def write(self, record: PositionRecord) -> None:
        try:
            await asyncio.to_thread(self._post, record)
        except requests.RequestException as exc:
            raise RecordStoreError(f"record store write failed: {exc}") from exc
