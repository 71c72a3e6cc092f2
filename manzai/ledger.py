"""Usage ledger — free quota and paid credits per user.

Consumption is post-paid: `check_only()` gates a request without touching
state, and `commit_after_success()` debits exactly one unit once a script
has been produced. Nothing else mutates a balance except the separate
top-up path, `add_credits()`.

States per user key:

    unmetered    no user key — always allowed, no bookkeeping
    free_quota   free_used_count < free_quota
    paid_credit  free quota used up, paid_credits > 0
    exhausted    neither

There is no lock between check and commit. Two concurrent requests for the
same user may both pass the gate; the later commit then finds nothing to
consume and reports "none".

Store layout (JsonUsageStore):

    {base}/
      usage.json     ← {user_key: {"free_used_count": n, "paid_credits": n}}
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from manzai.errors import InvalidRequestError, LedgerError
from manzai.models import (
    CommitResult,
    LedgerState,
    UsageCheck,
    UsageRecord,
    UsageSnapshot,
)

logger = logging.getLogger(__name__)

CREDIT_PRODUCTS: dict[str, int] = {"credit_1": 1, "credit_10": 10, "credit_100": 100}


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class UsageStore(Protocol):
    def get(self, user_key: str) -> UsageRecord | None: ...

    def upsert(self, user_key: str, record: UsageRecord) -> None: ...


class MemoryUsageStore:
    """Process-local store; records live as long as the object."""

    def __init__(self, records: dict[str, UsageRecord] | None = None) -> None:
        self._records = dict(records or {})

    def get(self, user_key: str) -> UsageRecord | None:
        record = self._records.get(user_key)
        return record.model_copy() if record else None

    def upsert(self, user_key: str, record: UsageRecord) -> None:
        self._records[user_key] = record.model_copy()


class JsonUsageStore:
    """All records in one JSON file under a configurable base directory."""

    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._path = base_path / "usage.json"

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise LedgerError(f"Cannot read usage store: {e}") from e
        if not isinstance(data, dict):
            raise LedgerError("Usage store is not a JSON object")
        return data

    def get(self, user_key: str) -> UsageRecord | None:
        raw = self._read_all().get(user_key)
        if raw is None:
            return None
        try:
            return UsageRecord.model_validate(raw)
        except ValidationError as e:
            raise LedgerError(f"Corrupt usage record for {user_key!r}") from e

    def upsert(self, user_key: str, record: UsageRecord) -> None:
        data = self._read_all()
        data[user_key] = record.model_dump()
        try:
            self._base.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            raise LedgerError(f"Cannot write usage store: {e}") from e


# ---------------------------------------------------------------------------
# Credit top-up parsing
# ---------------------------------------------------------------------------

def parse_credit_delta(delta: Any) -> int:
    """Accept a positive number, a numeric string or a product code."""
    if isinstance(delta, bool):
        raise InvalidRequestError("bad params")
    if isinstance(delta, (int, float)):
        value = float(delta)
    elif isinstance(delta, str) and delta in CREDIT_PRODUCTS:
        value = float(CREDIT_PRODUCTS[delta])
    elif isinstance(delta, str):
        try:
            value = float(delta)
        except ValueError:
            raise InvalidRequestError("bad params")
    else:
        raise InvalidRequestError("bad params")
    if not math.isfinite(value) or value < 1 or value != int(value):
        raise InvalidRequestError("bad params")
    return int(value)


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class UsageLedger:
    def __init__(self, store: UsageStore, free_quota: int = 20) -> None:
        self._store = store
        self._free_quota = free_quota

    def _read(self, user_key: str) -> UsageRecord:
        try:
            record = self._store.get(user_key)
        except LedgerError:
            raise
        except Exception as e:
            raise LedgerError(f"Usage store read failed: {e}") from e
        return record or UsageRecord()

    def _write(self, user_key: str, record: UsageRecord) -> None:
        try:
            self._store.upsert(user_key, record)
        except LedgerError:
            raise
        except Exception as e:
            raise LedgerError(f"Usage store write failed: {e}") from e

    def state_of(self, record: UsageRecord) -> LedgerState:
        if record.free_used_count < self._free_quota:
            return "free_quota"
        if record.paid_credits > 0:
            return "paid_credit"
        return "exhausted"

    def _snapshot(self, record: UsageRecord) -> UsageSnapshot:
        return UsageSnapshot(
            free_used_count=record.free_used_count,
            paid_credits=record.paid_credits,
            free_quota=self._free_quota,
            free_remaining=max(self._free_quota - record.free_used_count, 0),
        )

    def snapshot(self, user_key: str) -> UsageSnapshot:
        return self._snapshot(self._read(user_key))

    def check_only(self, user_key: str | None) -> UsageCheck:
        """Gate a request. Never writes."""
        if not user_key:
            return UsageCheck(allowed=True, state="unmetered")
        record = self._read(user_key)
        state = self.state_of(record)
        return UsageCheck(
            allowed=state != "exhausted", state=state, snapshot=self._snapshot(record)
        )

    def commit_after_success(self, user_key: str | None) -> CommitResult:
        """Debit one generation against a freshly read record."""
        if not user_key:
            return CommitResult(consumed_from="none")
        record = self._read(user_key)
        state = self.state_of(record)

        if state == "free_quota":
            record = UsageRecord(
                free_used_count=record.free_used_count + 1,
                paid_credits=record.paid_credits,
            )
            consumed = "free"
        elif state == "paid_credit":
            record = UsageRecord(
                free_used_count=record.free_used_count + 1,
                paid_credits=record.paid_credits - 1,
            )
            consumed = "paid"
        else:
            logger.warning("commit for %r found nothing to consume", user_key)
            return CommitResult(consumed_from="none", snapshot=self._snapshot(record))

        self._write(user_key, record)
        logger.info(
            "usage consumed user=%r from=%s free_used=%d paid=%d",
            user_key, consumed, record.free_used_count, record.paid_credits,
        )
        return CommitResult(consumed_from=consumed, snapshot=self._snapshot(record))

    def add_credits(self, user_key: str, delta: int) -> UsageSnapshot:
        """Top up paid credits. `delta` must be positive."""
        if not user_key or delta <= 0:
            raise InvalidRequestError("bad params")
        record = self._read(user_key)
        record = UsageRecord(
            free_used_count=record.free_used_count,
            paid_credits=record.paid_credits + delta,
        )
        self._write(user_key, record)
        logger.info("credits added user=%r delta=%d paid=%d", user_key, delta, record.paid_credits)
        return self._snapshot(record)
