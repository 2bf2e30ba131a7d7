"""
Customer aggregate maintenance.

The five aggregate fields on a customer are a cache over that customer's
loans. They are recomputed from the full loan set (never incrementally
adjusted) after every loan mutation, and only this module writes them.

Recomputes for one customer are coalesced: at most one runs at a time, and
a request that arrives while one is running is served by a recompute that
starts after it arrived. That closes the lost-update race between two
concurrent loan writes in one process. Several processes can still race;
whichever recompute finishes last wins, and the next loan mutation repairs
any stale value.
"""
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, Generic, Iterable, Mapping, Optional, TypeVar
import asyncio
import logging

from chitfund.core.documents import DocumentStore, COLLECTION_CUSTOMERS, COLLECTION_LOANS
from chitfund.modules.loans.schemas import CustomerAggregates, LoanStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACTIVE_LOAN_STATUSES = frozenset({LoanStatus.ACTIVE.value, LoanStatus.DEFAULTED.value})


def _amount(loan: Mapping[str, Any], field: str) -> float:
    return float(loan.get(field) or 0)


def compute_customer_aggregates(loans: Iterable[Mapping[str, Any]]) -> CustomerAggregates:
    """
    Pure aggregate function over a customer's loan documents.

    Principal, outstanding and disbursed sums and the count cover ACTIVE and
    DEFAULTED loans only. The paid sum covers every loan, so payments on a
    closed loan still count toward the lifetime total.
    """
    loans = list(loans)
    active = [loan for loan in loans if loan.get("status") in ACTIVE_LOAN_STATUSES]
    return CustomerAggregates(
        total_loan_amount=sum(_amount(loan, "amount") for loan in active),
        current_due_amount=sum(_amount(loan, "outstandingAmount") for loan in active),
        total_disbursed_amount=sum(_amount(loan, "disbursedAmount") for loan in active),
        total_paid_amount=sum(_amount(loan, "paidAmount") for loan in loans),
        active_loans_count=len(active),
    )


class RecomputeCoalescer(Generic[T]):
    """Single-flight runner: one job per key at a time, late callers share a later run"""

    def __init__(self, job: Callable[[str], Awaitable[T]]):
        self._job = job
        self._locks: Dict[str, asyncio.Lock] = {}
        self._requested: Dict[str, int] = {}
        self._completed: Dict[str, int] = {}
        self._results: Dict[str, T] = {}
        self._waiters: Counter = Counter()

    async def run(self, key: str) -> T:
        ticket = self._requested.get(key, 0) + 1
        self._requested[key] = ticket
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] += 1
        try:
            async with lock:
                # a run that started after this request already covers it
                if self._completed.get(key, 0) >= ticket:
                    return self._results[key]
                covered = self._requested[key]
                result = await self._job(key)
                self._completed[key] = covered
                self._results[key] = result
                return result
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] <= 0:
                self._forget(key)

    def in_flight(self, key: str) -> bool:
        return self._waiters.get(key, 0) > 0

    def _forget(self, key: str) -> None:
        self._waiters.pop(key, None)
        self._locks.pop(key, None)
        self._requested.pop(key, None)
        self._completed.pop(key, None)
        self._results.pop(key, None)


class CustomerAggregator:
    """Recomputes and persists customer aggregates"""

    def __init__(self, store: DocumentStore):
        self.store = store
        self._coalescer: RecomputeCoalescer[CustomerAggregates] = RecomputeCoalescer(self.recompute)

    async def recompute(self, customer_id: str) -> CustomerAggregates:
        """
        Read every loan of the customer and write the aggregates back.

        Raises DocumentNotFoundError when the customer does not exist; the
        customer record is never created here.
        """
        loans = await self.store.query(COLLECTION_LOANS, {"customerId": customer_id})
        aggregates = compute_customer_aggregates(loans)
        await self.store.update(COLLECTION_CUSTOMERS, customer_id, aggregates.to_document())
        logger.debug(f"Aggregates for customer {customer_id}: {aggregates.to_document()}")
        return aggregates

    async def refresh(self, customer_id: str) -> Optional[CustomerAggregates]:
        """
        Coalesced recompute for use after a loan mutation.

        Failures are logged and swallowed: the loan write is the source of
        truth and must not fail because the cache could not be updated.
        """
        try:
            return await self._coalescer.run(customer_id)
        except Exception as e:
            logger.error(f"Failed to update aggregates for customer {customer_id}: {e!r}")
            return None
