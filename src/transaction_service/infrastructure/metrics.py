import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram


TRANSACTIONS_TOTAL = Counter(
    "transactions_total",
    "Transactions that reached a terminal status",
    ["type", "status"],
)

TRANSACTIONS_REJECTED_TOTAL = Counter(
    "transactions_rejected_total",
    "Transactions rejected before a record was persisted",
    ["error_code"],
)

SETTLEMENT_DURATION_SECONDS = Histogram(
    "settlement_duration_seconds",
    "Ledger settlement call duration",
    ["type"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

SETTLEMENT_FAILURES_TOTAL = Counter(
    "settlement_failures_total",
    "Settlement calls that failed or were rejected",
    ["type"],
)

TERMINAL_STATUS_WRITE_FAILURES_TOTAL = Counter(
    "terminal_status_write_failures_total",
    "Records left PENDING because the terminal status could not be written",
    ["entity"],
)

ACCRUALS_TOTAL = Counter(
    "interest_accruals_total",
    "Interest accruals that reached a terminal status",
    ["status"],
)

ACCRUAL_SWEEP_RUNS_TOTAL = Counter(
    "accrual_sweep_runs_total",
    "Reconciliation sweep runs",
    ["outcome"],
)

ACCRUALS_PENDING = Gauge(
    "interest_accruals_pending",
    "PENDING accruals found at the start of the last sweep",
)

CACHE_ERRORS_TOTAL = Counter(
    "cache_errors_total",
    "Cache operations that failed and were ignored",
    ["operation"],
)

TRANSACTION_DURATION_SECONDS = Histogram(
    "transaction_duration_seconds",
    "End-to-end transaction processing duration",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


P = ParamSpec("P")
R = TypeVar("R")


def track_transaction_duration(
    func: Callable[P, Awaitable[R]],
) -> Callable[P, Awaitable[R]]:
    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        start = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            TRANSACTION_DURATION_SECONDS.observe(time.perf_counter() - start)

    return wrapper
