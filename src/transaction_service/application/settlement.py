"""
Settlement step shared by the transaction orchestrator and the interest engine.

A local record is already durable in PENDING when this step starts. The step
calls the ledger and then hands the outcome to the caller's finalize callbacks,
which write the terminal status. Both happen inside one shielded task: once
the ledger call has been issued, a cancellation of the caller is held back
until the terminal status has been written, and re-raised afterwards.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from transaction_service.application.ports import LedgerGateway
from transaction_service.domain.exceptions import DownstreamError
from transaction_service.domain.models import SettlementRequest, SettlementResult
from transaction_service.infrastructure.metrics import SETTLEMENT_DURATION_SECONDS, SETTLEMENT_FAILURES_TOTAL


logger = structlog.get_logger()

OnSettled = Callable[[SettlementResult], Awaitable[None]]
OnSettlementFailed = Callable[[DownstreamError], Awaitable[None]]


class SettlementStep:
    def __init__(self, ledger: LedgerGateway) -> None:
        self._ledger = ledger
        # strong references so a settlement outlives the caller that started it
        self._in_flight: set[asyncio.Task[SettlementResult]] = set()

    async def execute(
        self,
        request: SettlementRequest,
        credential: str,
        on_settled: OnSettled,
        on_failed: OnSettlementFailed,
    ) -> SettlementResult:
        """
        Settle ``request`` and finalize the local record.

        Raises:
            DownstreamError: the ledger call failed; ``on_failed`` has run.
            PersistenceError: a finalize callback could not write the status.
        """
        task = asyncio.ensure_future(self._settle_and_finalize(request, credential, on_settled, on_failed))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                logger.warning("settlement_cancellation_deferred", reference=request.reference)
                while not task.done():
                    try:
                        await asyncio.wait({task})
                    except asyncio.CancelledError:
                        logger.warning("settlement_cancellation_repeated", reference=request.reference)
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    "settlement_finished_after_cancellation",
                    reference=request.reference,
                    error=str(task.exception()),
                )
            raise

    async def _settle_and_finalize(
        self,
        request: SettlementRequest,
        credential: str,
        on_settled: OnSettled,
        on_failed: OnSettlementFailed,
    ) -> SettlementResult:
        log = logger.bind(reference=request.reference, type=request.type.value, amount=str(request.amount))
        start = time.perf_counter()
        try:
            result = await self._ledger.settle(request, credential)
        except Exception as e:
            SETTLEMENT_FAILURES_TOTAL.labels(type=request.type.value).inc()
            error = e if isinstance(e, DownstreamError) else DownstreamError("ledger", f"unexpected failure: {e!r}")
            log.warning("settlement_failed", error=str(error))
            await on_failed(error)
            if error is e:
                raise
            raise error from e
        finally:
            SETTLEMENT_DURATION_SECONDS.labels(type=request.type.value).observe(time.perf_counter() - start)

        log.info("settlement_succeeded", new_balance=str(result.new_balance), status=result.status)
        await on_settled(result)
        return result
