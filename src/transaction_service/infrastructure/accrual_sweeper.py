import asyncio

import structlog

from transaction_service.application.interest import AccrualSweepResult, InterestService
from transaction_service.application.ports import AuthVerifier, AverageBalanceProvider, LedgerGateway, ProjectionCache
from transaction_service.application.unit_of_work import UnitOfWork
from transaction_service.config import Settings
from transaction_service.domain.exceptions import DomainError
from transaction_service.infrastructure.database import Database
from transaction_service.infrastructure.metrics import ACCRUAL_SWEEP_RUNS_TOTAL


logger = structlog.get_logger()


class AccrualSweeper:
    """
    Periodically runs the pending-accrual reconciliation sweep.

    - One sweep per ``sweep_interval_seconds``, each bounded by ``sweep_timeout_seconds``
    - Sweeps never overlap; items inside a sweep are processed sequentially
    - Circuit breaker stops the loop after repeated failed runs
    """

    MAX_CONSECUTIVE_FAILURES = 5

    def __init__(
        self,
        database: Database,
        cache: ProjectionCache,
        auth: AuthVerifier,
        ledger: LedgerGateway,
        balances: AverageBalanceProvider,
        settings: Settings,
    ) -> None:
        self._database = database
        self._cache = cache
        self._auth = auth
        self._ledger = ledger
        self._balances = balances
        self._settings = settings
        self._interval = settings.sweep_interval_seconds
        self._timeout = settings.sweep_timeout_seconds
        self._running = False
        self._stop_event = asyncio.Event()
        self._consecutive_failures = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run sweeps until stop() is called or the circuit breaker trips."""
        self._running = True
        self._stop_event.clear()
        self._consecutive_failures = 0
        logger.info("accrual_sweeper_started", interval_seconds=self._interval, timeout_seconds=self._timeout)

        try:
            while self._running:
                try:
                    await self.run_once()
                    self._consecutive_failures = 0
                except (DomainError, TimeoutError) as e:
                    self._consecutive_failures += 1
                    ACCRUAL_SWEEP_RUNS_TOTAL.labels(outcome="failed").inc()
                    logger.error(
                        "accrual_sweep_error",
                        error=str(e),
                        consecutive_failures=self._consecutive_failures,
                        exc_info=True,
                    )
                    if self._consecutive_failures >= self.MAX_CONSECUTIVE_FAILURES:
                        logger.critical(
                            "circuit_breaker_triggered",
                            consecutive_failures=self._consecutive_failures,
                            action="stopping_sweeper",
                        )
                        break
                await self._wait_for_next_run()
        finally:
            self._running = False
            logger.info("accrual_sweeper_stopped")

    async def stop(self) -> None:
        self._running = False
        self._stop_event.set()

    async def run_once(self) -> AccrualSweepResult:
        """Run a single sweep within the configured deadline."""
        async with asyncio.timeout(self._timeout):
            async with self._database.session() as session:
                service = InterestService(
                    uow=UnitOfWork(session),
                    cache=self._cache,
                    auth=self._auth,
                    ledger=self._ledger,
                    balances=self._balances,
                    settings=self._settings,
                )
                return await service.process_pending_accruals(self._settings.service_token.get_secret_value())

    async def _wait_for_next_run(self) -> None:
        if not self._running:
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
        except TimeoutError:
            pass
