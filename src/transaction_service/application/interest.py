from dataclasses import dataclass, field
from datetime import UTC, datetime, time
from decimal import Decimal

import structlog

from transaction_service.application.access import require_access, require_admin, resolve_page
from transaction_service.application.ports import AuthVerifier, AverageBalanceProvider, LedgerGateway, ProjectionCache
from transaction_service.application.projections import BestEffortCache
from transaction_service.application.settlement import SettlementStep
from transaction_service.application.unit_of_work import UnitOfWork
from transaction_service.config import Settings
from transaction_service.domain.exceptions import (
    DomainError,
    DuplicateAccrualPeriodError,
    InterestRateNotFoundError,
    NoInterestDueError,
    PersistenceError,
    ValidationError,
)
from transaction_service.domain.metadata import validate_accrual_metadata
from transaction_service.domain.models import (
    AccrualStatus,
    InterestAccrual,
    InterestCalculation,
    period_bounds,
)
from transaction_service.infrastructure.cache import user_views_prefix
from transaction_service.infrastructure.database import persistence_errors
from transaction_service.infrastructure.metrics import (
    ACCRUAL_SWEEP_RUNS_TOTAL,
    ACCRUALS_PENDING,
    ACCRUALS_TOTAL,
    TERMINAL_STATUS_WRITE_FAILURES_TOTAL,
)


logger = structlog.get_logger()


@dataclass
class AccrualSweepItem:
    accrual_id: str
    user_id: str
    account_id: str
    period: str
    interest: Decimal
    error: str | None = None


@dataclass
class AccrualSweepResult:
    total: int
    successful: list[AccrualSweepItem] = field(default_factory=list)
    failed: list[AccrualSweepItem] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


class InterestService:
    """Monthly interest: calculation, application through the ledger, and the pending sweep."""

    def __init__(
        self,
        uow: UnitOfWork,
        cache: ProjectionCache,
        auth: AuthVerifier,
        ledger: LedgerGateway,
        balances: AverageBalanceProvider,
        settings: Settings,
    ) -> None:
        self.uow = uow
        self._cache = BestEffortCache(cache)
        self._auth = auth
        self._balances = balances
        self._settlement = SettlementStep(ledger)
        self._settings = settings

    async def calculate_monthly_interest(self, user_id: str, account_id: str, period: str) -> InterestCalculation:
        """
        Compute interest for one account and period without persisting anything.

        The rate is the one effective at the end of ``period``.

        Raises:
            ValidationError: malformed identifiers or period
            InterestRateNotFoundError: no rate effective for the account category
            DuplicateAccrualPeriodError: an accrual already exists for the period
        """
        if not user_id:
            raise ValidationError("user_id", "user ID is required")
        if not account_id:
            raise ValidationError("account_id", "account ID is required")
        _, period_end = period_bounds(period)
        as_of = datetime.combine(period_end, time.max, tzinfo=UTC)
        category = self._settings.default_account_category

        async with self.uow:
            with persistence_errors("get_interest_rate"):
                rate = await self.uow.interest_rates.get_effective(category, as_of)
            if rate is None:
                raise InterestRateNotFoundError(category)

            with persistence_errors("get_accrual_by_period"):
                existing = await self.uow.accruals.get_by_period(user_id, account_id, period)
            if existing is not None:
                raise DuplicateAccrualPeriodError(user_id, account_id, period)

        principal = await self._balances.average_balance(account_id, period)
        interest = rate.monthly_interest(principal)

        logger.info(
            "interest_calculated",
            user_id=user_id,
            account_id=account_id,
            period=period,
            principal=str(principal),
            rate=str(rate.rate),
            interest=str(interest),
        )
        return InterestCalculation(
            user_id=user_id,
            account_id=account_id,
            period=period,
            principal=principal,
            interest=interest,
            rate=rate.rate,
            rate_id=rate.id,
        )

    async def apply_interest(self, user_id: str, account_id: str, period: str, credential: str) -> InterestAccrual:
        identity = await self._auth.verify(credential)
        require_access(identity, user_id, f"account {account_id}")

        calculation = await self.calculate_monthly_interest(user_id, account_id, period)
        if calculation.interest <= 0:
            raise NoInterestDueError(account_id, period, calculation.interest)
        accrual = InterestAccrual.create(
            calculation,
            metadata=validate_accrual_metadata(
                {
                    key: value
                    for key, value in (
                        ("account_category", self._settings.default_account_category),
                        ("rate_id", calculation.rate_id),
                        ("initiated_by", identity.user_id),
                    )
                    if value is not None
                }
            ),
        )
        log = logger.bind(accrual_id=accrual.id, user_id=user_id, account_id=account_id, period=period)

        async with self.uow:
            with persistence_errors("create_accrual"):
                await self.uow.accruals.add(accrual)
            await self.uow.commit()
            log.info("accrual_pending", interest=str(accrual.interest))

            await self._settle(accrual, credential, log)
        return accrual

    async def process_pending_accruals(self, credential: str) -> AccrualSweepResult:
        """
        Retry settlement of every PENDING accrual, oldest first.

        Existing rows are settled as they are, never recalculated. Rows that
        reach APPLIED or FAILED are not picked up by later runs.
        """
        identity = await self._auth.verify(credential)
        require_admin(identity, "pending interest accruals")

        async with self.uow:
            with persistence_errors("get_pending_accruals"):
                pending = await self.uow.accruals.get_pending()

        ACCRUALS_PENDING.set(len(pending))
        result = AccrualSweepResult(total=len(pending))
        sweep_log = logger.bind(initiated_by=identity.user_id, total=result.total)
        sweep_log.info("accrual_sweep_started")

        for accrual in pending:
            item = AccrualSweepItem(
                accrual_id=accrual.id,
                user_id=accrual.user_id,
                account_id=accrual.account_id,
                period=accrual.period,
                interest=accrual.interest,
            )
            log = logger.bind(accrual_id=accrual.id, user_id=accrual.user_id, period=accrual.period)
            try:
                async with self.uow:
                    await self._settle(accrual, credential, log)
            except DomainError as e:
                item.error = str(e)
                result.failed.append(item)
            else:
                result.successful.append(item)

        ACCRUAL_SWEEP_RUNS_TOTAL.labels(outcome="completed").inc()
        sweep_log.info(
            "accrual_sweep_finished",
            success_count=result.success_count,
            failure_count=result.failure_count,
        )
        return result

    async def get_accrual_history(
        self,
        user_id: str,
        credential: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[InterestAccrual]:
        limit, offset = resolve_page(limit, offset, self._settings)
        identity = await self._auth.verify(credential)
        require_access(identity, user_id, f"interest accruals of user {user_id}")

        async with self.uow:
            with persistence_errors("get_accrual_history"):
                return await self.uow.accruals.get_by_user(user_id, limit, offset)

    async def _settle(
        self,
        accrual: InterestAccrual,
        credential: str,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        try:
            await self._settlement.execute(
                accrual.settlement_request(self._settings.default_currency),
                credential,
                on_settled=lambda _result: self._finalize(accrual, AccrualStatus.APPLIED, log),
                on_failed=lambda _error: self._finalize(accrual, AccrualStatus.FAILED, log),
            )
        finally:
            # interest also surfaces in the owner's transaction views
            await self._cache.invalidate(prefixes=[user_views_prefix(accrual.user_id)])

    async def _finalize(
        self,
        accrual: InterestAccrual,
        status: AccrualStatus,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        if status is AccrualStatus.APPLIED:
            accrual.mark_applied()
        else:
            accrual.mark_failed()

        try:
            with persistence_errors("finalize_accrual"):
                updated = await self.uow.accruals.update_status(accrual.id, accrual.status, accrual.applied_at)
            await self.uow.commit()
        except PersistenceError:
            TERMINAL_STATUS_WRITE_FAILURES_TOTAL.labels(entity="interest_accrual").inc()
            log.critical("accrual_finalize_failed", status=status.value, exc_info=True)
            raise

        if not updated:
            log.warning("accrual_already_terminal", status=status.value)
        ACCRUALS_TOTAL.labels(status=status.value).inc()
        log.info("accrual_finalized", status=status.value)
