"""Domain layer - business entities and rules."""

from transaction_service.domain.exceptions import (
    AuthError,
    AuthorizationError,
    BusinessRuleError,
    CacheError,
    DomainError,
    DownstreamError,
    DuplicateAccrualPeriodError,
    IdentityMismatchError,
    InsufficientBalanceError,
    InterestRateNotFoundError,
    InvalidStatusTransitionError,
    NoInterestDueError,
    PersistenceError,
    TransactionNotFoundError,
    ValidationError,
)
from transaction_service.domain.models import (
    AccountBalance,
    AccrualStatus,
    Identity,
    InterestAccrual,
    InterestCalculation,
    InterestRate,
    Role,
    SettlementRequest,
    SettlementResult,
    Transaction,
    TransactionStats,
    TransactionStatus,
    TransactionType,
)


__all__ = [
    "AccountBalance",
    "AccrualStatus",
    "AuthError",
    "AuthorizationError",
    "BusinessRuleError",
    "CacheError",
    "DomainError",
    "DownstreamError",
    "DuplicateAccrualPeriodError",
    "Identity",
    "IdentityMismatchError",
    "InsufficientBalanceError",
    "InterestAccrual",
    "InterestCalculation",
    "InterestRate",
    "InterestRateNotFoundError",
    "InvalidStatusTransitionError",
    "NoInterestDueError",
    "PersistenceError",
    "Role",
    "SettlementRequest",
    "SettlementResult",
    "Transaction",
    "TransactionNotFoundError",
    "TransactionStats",
    "TransactionStatus",
    "TransactionType",
    "ValidationError",
]
