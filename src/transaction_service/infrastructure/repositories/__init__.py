"""Repository implementations."""

from transaction_service.infrastructure.repositories.interest import (
    InterestAccrualRepository,
    InterestRateRepository,
)
from transaction_service.infrastructure.repositories.transaction import TransactionRepository


__all__ = [
    "InterestAccrualRepository",
    "InterestRateRepository",
    "TransactionRepository",
]
