import calendar
import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from ulid import ULID

from transaction_service.domain.exceptions import InvalidStatusTransitionError, ValidationError


CENTS = Decimal("0.01")

# transactions.amount is NUMERIC(19, 4)
AMOUNT_QUANTUM = Decimal("0.0001")
MAX_AMOUNT = Decimal(10) ** 15

_PERIOD_RE = re.compile(r"^(\d{4})-(\d{2})$")


class TransactionType(Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRANSFER = "TRANSFER"
    INTEREST = "INTEREST"


class TransactionStatus(Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class AccrualStatus(Enum):
    PENDING = "PENDING"
    APPLIED = "APPLIED"
    FAILED = "FAILED"


class Role(Enum):
    USER = "USER"
    ADMIN = "ADMIN"

    @classmethod
    def normalize(cls, raw: str) -> "Role | None":
        """Map role strings such as ``ROLE_ADMIN`` or ``admin`` onto a canonical role."""
        name = raw.strip().upper()
        if name.startswith("ROLE_"):
            name = name[len("ROLE_") :]
        try:
            return cls(name)
        except ValueError:
            return None


@dataclass(frozen=True)
class Identity:
    user_id: str
    roles: frozenset[Role] = frozenset()
    username: str | None = None
    active: bool = True

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles

    def can_access(self, owner_id: str) -> bool:
        return self.user_id == owner_id or self.is_admin


@dataclass(frozen=True)
class AccountBalance:
    account_id: str
    available: Decimal
    locked: Decimal
    currency: str


@dataclass(frozen=True)
class SettlementRequest:
    amount: Decimal
    currency: str
    type: TransactionType
    description: str
    reference: str
    idempotency_key: str
    from_account_id: str | None = None
    to_account_id: str | None = None


@dataclass(frozen=True)
class SettlementResult:
    status: str
    new_balance: Decimal
    ledger_transaction_id: str | None = None
    message: str | None = None


def period_bounds(period: str) -> tuple[date, date]:
    """Return the first and last day of a ``YYYY-MM`` period."""
    match = _PERIOD_RE.match(period or "")
    if not match:
        raise ValidationError("period", "must be formatted as YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError("period", "month must be between 01 and 12")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass
class Transaction:
    id: str
    user_id: str
    account_id: str
    amount: Decimal
    currency: str
    type: TransactionType
    status: TransactionStatus
    description: str = ""
    reference: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        user_id: str,
        account_id: str,
        amount: Decimal,
        currency: str,
        type: TransactionType,
        description: str = "",
        reference: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> "Transaction":
        return cls(
            id=str(ULID()),
            user_id=user_id,
            account_id=account_id,
            amount=amount,
            currency=currency,
            type=type,
            status=TransactionStatus.PENDING,
            description=description,
            reference=reference,
            metadata=dict(metadata or {}),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status is not TransactionStatus.PENDING

    def mark_completed(self) -> None:
        self._transition(TransactionStatus.COMPLETED)

    def mark_failed(self) -> None:
        self._transition(TransactionStatus.FAILED)

    def _transition(self, status: TransactionStatus) -> None:
        if self.is_terminal:
            raise InvalidStatusTransitionError("Transaction", self.id, self.status.value, status.value)
        self.status = status
        self.updated_at = datetime.now(UTC)

    def settlement_request(self) -> SettlementRequest:
        from_account: str | None = None
        to_account: str | None = None
        if self.type in (TransactionType.DEPOSIT, TransactionType.INTEREST):
            to_account = self.account_id
        else:
            from_account = self.account_id
            if self.type is TransactionType.TRANSFER:
                to_account = self.metadata.get("counterparty_account_id")
        return SettlementRequest(
            amount=self.amount,
            currency=self.currency,
            type=self.type,
            description=self.description,
            reference=self.reference or self.id,
            idempotency_key=self.id,
            from_account_id=from_account,
            to_account_id=to_account,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "account_id": self.account_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "type": self.type.value,
            "status": self.status.value,
            "description": self.description,
            "reference": self.reference,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Transaction":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            account_id=data["account_id"],
            amount=_decimal(data["amount"]),
            currency=data["currency"],
            type=TransactionType(data["type"]),
            status=TransactionStatus(data["status"]),
            description=data.get("description") or "",
            reference=data.get("reference") or "",
            metadata=dict(data.get("metadata") or {}),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass
class TransactionStats:
    total_count: int = 0
    completed_count: int = 0
    failed_count: int = 0
    total_deposits: Decimal = Decimal("0")
    total_withdrawals: Decimal = Decimal("0")

    @property
    def net_flow(self) -> Decimal:
        return self.total_deposits - self.total_withdrawals

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_count": self.total_count,
            "completed_count": self.completed_count,
            "failed_count": self.failed_count,
            "total_deposits": str(self.total_deposits),
            "total_withdrawals": str(self.total_withdrawals),
            "net_flow": str(self.net_flow),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransactionStats":
        return cls(
            total_count=int(data["total_count"]),
            completed_count=int(data["completed_count"]),
            failed_count=int(data["failed_count"]),
            total_deposits=_decimal(data["total_deposits"]),
            total_withdrawals=_decimal(data["total_withdrawals"]),
        )


@dataclass
class InterestRate:
    id: str
    account_category: str
    rate: Decimal
    effective_from: datetime
    effective_to: datetime | None = None

    def monthly_interest(self, principal: Decimal) -> Decimal:
        """Interest on ``principal`` for one month of the annual percentage ``rate``."""
        return (principal * (self.rate / Decimal(12) / Decimal(100))).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class InterestCalculation:
    user_id: str
    account_id: str
    period: str
    principal: Decimal
    interest: Decimal
    rate: Decimal
    rate_id: str | None = None


@dataclass
class InterestAccrual:
    id: str
    user_id: str
    account_id: str
    period: str
    principal: Decimal
    interest: Decimal
    rate: Decimal
    status: AccrualStatus
    metadata: dict[str, Any] = field(default_factory=dict)
    applied_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        calculation: InterestCalculation,
        metadata: dict[str, Any] | None = None,
    ) -> "InterestAccrual":
        return cls(
            id=str(ULID()),
            user_id=calculation.user_id,
            account_id=calculation.account_id,
            period=calculation.period,
            principal=calculation.principal,
            interest=calculation.interest,
            rate=calculation.rate,
            status=AccrualStatus.PENDING,
            metadata=dict(metadata or {}),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status is not AccrualStatus.PENDING

    def mark_applied(self) -> None:
        self._transition(AccrualStatus.APPLIED)
        self.applied_at = datetime.now(UTC)

    def mark_failed(self) -> None:
        self._transition(AccrualStatus.FAILED)

    def _transition(self, status: AccrualStatus) -> None:
        if self.is_terminal:
            raise InvalidStatusTransitionError("InterestAccrual", self.id, self.status.value, status.value)
        self.status = status

    def settlement_request(self, currency: str) -> SettlementRequest:
        return SettlementRequest(
            amount=self.interest,
            currency=currency,
            type=TransactionType.INTEREST,
            description=f"Interest for period {self.period}",
            reference=self.id,
            idempotency_key=self.id,
            to_account_id=self.account_id,
        )
