class DomainError(Exception):
    """Base exception for domain errors."""

    code = "DOMAIN_ERROR"


class ValidationError(DomainError):
    """Raised when a request is malformed or incomplete."""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class AuthError(DomainError):
    """Raised when a credential is missing, malformed, expired or inactive."""

    code = "AUTH_ERROR"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Authentication failed: {reason}")


class IdentityMismatchError(AuthError):
    """Raised when the verified identity is not the user named in the request."""

    code = "IDENTITY_MISMATCH"

    def __init__(self, expected_user_id: str, actual_user_id: str) -> None:
        self.expected_user_id = expected_user_id
        self.actual_user_id = actual_user_id
        super().__init__("user ID mismatch")


class AuthorizationError(DomainError):
    """Raised when an authenticated caller is not entitled to a resource."""

    code = "ACCESS_DENIED"

    def __init__(self, user_id: str, resource: str) -> None:
        self.user_id = user_id
        self.resource = resource
        super().__init__(f"User {user_id} may not access {resource}")


class BusinessRuleError(DomainError):
    """Raised when a request is well-formed but violates a business rule."""

    code = "BUSINESS_RULE_VIOLATION"


class InsufficientBalanceError(BusinessRuleError):
    """Raised when an account cannot cover a withdrawal."""

    code = "INSUFFICIENT_BALANCE"

    def __init__(self, account_id: str, required: object, available: object) -> None:
        self.account_id = account_id
        self.required = required
        self.available = available
        super().__init__(f"insufficient balance on account {account_id}: required {required}, available {available}")


class DuplicateAccrualPeriodError(BusinessRuleError):
    """Raised when interest was already accrued for the account and period."""

    code = "DUPLICATE_PERIOD"

    def __init__(self, user_id: str, account_id: str, period: str) -> None:
        self.user_id = user_id
        self.account_id = account_id
        self.period = period
        super().__init__(f"interest already calculated for period {period} on account {account_id}")


class InterestRateNotFoundError(BusinessRuleError):
    """Raised when no interest rate is effective for an account category."""

    code = "INTEREST_RATE_NOT_FOUND"

    def __init__(self, account_category: str) -> None:
        self.account_category = account_category
        super().__init__(f"no interest rate found for account category: {account_category}")


class NoInterestDueError(BusinessRuleError):
    """Raised when the computed interest for a period is zero or negative."""

    code = "NO_INTEREST_DUE"

    def __init__(self, account_id: str, period: str, interest: object) -> None:
        self.account_id = account_id
        self.period = period
        self.interest = interest
        super().__init__(f"no interest due for period {period} on account {account_id}: {interest}")


class TransactionNotFoundError(DomainError):
    """Raised when a transaction cannot be found."""

    code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class InvalidStatusTransitionError(DomainError):
    """Raised when a record in a terminal status is asked to change status."""

    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity: str, entity_id: str, current: str, requested: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.requested = requested
        super().__init__(f"{entity} {entity_id} cannot move from {current} to {requested}")


class DownstreamError(DomainError):
    """Raised when a remote collaborator is unreachable, rejects a call or times out."""

    code = "DOWNSTREAM_ERROR"

    def __init__(self, service: str, reason: str, status_code: int | None = None) -> None:
        self.service = service
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{service} service call failed: {reason}")


class PersistenceError(DomainError):
    """Raised when the backing store is unavailable or rejects a write."""

    code = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence operation {operation} failed: {reason}")


class CacheError(DomainError):
    """Raised by the cache layer. Callers must treat it as non-fatal."""

    code = "CACHE_ERROR"

    def __init__(self, operation: str, key: str, reason: str) -> None:
        self.operation = operation
        self.key = key
        self.reason = reason
        super().__init__(f"Cache {operation} failed for {key}: {reason}")
