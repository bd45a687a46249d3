from transaction_service.config import Settings
from transaction_service.domain.exceptions import AuthorizationError, ValidationError
from transaction_service.domain.models import Identity


def require_access(identity: Identity, owner_id: str, resource: str) -> None:
    """Owners and administrators may read or act on a user's records."""
    if not identity.can_access(owner_id):
        raise AuthorizationError(identity.user_id, resource)


def require_admin(identity: Identity, resource: str) -> None:
    if not identity.is_admin:
        raise AuthorizationError(identity.user_id, resource)


def resolve_page(limit: int | None, offset: int, settings: Settings) -> tuple[int, int]:
    page_size = settings.default_page_size if limit is None else limit
    if not 1 <= page_size <= settings.max_page_size:
        raise ValidationError("limit", f"must be between 1 and {settings.max_page_size}")
    if offset < 0:
        raise ValidationError("offset", "must not be negative")
    return page_size, offset
