from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from transaction_service.domain.exceptions import AuthError, DownstreamError
from transaction_service.domain.models import Identity, Role


logger = structlog.get_logger()


class AuthVerifierClient:
    """Resolves a bearer token to an Identity via the auth service's check_token endpoint."""

    SERVICE = "auth"

    def __init__(
        self,
        check_token_url: str,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.check_token_url = check_token_url
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def verify(self, credential: str) -> Identity:
        """
        Raises:
            AuthError: token missing, rejected, inactive, expired or malformed
            DownstreamError: auth service unreachable or failing
        """
        if not credential or not credential.strip():
            raise AuthError("access token is required")

        try:
            response = await self._client.get(
                self.check_token_url,
                headers={"Authorization": f"Bearer {credential}"},
            )
        except httpx.TimeoutException as e:
            raise DownstreamError(self.SERVICE, f"timeout after {self.timeout}s") from e
        except httpx.RequestError as e:
            raise DownstreamError(self.SERVICE, f"request failed: {e!r}") from e

        if response.status_code in (400, 401, 403):
            raise AuthError(f"token rejected with status {response.status_code}")
        if response.status_code != 200:
            raise DownstreamError(
                self.SERVICE,
                f"token validation returned status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            info = response.json()
        except ValueError as e:
            raise AuthError("malformed token info") from e
        if not isinstance(info, dict):
            raise AuthError("malformed token info")

        return self._to_identity(info)

    def _to_identity(self, info: dict[str, Any]) -> Identity:
        if not info.get("active", False):
            raise AuthError("token is not active")

        exp = info.get("exp")
        if exp is not None:
            try:
                expires_at = datetime.fromtimestamp(int(exp), UTC)
            except (TypeError, ValueError, OverflowError) as e:
                raise AuthError("malformed token expiry") from e
            if expires_at <= datetime.now(UTC):
                raise AuthError("token has expired")

        user_id = info.get("user_id")
        if not user_id:
            raise AuthError("token carries no user id")

        roles: set[Role] = set()
        for raw in info.get("roles") or []:
            role = Role.normalize(str(raw))
            if role is None:
                logger.debug("unknown_role_ignored", role=raw, user_id=user_id)
                continue
            roles.add(role)

        return Identity(
            user_id=str(user_id),
            roles=frozenset(roles),
            username=info.get("username"),
            active=True,
        )
