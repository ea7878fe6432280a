"""Authentication and write permission checks for specmcp.

Bearer tokens are validated against SPEC_AUTH_TOKEN through FastMCP's auth
system; read-only mode rejects every write tool.
"""

import hmac
import logging

from fastmcp.server.auth import AccessToken, TokenVerifier

from spec_mcp.config import Config
from spec_mcp.errors import SpecError

logger = logging.getLogger(__name__)

READ_SCOPES = ["specs:read"]
WRITE_SCOPES = ["specs:read", "specs:write"]


class AuthError(SpecError):
    """Raised when a write is attempted in read-only mode."""

    status_code = 403


class BearerTokenVerifier(TokenVerifier):
    """FastMCP TokenVerifier that checks bearer tokens against SPEC_AUTH_TOKEN."""

    def __init__(self, config: Config):
        super().__init__()
        self._config = config

    def _scopes(self) -> list[str]:
        return list(READ_SCOPES if self._config.read_only else WRITE_SCOPES)

    async def verify_token(self, token: str) -> AccessToken | None:
        """
        Verify a bearer token and return access info if valid.

        Args:
            token: The bearer token (without "Bearer " prefix)

        Returns:
            AccessToken if valid, None if invalid
        """
        if self._config.auth_token is None:
            return AccessToken(
                token=token or "anonymous",
                client_id="anonymous",
                scopes=self._scopes(),
            )

        if not token:
            logger.warning("Empty authentication token")
            return None

        # Constant-time comparison
        if not hmac.compare_digest(token.encode(), self._config.auth_token.encode()):
            logger.warning("Invalid authentication token")
            return None

        return AccessToken(
            token=token,
            client_id="authenticated",
            scopes=self._scopes(),
        )


def get_auth_provider(config: Config) -> BearerTokenVerifier | None:
    """Return a BearerTokenVerifier if SPEC_AUTH_TOKEN is set, None otherwise."""
    if config.auth_token is not None:
        return BearerTokenVerifier(config)
    return None


def check_write_permission(config: Config) -> None:
    """
    Check if write operations are allowed.

    Raises:
        AuthError: If the server is in read-only mode
    """
    if config.read_only:
        logger.warning("Write operation rejected: server is in read-only mode")
        raise AuthError("Server is in read-only mode")
