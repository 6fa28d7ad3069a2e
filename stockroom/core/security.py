"""
Security and authentication utilities.
Verifies access tokens issued by the hosted authentication provider.
"""

from typing import Optional, Dict, Any
import jwt
import httpx
import logging

from stockroom.config import settings
from stockroom.core.exceptions import AuthenticationException

logger = logging.getLogger(__name__)


class JWTHandler:
    """Validates provider-issued JWTs against the project's shared secret."""

    @staticmethod
    def verify_token(token: str, secret: Optional[str] = None) -> Dict[str, Any]:
        """
        Verify and decode a JWT token.

        Args:
            token: JWT token to verify
            secret: Signing secret; defaults to SUPABASE_JWT_SECRET

        Returns:
            Decoded token payload

        Raises:
            AuthenticationException: If token is invalid
        """
        try:
            return jwt.decode(
                token,
                secret or settings.SUPABASE_JWT_SECRET,
                algorithms=[settings.JWT_ALGORITHM],
                audience=settings.JWT_AUDIENCE
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationException("Token has expired")
        except jwt.InvalidTokenError:
            raise AuthenticationException("Invalid token")

    @staticmethod
    def read_claims(token: str) -> Dict[str, Any]:
        """Decode claims of a token the provider has already validated."""
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            raise AuthenticationException("Invalid token")


class AuthProviderClient:
    """Minimal client for the provider's user endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SUPABASE_ANON_KEY
        self.timeout = timeout or settings.AUTH_TIMEOUT_SECONDS

    async def get_user(self, token: str) -> Dict[str, Any]:
        """
        Resolve the user that owns an access token.

        Raises:
            AuthenticationException: If the provider rejects the token or is unreachable
        """
        headers = {"Authorization": f"Bearer {token}", "apikey": self.api_key}
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
                response = await client.get("/auth/v1/user", headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Auth provider request failed: {str(e)}")
            raise AuthenticationException("Authentication service unavailable")

        if response.status_code != 200:
            logger.warning(
                f"Auth provider rejected token: {response.status_code}",
                extra={"status_code": response.status_code}
            )
            raise AuthenticationException("Invalid token")

        try:
            user = response.json()
        except ValueError:
            logger.error("Auth provider returned a non-JSON user payload")
            raise AuthenticationException("Authentication service unavailable")
        if not isinstance(user, dict):
            raise AuthenticationException("Invalid token")
        return user


def identity_from_claims(claims: Dict[str, Any]) -> Dict[str, Any]:
    """Build the caller identity from verified token claims."""
    user_id = claims.get("sub")
    if not user_id:
        raise AuthenticationException("Invalid token: missing subject")

    return {
        "user_id": user_id,
        "email": claims.get("email"),
        "user_metadata": claims.get("user_metadata") or {},
        "claims": claims
    }


async def verify_access_token(token: str, client: Optional[AuthProviderClient] = None) -> Dict[str, Any]:
    """
    Verify an access token and return the caller identity.

    Tokens are checked locally when SUPABASE_JWT_SECRET is configured, otherwise
    the provider's user endpoint is consulted.
    """
    if settings.SUPABASE_JWT_SECRET:
        return identity_from_claims(JWTHandler.verify_token(token))

    user = await (client or AuthProviderClient()).get_user(token)
    claims = JWTHandler.read_claims(token)
    return {
        "user_id": user.get("id") or claims.get("sub"),
        "email": user.get("email") or claims.get("email"),
        "user_metadata": user.get("user_metadata") or claims.get("user_metadata") or {},
        "claims": claims
    }
