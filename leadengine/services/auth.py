"""
leadengine/services/auth.py — Bearer credential verification.

Two ways to present a credential, checked in order:
  1. ADMIN_API_TOKEN — a static token for ops tooling (constant-time compare).
  2. A hosted-auth user access token — verified against the provider's
     /auth/v1/user endpoint; the role then comes from our profiles table.
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from leadengine.config import settings
from leadengine.db import repository
from leadengine.db.models import UserRole
from leadengine.exceptions import AuthorizationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: UserRole
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def system(cls) -> "Principal":
        """Admin principal for trusted in-process callers (CLI scripts)."""
        return cls(user_id="system", role=UserRole.ADMIN)


def require_admin(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise AuthorizationError("Authorization token required.")
    if not principal.is_admin:
        raise AuthorizationError("Admin access required.", forbidden=True)
    return principal


def require_contractor(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise AuthorizationError("Authorization token required.")
    if principal.role != UserRole.CONTRACTOR:
        raise AuthorizationError("Contractor access required.", forbidden=True)
    return principal


@retry(
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)
def _fetch_auth_user(token: str) -> Optional[dict[str, Any]]:
    """
    Ask the auth provider who owns this access token.
    Returns the user payload, or None when the provider rejects the token.
    """
    response = requests.get(
        f"{settings.supabase_url.rstrip('/')}/auth/v1/user",
        headers={
            "Authorization": f"Bearer {token}",
            "apikey": settings.supabase_anon_key or "",
        },
        timeout=settings.auth_timeout_seconds,
    )
    if response.status_code in (401, 403):
        return None
    response.raise_for_status()
    return response.json()


def verify_bearer_token(db: Session, token: Optional[str]) -> Principal:
    """
    Resolve a bearer token to a Principal.

    Raises:
        AuthorizationError: no token, or the token cannot be verified.
    """
    if not token:
        raise AuthorizationError("Authorization token required.")

    if settings.admin_api_token and hmac.compare_digest(token, settings.admin_api_token):
        return Principal(user_id="admin-api-token", role=UserRole.ADMIN)

    if not settings.supabase_url:
        logger.warning("Bearer token rejected: no auth provider configured.")
        raise AuthorizationError("Invalid authentication token.")

    try:
        user = _fetch_auth_user(token)
    except requests.RequestException as exc:
        logger.error("Auth provider unreachable: %s", exc)
        raise AuthorizationError("Could not verify authentication token.") from exc

    if not user or not user.get("id"):
        raise AuthorizationError("Invalid authentication token.")

    profile = repository.get_profile(db, user["id"])
    role = UserRole(profile.role) if profile else UserRole.HOMEOWNER
    return Principal(user_id=user["id"], role=role, email=user.get("email"))
