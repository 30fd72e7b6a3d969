"""
api/dependencies.py — Shared FastAPI dependencies (auth, collaborators).
"""

from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from leadengine.db.session import SessionLocal, get_db
from leadengine.notifications.notifier import LeadNotifier
from leadengine.services.auth import Principal, require_admin, require_contractor, verify_bearer_token

# auto_error=False so a missing header becomes our AuthorizationError (401),
# rendered like every other domain error.
bearer_scheme = HTTPBearer(auto_error=False)


def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Principal:
    """Resolve the Authorization: Bearer header to a Principal."""
    token = credentials.credentials if credentials else None
    return verify_bearer_token(db, token)


def require_admin_principal(principal: Principal = Depends(get_principal)) -> Principal:
    """Dependency for admin-only routes: 401 without a valid token, 403 for non-admins."""
    return require_admin(principal)


def require_contractor_principal(principal: Principal = Depends(get_principal)) -> Principal:
    """Dependency for contractor self-service routes."""
    return require_contractor(principal)


def get_notifier() -> LeadNotifier:
    return LeadNotifier()


def get_session_factory() -> Callable[[], Session]:
    """Session factory for jobs that manage one transaction per batch."""
    return SessionLocal
