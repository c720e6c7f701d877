"""Security and authentication utilities.

Two bearer schemes live here: the static admin key guarding the management
API, and HS256 JWTs identifying blog users. The JWT claims become the
Subject the enforcement layer evaluates.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

import jwt
from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from policygate.core.config import ACCESS_TOKEN_SECRET, ADMIN_API_KEY
from policygate.core.logging_config import logger
from policygate.services.policy import Subject

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 15

# auto_error is off so missing credentials map to our own status codes
admin_scheme = HTTPBearer(auto_error=False)
user_scheme = HTTPBearer(auto_error=False)


def verify_admin_key(credentials: Optional[HTTPAuthorizationCredentials] = Security(admin_scheme)):
    """Verifies the token provided in the Authorization header."""
    if credentials is None or credentials.credentials != ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing API Key for management access."
        )
    return True


def create_access_token(
    username: str,
    roles: Iterable[str] = (),
    attributes: Optional[Dict[str, Any]] = None,
    expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
) -> str:
    """Issue a signed token for ``username`` carrying its roles and attributes."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": username,
        "roles": list(roles),
        "attributes": attributes or {},
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, ACCESS_TOKEN_SECRET, algorithm=JWT_ALGORITHM)


def subject_from_claims(claims: Dict[str, Any]) -> Subject:
    username = claims.get("sub") or claims.get("username")
    if not isinstance(username, str) or not username:
        raise ValueError("token has no subject")
    roles = claims.get("roles") or []
    attributes = claims.get("attributes") or {}
    if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
        raise ValueError("'roles' claim must be a list of strings")
    if not isinstance(attributes, dict):
        raise ValueError("'attributes' claim must be an object")
    return Subject(id=username, roles=frozenset(roles), attributes=attributes)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_subject(credentials: Optional[HTTPAuthorizationCredentials] = Security(user_scheme)) -> Subject:
    """Decode the bearer JWT into a Subject, or answer 401."""
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        claims = jwt.decode(credentials.credentials, ACCESS_TOKEN_SECRET, algorithms=[JWT_ALGORITHM])
        return subject_from_claims(claims)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except (jwt.InvalidTokenError, ValueError) as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise _unauthorized("Invalid token")
