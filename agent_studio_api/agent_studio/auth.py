"""Authentication Module for Agent Studio RAG API

Provides JWT access tokens and the bearer-token dependency that resolves
the caller before any pipeline work starts.
"""

import os
import logging
import secrets
from pathlib import Path
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from jose import JWTError, jwt
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from .database import get_db, User, UserCRUD

logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

DEFAULT_SECRET_FILE = Path(__file__).resolve().parent.parent / ".jwt_secret"


def _load_signing_key() -> str:
    """
    Resolve the HS256 signing key.

    Order: JWT_SECRET_KEY, then the key file (JWT_SECRET_FILE or
    ``.jwt_secret`` beside the package), then a fresh random key that is
    written to the key file so tokens survive a restart.
    """
    configured = os.getenv("JWT_SECRET_KEY")
    if configured:
        return configured

    key_path = Path(os.getenv("JWT_SECRET_FILE", str(DEFAULT_SECRET_FILE)))
    if key_path.is_file():
        stored = key_path.read_text().strip()
        if stored:
            return stored

    generated = secrets.token_urlsafe(32)
    try:
        key_path.write_text(generated)
        key_path.chmod(0o600)
        logger.info(f"Wrote new token signing key to {key_path}")
    except OSError as e:
        logger.warning(f"Token signing key not persisted ({key_path}): {e}")
    return generated


SECRET_KEY = _load_signing_key()
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

security = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    # Same signal for every failure; no detail leakage
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"}
    )


# ============================================================================
# TOKENS
# ============================================================================

def create_access_token(
    user_id: int,
    email: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token."""
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(user_id),
        "email": email,
        "type": "access",
        "exp": expire,
        "iat": datetime.utcnow()
    }

    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Returns:
        Token payload or None if invalid
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.debug(f"Token decode error: {e}")
        return None


# ============================================================================
# DEPENDENCIES
# ============================================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    FastAPI dependency to get the current authenticated user.

    Raises:
        HTTPException: 401 if the bearer token is missing, invalid, expired,
            or does not resolve to an active user
    """
    if not credentials or not credentials.credentials:
        logger.warning("Missing or invalid authorization header")
        raise _unauthorized()

    payload = decode_token(credentials.credentials)
    if not payload or payload.get("type") != "access":
        logger.warning("Authentication failed: invalid token")
        raise _unauthorized()

    user_id = payload.get("sub")
    try:
        user = UserCRUD.get_by_id(db, int(user_id))
    except (TypeError, ValueError):
        raise _unauthorized()

    if not user or not user.is_active:
        logger.warning(f"Authentication failed: no active user {user_id}")
        raise _unauthorized()

    return user
