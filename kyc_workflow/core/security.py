import logging
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from typing import Optional, Dict, Any
from kyc_workflow.core.config import settings

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 8
REQUIRED_CLAIMS = ("sub", "id")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def is_valid_password(password: str) -> bool:
    return bool(password) and len(password) >= PASSWORD_MIN_LENGTH


def hash_password(password: str) -> str:
    if not is_valid_password(password):
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    return pwd_context.hash(password)


# A malformed stored hash counts as a failed login, not a server error
def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.warning("Stored password hash could not be checked: %s", e)
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a bearer token for the claims in ``data`` (email as ``sub``, user ``id`` and ``role``)."""
    lifetime = expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    issued_at = datetime.now(timezone.utc)
    claims = {**data, "iat": issued_at, "exp": issued_at + lifetime}
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the token's claims, or None when it is expired, tampered with or missing a user reference."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    if any(not payload.get(claim) for claim in REQUIRED_CLAIMS):
        logger.warning("Rejected token without user claims")
        return None
    return payload
