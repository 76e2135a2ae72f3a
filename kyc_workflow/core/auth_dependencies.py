from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from kyc_workflow.core.security import decode_token
from kyc_workflow.core.permissions import ensure_admin
from kyc_workflow.services.auth_service import auth_service
from typing import Dict
import logging

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


# Extracts and validates JWT token to retrieve current authenticated user
async def get_current_user(token: str = Depends(oauth2_scheme), request: Request = None) -> Dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if request:
        auth_header = request.headers.get("authorization")
        logger.debug("Raw Authorization header present: %s", "<redacted>" if auth_header else None)

    payload = decode_token(token)
    if payload is None:
        logger.debug("Token payload is None after decoding.")
        raise credentials_exception

    email = payload.get("sub")
    if email is None:
        logger.debug("No 'sub' field in token payload.")
        raise credentials_exception

    user = await auth_service.get_user_by_email(email)
    if user is None:
        raise credentials_exception

    return user


# Validates that the current user is active
async def get_current_active_user(current_user: Dict = Depends(get_current_user)) -> Dict:
    if not current_user.get("is_active", True):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return current_user


# Validates that the current user has admin privileges
async def get_admin_user(current_user: Dict = Depends(get_current_active_user)) -> Dict:
    ensure_admin(current_user.get("role"))
    return current_user
