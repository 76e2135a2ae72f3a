import logging
from datetime import datetime
from typing import Dict, Optional, Tuple

from beanie import PydanticObjectId
from pymongo.errors import DuplicateKeyError

from kyc_workflow.core import create_access_token, hash_password, is_valid_password, settings, verify_password
from kyc_workflow.core.errors import (
    AuthorizationError,
    ConflictError,
    LoginBlockedError,
    NotFoundError,
    ValidationError,
)
from kyc_workflow.database.models import User
from kyc_workflow.schemas.enums import KycStatus, UserRole
from kyc_workflow.schemas.user_schemas import UserCreate
from kyc_workflow.services.notification_service import NotificationType, notification_service

logger = logging.getLogger(__name__)

# (reason code, message shown to the user)
ACCOUNT_NOT_VERIFIED = (
    "account_not_verified",
    "Please verify your account before logging in. Check your email for verification instructions.",
)
VERIFICATION_ON_HOLD = (
    "verification_on_hold",
    "Your account verification is on hold. Please check your email for further instructions or contact support.",
)
VERIFICATION_PENDING = (
    "verification_pending",
    "Your account is pending verification. Please wait for admin approval.",
)


def login_block(user: User) -> Optional[Tuple[str, str]]:
    """Return why ``user`` may not log in, or ``None`` if they may."""
    if not user.is_verified:
        return ACCOUNT_NOT_VERIFIED
    if user.kyc_status == KycStatus.HOLD:
        return VERIFICATION_ON_HOLD
    if user.kyc_status != KycStatus.VERIFIED:
        return VERIFICATION_PENDING
    return None


def issue_token(user: User) -> str:
    return create_access_token(data={"sub": user.email, "id": str(user.id), "role": user.role.value})


class AuthService:
    # Register a new user; the account stays locked until KYC is verified
    @staticmethod
    async def register_user(user_data: UserCreate) -> Dict:
        existing_user = await User.find_one(User.email == user_data.email)
        if existing_user:
            raise ConflictError("Email already registered", details={"field": "email"})

        if not is_valid_password(user_data.password):
            raise ValidationError.for_field("password", "Password must be at least 8 characters long")

        new_user = User(
            email=user_data.email,
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            phone=user_data.phone,
            hashed_password=hash_password(user_data.password),
            role=UserRole.USER,
            is_verified=False,
            kyc_status=KycStatus.PENDING,
            created_at=datetime.utcnow(),
        )
        try:
            await new_user.insert()
        except DuplicateKeyError:
            raise ConflictError("Email already registered", details={"field": "email"})
        logger.info("User registered with ID: %s", new_user.id)

        notification_service.notify_admins(NotificationType.NEW_USER_REGISTERED, {
            "user": new_user.public_dict(),
            "message": f"New user {new_user.full_name} registered and awaits KYC review",
        })
        notification_service.queue_email(settings.ADMIN_EMAIL, "admin_new_registration", {
            "first_name": new_user.first_name,
            "last_name": new_user.last_name,
            "email": new_user.email,
            "phone": new_user.phone,
            "registered_at": new_user.created_at.isoformat(),
        })

        result = new_user.public_dict()
        result["message"] = "User registered successfully. Your account is pending verification."
        return result

    # Authenticate user, apply the KYC login gate and generate an access token
    @staticmethod
    async def login_user(email: str, password: str) -> Dict:
        user = await User.find_one(User.email == email)
        if not user or not verify_password(password, user.hashed_password):
            logger.warning("Failed login for email: %s", email)
            raise AuthorizationError("Invalid email or password")

        if not user.is_active:
            raise LoginBlockedError("This account has been deactivated", reason="account_inactive")

        blocked = login_block(user)
        if blocked:
            reason, message = blocked
            logger.info("Login blocked for %s: %s", email, reason)
            raise LoginBlockedError(message, reason=reason)

        user.last_login = datetime.utcnow()
        await user.save()

        access_token = issue_token(user)
        logger.debug("Created JWT access token for sub: %s", user.email)
        return {
            "access_token": access_token,
            "token_type": "bearer",
            "user": user.public_dict(),
        }

    @staticmethod
    async def can_login(user_id: str) -> Dict:
        user = await AuthService.get_user_model(user_id)
        if user is None:
            return {"can_login": False, "reason": "User not found"}
        blocked = login_block(user)
        if blocked:
            return {"can_login": False, "reason": blocked[1]}
        return {"can_login": True, "reason": None}

    @staticmethod
    async def get_user_model(user_id: str) -> Optional[User]:
        try:
            return await User.get(PydanticObjectId(user_id))
        except Exception:
            return None

    @staticmethod
    async def get_user_or_404(user_id: str) -> User:
        user = await AuthService.get_user_model(user_id)
        if user is None:
            raise NotFoundError("User not found", details={"user_id": str(user_id)})
        return user

    # Retrieve user information by email address
    @staticmethod
    async def get_user_by_email(email: str) -> Optional[Dict]:
        user = await User.find_one(User.email == email)
        if not user:
            return None
        data = user.public_dict()
        data["is_active"] = user.is_active
        return data

    # Generate a new access token for existing user
    @staticmethod
    async def refresh_user_token(email: str) -> Dict:
        user = await User.find_one(User.email == email)
        if not user:
            raise NotFoundError("User not found")
        return {"access_token": issue_token(user), "token_type": "bearer"}


auth_service = AuthService()
