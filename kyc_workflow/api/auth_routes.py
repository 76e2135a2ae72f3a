from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm

from kyc_workflow.core.auth_dependencies import get_current_user
from kyc_workflow.core.errors import WorkflowError
from kyc_workflow.schemas import UserCreate, UserResponse, Token, LoginGateResponse
from kyc_workflow.services.audit_service import audit_service
from kyc_workflow.services.auth_service import auth_service

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)


# Registers a new user account; login stays blocked until KYC is verified
@router.post("/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def signup_user(user_data: UserCreate) -> UserResponse:
    try:
        created_user = await auth_service.register_user(user_data)
    except WorkflowError:
        await audit_service.record(action="signup", actor=user_data.email, status="failed")
        raise
    await audit_service.record(action="signup", actor=created_user["email"], acted=created_user["id"])
    return UserResponse(**created_user)


# Authenticates user credentials and returns an access token
@router.post("/login", response_model=Token, status_code=status.HTTP_200_OK)
async def login_user(form_data: OAuth2PasswordRequestForm = Depends()) -> Token:
    try:
        token_data = await auth_service.login_user(form_data.username, form_data.password)
    except WorkflowError as e:
        await audit_service.record(
            action="login", actor=form_data.username, status="failed", details={"code": e.code}
        )
        raise
    await audit_service.record(action="login", actor=form_data.username, acted=token_data["user"]["id"])
    return Token(access_token=token_data["access_token"], token_type=token_data["token_type"])


# Retrieves the authenticated user's profile information
@router.get("/me", response_model=UserResponse, status_code=status.HTTP_200_OK)
async def get_current_user_info(current_user: dict = Depends(get_current_user)) -> UserResponse:
    return UserResponse(**current_user)


# Reports whether the KYC gate currently lets this user log in
@router.get("/can-login", response_model=LoginGateResponse)
async def can_login(current_user: dict = Depends(get_current_user)) -> LoginGateResponse:
    return LoginGateResponse(**await auth_service.can_login(current_user["id"]))


# Generates a new access token for the authenticated user
@router.post("/refresh", response_model=Token, status_code=status.HTTP_200_OK)
async def refresh_token(current_user: dict = Depends(get_current_user)) -> Token:
    token_data = await auth_service.refresh_user_token(current_user["email"])
    return Token(access_token=token_data["access_token"], token_type=token_data["token_type"])
