"""
Authentication API Endpoints
Registration, login and the emailed verification / reset links
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from helporbit.db.session import get_db
from helporbit.models.user import User
from helporbit.schemas.response import MessageResponse
from helporbit.schemas.user import (
    UserCreate, UserLogin, Token, PasswordReset,
    PasswordResetConfirm, EmailVerification, UserResponse,
)
from helporbit.services.auth_service import auth_service
from helporbit.services.email_service import get_email_service
from helporbit.api.dependencies import get_current_active_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _log_delivery(kind: str, email: str, sent: bool) -> None:
    # Account emails never fail the request
    if sent:
        logger.info(f"{kind} email sent to {email}")
    else:
        logger.warning(f"Failed to send {kind.lower()} email to {email}")


def _send_verification(user: User) -> None:
    sent = get_email_service().send_verification_email(
        user_email=user.email,
        user_name=user.name,
        verification_token=user.email_verification_token,
    )
    _log_delivery("Verification", user.email, sent)


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: AsyncSession = Depends(get_db)) -> Token:
    """
    Create an account and sign it in straight away.
    The email address still has to be verified through the emailed link.
    """
    user = await auth_service.create_user(db, user_data)
    if user.email_verification_token:
        _send_verification(user)
    return auth_service.create_token_response(user)


@router.post("/login", response_model=Token)
async def login(user_credentials: UserLogin, db: AsyncSession = Depends(get_db)) -> Token:
    user = await auth_service.authenticate_user(db, user_credentials.email, user_credentials.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth_service.create_token_response(user)


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(verification_data: EmailVerification, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    user = await auth_service.verify_email(db, verification_data.token)
    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired verification token")

    logger.info(f"Email verified for {user.email}")
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification_email(email_request: PasswordReset, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    """
    Issue a fresh verification link. The reply is the same whether or not
    the address exists.
    """
    user = await auth_service.get_user_by_email(db, email_request.email)
    if user and not user.email_verified:
        user = await auth_service.generate_email_verification_token(db, user)
        _send_verification(user)

    return MessageResponse(message="If the email exists and is unverified, a new verification link has been sent")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(reset_request: PasswordReset, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    """
    Email a password reset link. The reply is the same whether or not
    the address exists.
    """
    user = await auth_service.request_password_reset(db, reset_request.email)
    if user and user.password_reset_token:
        sent = get_email_service().send_password_reset_email(
            user_email=user.email,
            user_name=user.name,
            reset_token=user.password_reset_token,
            organization_slug=reset_request.organization_slug,
        )
        _log_delivery("Password reset", user.email, sent)

    return MessageResponse(message="If the email exists, a password reset link has been sent")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(reset_data: PasswordResetConfirm, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    if not await auth_service.reset_password(db, reset_data.token, reset_data.new_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")
    return MessageResponse(message="Password reset successfully")


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_active_user)) -> UserResponse:
    return UserResponse.model_validate(current_user)
