"""
Authentication service for JWT token generation and password management
"""
import logging
import secrets
from datetime import timedelta
from typing import Optional
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, and_

from helporbit.core.config import settings
from helporbit.core.exceptions import UniquenessError
from helporbit.models.base import utcnow
from helporbit.models.user import User, UserStatus
from helporbit.schemas.user import UserCreate, Token, UserResponse

logger = logging.getLogger(__name__)


class AuthService:
    """Authentication service for JWT and password management"""

    def __init__(self):
        self.pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
        self.algorithm = settings.ALGORITHM
        self.secret_key = settings.SECRET_KEY
        self.access_token_expire_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt"""
        return self.pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash"""
        return self.pwd_context.verify(plain_password, hashed_password)

    def create_access_token(self, data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token"""
        to_encode = data.copy()

        if expires_delta:
            expire = utcnow() + expires_delta
        else:
            expire = utcnow() + timedelta(minutes=self.access_token_expire_minutes)

        to_encode.update({"exp": expire})
        encoded_jwt = jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)
        return encoded_jwt

    def decode_access_token(self, token: str) -> Optional[dict]:
        """Decode and validate a JWT access token"""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
            return payload
        except JWTError:
            return None

    def generate_token(self) -> str:
        """Generate a secure URL-safe token for reset and verification links"""
        return secrets.token_urlsafe(32)

    async def get_user_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    async def authenticate_user(self, db: AsyncSession, email: str, password: str) -> Optional[User]:
        """
        Authenticate a user with email and password.

        Banned, inactive and pending accounts cannot sign in.
        """
        user = await self.get_user_by_email(db, email)

        if not user:
            return None

        if not self.verify_password(password, user.password_hash):
            logger.info(f"Failed login attempt for {user.email}")
            return None

        if user.status != UserStatus.ACTIVE:
            logger.warning(f"Login refused for {user.email}: account is {user.status.value}")
            return None

        user.login_count = (user.login_count or 0) + 1
        user.last_active_at = utcnow()
        await db.commit()

        return user

    async def create_user(self, db: AsyncSession, user_data: UserCreate) -> User:
        """
        Create a new user with hashed password.

        Raises:
            UniquenessError: If the email is already registered
        """
        email = user_data.email.strip().lower()
        if await self.get_user_by_email(db, email):
            raise UniquenessError("A user with this email already exists")

        user = User(
            name=user_data.name.strip(),
            email=email,
            password_hash=self.hash_password(user_data.password),
            status=UserStatus.ACTIVE,
            email_verified=False,  # Require email verification
            email_verification_token=self.generate_token(),
            email_verification_expires=utcnow() + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS),
        )

        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise UniquenessError("A user with this email already exists")
        await db.refresh(user)
        logger.info(f"Registered user {user.id} ({user.email})")
        return user

    def create_token_response(self, user: User) -> Token:
        """Create a complete token response with user data"""
        access_token = self.create_access_token(
            data={"sub": str(user.id), "email": user.email}
        )

        return Token(
            access_token=access_token,
            token_type="bearer",
            expires_in=self.access_token_expire_minutes * 60,
            user=UserResponse.model_validate(user)
        )

    async def verify_email(self, db: AsyncSession, token: str) -> Optional[User]:
        """Verify email with token and return the user"""
        result = await db.execute(
            select(User).where(
                and_(
                    User.email_verification_token == token,
                    User.email_verification_expires > utcnow()
                )
            )
        )
        user = result.scalar_one_or_none()

        if not user:
            return None

        user.email_verified = True
        user.email_verification_token = None
        user.email_verification_expires = None
        await db.commit()
        await db.refresh(user)
        return user

    async def generate_email_verification_token(self, db: AsyncSession, user: User) -> Optional[User]:
        """Generate new email verification token for user"""
        if user.email_verified:
            return None

        user.email_verification_token = self.generate_token()
        user.email_verification_expires = utcnow() + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS)
        await db.commit()
        await db.refresh(user)
        return user

    async def request_password_reset(self, db: AsyncSession, email: str) -> Optional[User]:
        """Request password reset for user"""
        user = await self.get_user_by_email(db, email)

        if not user:
            return None

        user.password_reset_token = self.generate_token()
        user.password_reset_expires = utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        await db.commit()
        return user

    async def reset_password(self, db: AsyncSession, token: str, new_password: str) -> bool:
        """Reset password with token"""
        result = await db.execute(
            select(User).where(
                and_(
                    User.password_reset_token == token,
                    User.password_reset_expires > utcnow()
                )
            )
        )
        user = result.scalar_one_or_none()

        if not user:
            return False

        user.password_hash = self.hash_password(new_password)
        user.password_reset_token = None
        user.password_reset_expires = None
        await db.commit()
        return True


# Global auth service instance
auth_service = AuthService()
