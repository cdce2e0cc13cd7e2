"""
API Dependencies for authentication and authorization
"""
from fastapi import Depends, HTTPException, Path, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from helporbit.core.permissions import check_permission
from helporbit.db.session import get_db
from helporbit.models.member import Member
from helporbit.models.user import User
from helporbit.services.auth_service import auth_service
from helporbit.services.membership_service import get_membership_service


security = HTTPBearer(auto_error=False)


def _user_id_from_credentials(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if not credentials:
        return None
    payload = auth_service.decode_access_token(credentials.credentials)
    if not payload:
        return None
    return payload.get("sub") or None


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Get current user ID from JWT token.
    Validates JWT token and extracts user_id.
    """

    # Validate JWT token is provided
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = _user_id_from_credentials(credentials)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user_id


async def get_current_user(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Get the current authenticated user object.
    """
    user = await db.get(User, user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get the current authenticated and active user.
    """
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user"
        )

    return current_user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """
    The signed-in user, or None for anonymous requests.
    Used by pages that render differently for visitors.
    """
    user_id = _user_id_from_credentials(credentials)
    if not user_id:
        return None
    user = await db.get(User, user_id)
    if user and not user.is_active:
        return None
    return user


async def get_current_member(
    organization_id: str = Path(...),
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
) -> Member:
    """
    The current user's membership in the organization from the URL.
    Non-members get a 403.
    """
    return await get_membership_service().require_member(db, organization_id, current_user.id)


def require_permission(resource: str, action: str):
    """
    Dependency factory for permission-based access control.
    Usage: member: Member = Depends(require_permission("ticket", "create"))
    """
    async def check_member_permission(member: Member = Depends(get_current_member)) -> Member:
        check_permission(member.role, resource, action)
        return member

    return check_member_permission
