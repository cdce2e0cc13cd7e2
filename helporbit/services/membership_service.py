"""
Membership Service
Adds, re-roles and removes organization members
"""
import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from helporbit.core.config import settings
from helporbit.core.exceptions import (
    LastOwnerError,
    NotFoundError,
    PermissionDeniedError,
    UniquenessError,
    ValidationError,
)
from helporbit.core.permissions import can_assign_role, check_permission
from helporbit.models.member import Member, MemberRole
from helporbit.models.organization import Organization
from helporbit.models.user import User
from helporbit.services.cache import (
    TTLCache,
    member_cache,
    revalidate_common_paths,
    revalidate_member_cache,
    revalidate_user_cache,
)

logger = logging.getLogger(__name__)


def _parse_role(role) -> MemberRole:
    try:
        return MemberRole(role)
    except ValueError:
        raise ValidationError(f"Unknown role: {role}", errors={"role": [f"Unknown role: {role}"]})


class MembershipService:
    """Service for managing organization members"""

    def __init__(self, cache: Optional[TTLCache] = None):
        self.cache = cache if cache is not None else member_cache
        self.membership_limit = settings.MEMBERSHIP_LIMIT

    async def get_member(self, db: AsyncSession, organization_id: str, user_id: str) -> Optional[Member]:
        """Membership of ``user_id`` in the organization, or None"""
        result = await db.execute(
            select(Member)
            .options(selectinload(Member.user))
            .where(Member.organization_id == organization_id, Member.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_member_by_id(self, db: AsyncSession, organization_id: str, member_id: str) -> Member:
        result = await db.execute(
            select(Member)
            .options(selectinload(Member.user))
            .where(Member.organization_id == organization_id, Member.id == member_id)
        )
        member = result.scalar_one_or_none()
        if not member:
            raise NotFoundError("Member not found")
        return member

    async def require_member(self, db: AsyncSession, organization_id: str, user_id: str) -> Member:
        """
        Membership of the acting user.

        Raises:
            PermissionDeniedError: If the user does not belong to the organization
        """
        member = await self.get_member(db, organization_id, user_id)
        if not member:
            raise PermissionDeniedError("You are not a member of this organization")
        return member

    async def count_members(self, db: AsyncSession, organization_id: str) -> int:
        result = await db.execute(
            select(func.count(Member.id)).where(Member.organization_id == organization_id)
        )
        return result.scalar_one()

    async def count_owners(self, db: AsyncSession, organization_id: str) -> int:
        result = await db.execute(
            select(func.count(Member.id)).where(
                Member.organization_id == organization_id,
                Member.role == MemberRole.OWNER,
            )
        )
        return result.scalar_one()

    async def _lock_owner_ids(self, db: AsyncSession, organization_id: str) -> List[str]:
        # FOR UPDATE is dropped by SQLite, whose single writer lock serializes these changes instead
        result = await db.execute(
            select(Member.id)
            .where(Member.organization_id == organization_id, Member.role == MemberRole.OWNER)
            .with_for_update()
        )
        return list(result.scalars().all())

    async def _ensure_owner_remains(self, db: AsyncSession, member: Member) -> None:
        """
        Raise LastOwnerError if ``member`` is the organization's only owner.

        The owner rows stay locked until the caller commits, so a concurrent
        demotion or removal of another owner waits and then sees this one.
        """
        if member.role == MemberRole.OWNER and len(await self._lock_owner_ids(db, member.organization_id)) <= 1:
            raise LastOwnerError()

    async def _commit_keeping_owner(self, db: AsyncSession, organization_id: str) -> None:
        """Commit the pending change unless it leaves the organization without an owner"""
        await db.flush()
        if await self.count_owners(db, organization_id) == 0:
            await db.rollback()
            logger.warning(f"Refused change that would leave organization {organization_id} without an owner")
            raise LastOwnerError()
        await db.commit()

    async def add_member(
        self,
        db: AsyncSession,
        organization_id: str,
        user_id: str,
        role: MemberRole = MemberRole.MEMBER,
        actor: Optional[Member] = None,
    ) -> Member:
        """
        Add a user to an organization directly.

        ``actor`` is None for system-initiated additions (organization
        creation, invitation acceptance, seeding).

        Raises:
            PermissionDeniedError: Actor may not add members or assign ``role``,
                or the membership limit is reached
            NotFoundError: Organization or user does not exist
            UniquenessError: The user is already a member
        """
        role = _parse_role(role)

        if actor is not None:
            check_permission(actor.role, "member", "create")
            if not can_assign_role(actor.role, role):
                raise PermissionDeniedError(f"You cannot assign the {role.value} role")

        organization = await db.get(Organization, organization_id)
        if not organization:
            raise NotFoundError("Organization not found")

        user = await db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        if await self.get_member(db, organization_id, user_id):
            raise UniquenessError("User is already a member of this organization")

        if await self.count_members(db, organization_id) >= self.membership_limit:
            raise PermissionDeniedError("Organization membership limit reached")

        member = Member(user_id=user_id, organization_id=organization_id, role=role)
        db.add(member)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise UniquenessError("User is already a member of this organization")

        logger.info(f"Added user {user_id} to organization {organization_id} as {role.value}")
        revalidate_member_cache(organization_id, user_id)
        revalidate_common_paths(organization.slug)

        return await self.get_member_by_id(db, organization_id, member.id)

    async def update_member_role(
        self,
        db: AsyncSession,
        organization_id: str,
        member_id: str,
        new_role: MemberRole,
        actor: Member,
    ) -> Member:
        """
        Change a member's role.

        Raises:
            PermissionDeniedError: Actor is not an owner or admin, tries to
                assign the owner role without being an owner, or is an admin
                changing an owner
            NotFoundError: No such member in the organization
            LastOwnerError: The organization's only owner would be demoted
        """
        new_role = _parse_role(new_role)
        check_permission(actor.role, "member", "update", "Only owners and admins can change member roles")

        target = await self.get_member_by_id(db, organization_id, member_id)

        if target.role == MemberRole.OWNER and actor.role != MemberRole.OWNER:
            raise PermissionDeniedError("Only owners can change an owner's role")
        if not can_assign_role(actor.role, new_role):
            raise PermissionDeniedError(f"You cannot assign the {new_role.value} role")

        if target.role == new_role:
            return target

        if new_role != MemberRole.OWNER:
            await self._ensure_owner_remains(db, target)

        previous = target.role
        target.role = new_role
        if previous == MemberRole.OWNER:
            await self._commit_keeping_owner(db, organization_id)
        else:
            await db.commit()

        logger.info(
            f"Member {target.id} in organization {organization_id} changed from "
            f"{previous.value} to {new_role.value} by {actor.id}"
        )
        revalidate_member_cache(organization_id, target.user_id)

        return await self.get_member_by_id(db, organization_id, target.id)

    async def _find_member(self, db: AsyncSession, organization_id: str, member_id_or_email: str) -> Member:
        query = select(Member).options(selectinload(Member.user)).where(Member.organization_id == organization_id)
        if "@" in member_id_or_email:
            query = query.join(User, Member.user_id == User.id).where(
                User.email == member_id_or_email.strip().lower()
            )
        else:
            query = query.where(Member.id == member_id_or_email)

        member = (await db.execute(query)).scalar_one_or_none()
        if not member:
            raise NotFoundError("Member not found")
        return member

    async def _delete_membership(self, db: AsyncSession, member: Member) -> None:
        organization_id = member.organization_id
        user = await db.get(User, member.user_id)
        if user and user.active_organization_id == organization_id:
            user.active_organization_id = None
        await db.delete(member)
        await self._commit_keeping_owner(db, organization_id)

    async def remove_member(
        self,
        db: AsyncSession,
        organization_id: str,
        member_id_or_email: str,
        actor: Member,
    ) -> Member:
        """
        Remove a member by member id or by the member's email.

        Raises:
            PermissionDeniedError: Actor lacks ``member:delete``, targets
                themselves, or is an admin removing an owner
            NotFoundError: No matching member
            LastOwnerError: The organization's only owner would be removed
        """
        check_permission(actor.role, "member", "delete", "Only owners and admins can remove members")

        target = await self._find_member(db, organization_id, member_id_or_email)

        if target.user_id == actor.user_id:
            raise PermissionDeniedError("You cannot remove yourself. Leave the organization instead")
        if target.role == MemberRole.OWNER and actor.role != MemberRole.OWNER:
            raise PermissionDeniedError("Only owners can remove an owner")

        await self._ensure_owner_remains(db, target)
        await self._delete_membership(db, target)

        logger.info(f"Member {target.id} removed from organization {organization_id} by {actor.id}")
        revalidate_member_cache(organization_id, target.user_id)
        revalidate_user_cache(target.user_id)

        return target

    async def leave_organization(self, db: AsyncSession, organization_id: str, user: User) -> None:
        """
        Remove the acting user's own membership.

        Raises:
            NotFoundError: The user is not a member
            LastOwnerError: The user is the only owner
        """
        member = await self.get_member(db, organization_id, user.id)
        if not member:
            raise NotFoundError("You are not a member of this organization")

        await self._ensure_owner_remains(db, member)
        await self._delete_membership(db, member)

        logger.info(f"User {user.id} left organization {organization_id}")
        revalidate_member_cache(organization_id, user.id)
        revalidate_user_cache(user.id)

    async def list_members(
        self,
        db: AsyncSession,
        organization_id: str,
        limit: int = 100,
        offset: int = 0,
        sort_direction: str = "asc",
        roles: Optional[Sequence[MemberRole]] = None,
    ) -> Tuple[List[Member], int]:
        """Members with their user details, ordered by join date, and the total count"""
        filters = [Member.organization_id == organization_id]
        if roles:
            filters.append(Member.role.in_([_parse_role(r) for r in roles]))

        order = Member.created_at.desc() if sort_direction == "desc" else Member.created_at.asc()
        result = await db.execute(
            select(Member)
            .options(selectinload(Member.user))
            .where(*filters)
            .order_by(order, Member.id)
            .offset(offset)
            .limit(limit)
        )
        members = list(result.scalars().all())

        total = (await db.execute(select(func.count(Member.id)).where(*filters))).scalar_one()
        return members, total

    async def list_assignable_members(self, db: AsyncSession, organization_id: str) -> List[dict]:
        """
        Members who can be assigned tickets (everyone except guests).

        Served from the member cache; revalidating ``members:{organization_id}``
        drops the entry.
        """
        cached = self.cache.get(organization_id)
        if cached is not None:
            return cached

        members, _ = await self.list_members(
            db,
            organization_id,
            limit=self.membership_limit,
            roles=[MemberRole.OWNER, MemberRole.ADMIN, MemberRole.MEMBER],
        )
        entries = [
            {
                "id": member.id,
                "user_id": member.user_id,
                "role": member.role.value,
                "name": member.user.name,
                "email": member.user.email,
                "image": member.user.image,
            }
            for member in members
        ]
        self.cache.set(organization_id, entries)
        return entries


# Singleton instance
_membership_service: Optional[MembershipService] = None


def get_membership_service() -> MembershipService:
    """Get or create the membership service singleton"""
    global _membership_service
    if _membership_service is None:
        _membership_service = MembershipService()
    return _membership_service
