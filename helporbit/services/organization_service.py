"""
Organization Service
Creates, updates, deletes and looks up organizations
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from helporbit.core.config import settings
from helporbit.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    SlugTakenError,
    ValidationError,
)
from helporbit.core.permissions import check_permission
from helporbit.models.member import Member, MemberRole
from helporbit.models.organization import Organization
from helporbit.models.user import User
from helporbit.schemas.organization import OrganizationInfo, normalize_slug
from helporbit.services.cache import (
    revalidate_common_paths,
    revalidate_organization_cache,
    revalidate_user_cache,
)

logger = logging.getLogger(__name__)


def _clean_slug(slug: str) -> str:
    try:
        return normalize_slug(slug)
    except ValueError as e:
        raise ValidationError(str(e), errors={"slug": [str(e)]})


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Organization name is required", errors={"name": ["Organization name is required"]})
    if len(name) > 100:
        raise ValidationError("Name too long", errors={"name": ["Name too long"]})
    return name


class OrganizationService:
    """Service for the organization directory"""

    async def get_organization(self, db: AsyncSession, organization_id: str) -> Organization:
        organization = await db.get(Organization, organization_id)
        if not organization:
            raise NotFoundError("Organization not found")
        return organization

    async def get_organization_by_slug(self, db: AsyncSession, slug: str) -> Organization:
        result = await db.execute(
            select(Organization).where(Organization.slug == slug.strip().lower())
        )
        organization = result.scalar_one_or_none()
        if not organization:
            raise NotFoundError("Organization not found")
        return organization

    async def check_slug_available(self, db: AsyncSession, slug: str) -> bool:
        """
        Advisory check for forms. Creation does not rely on it; the unique
        constraint on ``organizations.slug`` decides.
        """
        slug = _clean_slug(slug)
        result = await db.execute(select(Organization.id).where(Organization.slug == slug))
        return result.first() is None

    async def create_organization(
        self,
        db: AsyncSession,
        user_id: str,
        name: str,
        slug: str,
        logo: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Organization:
        """
        Create an organization owned by ``user_id`` and make it their active one.

        Raises:
            PermissionDeniedError: Organization creation is disabled
            ValidationError: Invalid name or slug
            SlugTakenError: Another organization already has the slug
        """
        if not settings.ALLOW_USER_TO_CREATE_ORGANIZATION:
            raise PermissionDeniedError("Organization creation is disabled")

        name = _clean_name(name)
        slug = _clean_slug(slug)

        organization = Organization(name=name, slug=slug, logo=logo or None, metadata_=dict(metadata or {}))
        db.add(organization)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            logger.info(f"Slug conflict creating organization '{slug}'")
            raise SlugTakenError()

        db.add(Member(user_id=user_id, organization_id=organization.id, role=MemberRole.OWNER))
        await db.execute(
            update(User).where(User.id == user_id).values(active_organization_id=organization.id)
        )
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.info(f"Slug conflict creating organization '{slug}'")
            raise SlugTakenError()

        logger.info(f"Organization {organization.id} ('{slug}') created by user {user_id}")
        revalidate_organization_cache(organization.id, slug)
        revalidate_user_cache(user_id)
        revalidate_common_paths(slug)

        return organization

    async def update_organization(
        self,
        db: AsyncSession,
        organization_id: str,
        actor: Member,
        name: Optional[str] = None,
        slug: Optional[str] = None,
        logo: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Organization:
        """
        Update organization fields. ``None`` leaves a field unchanged and an
        empty ``logo`` removes the logo. ``metadata`` keys are merged into the
        existing metadata.

        Raises:
            PermissionDeniedError: Actor lacks ``organization:update``
            SlugTakenError: The new slug belongs to another organization
        """
        check_permission(actor.role, "organization", "update")
        organization = await self.get_organization(db, organization_id)
        previous_slug = organization.slug

        if name is not None:
            organization.name = _clean_name(name)
        if slug is not None:
            organization.slug = _clean_slug(slug)
        if logo is not None:
            organization.logo = logo or None
        if metadata is not None:
            organization.metadata_ = {**(organization.metadata_ or {}), **metadata}

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.info(f"Slug conflict updating organization {organization_id} to '{slug}'")
            raise SlugTakenError()

        revalidate_organization_cache(organization.id, previous_slug)
        if organization.slug != previous_slug:
            revalidate_organization_cache(organization.id, organization.slug)
        revalidate_common_paths(organization.slug)

        return await self.get_organization(db, organization_id)

    async def delete_organization(self, db: AsyncSession, organization_id: str, actor: Member) -> None:
        """
        Delete an organization. Members, invitations and tickets go with it
        through ON DELETE CASCADE.

        Raises:
            PermissionDeniedError: Actor lacks ``organization:delete``
        """
        check_permission(actor.role, "organization", "delete", "Only owners can delete an organization")
        organization = await self.get_organization(db, organization_id)
        slug = organization.slug

        await db.execute(delete(Organization).where(Organization.id == organization_id))
        await db.commit()
        db.expunge_all()

        logger.info(f"Organization {organization_id} ('{slug}') deleted by member {actor.id}")
        revalidate_organization_cache(organization_id, slug)
        revalidate_common_paths(slug)

    async def list_user_organizations(self, db: AsyncSession, user_id: str) -> List[Tuple[Organization, Member]]:
        """Organizations the user belongs to, paired with the user's membership"""
        result = await db.execute(
            select(Organization, Member)
            .join(Member, Member.organization_id == Organization.id)
            .where(Member.user_id == user_id)
            .order_by(Member.created_at.asc())
        )
        return [(row[0], row[1]) for row in result.all()]

    async def set_active_organization(self, db: AsyncSession, user: User, organization_id: Optional[str]) -> User:
        """
        Switch the user's active organization; None clears it.

        Raises:
            NotFoundError: The organization does not exist
            PermissionDeniedError: The user is not a member
        """
        if organization_id is not None:
            await self.get_organization(db, organization_id)
            result = await db.execute(
                select(Member.id).where(Member.organization_id == organization_id, Member.user_id == user.id)
            )
            if result.first() is None:
                raise PermissionDeniedError("You are not a member of this organization")

        user.active_organization_id = organization_id
        await db.commit()
        revalidate_user_cache(user.id)
        return user

    async def search_organizations(self, db: AsyncSession, term: str, limit: int = 20) -> List[Organization]:
        """
        Public organizations whose name, slug or domain contains ``term``
        (case-insensitive).
        """
        term = (term or "").strip()
        if not term:
            return []

        result = await db.execute(
            select(Organization)
            .where(
                Organization.metadata_["isPublic"].as_boolean().is_(True),
                or_(
                    Organization.name.icontains(term, autoescape=True),
                    Organization.slug.icontains(term, autoescape=True),
                    Organization.metadata_["domain"].as_string().icontains(term, autoescape=True),
                ),
            )
            .order_by(Organization.name.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_organization_info(self, db: AsyncSession, slug: str) -> OrganizationInfo:
        """Branding shown on an organization's login page"""
        organization = await self.get_organization_by_slug(db, slug)
        return OrganizationInfo(
            id=organization.id,
            slug=organization.slug,
            name=organization.name,
            domain=organization.domain,
            logo_url=organization.logo,
            primary_color=organization.primary_color,
            is_public=organization.is_public,
        )


# Global organization service instance
organization_service = OrganizationService()
