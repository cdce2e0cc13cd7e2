"""
Organization directory tests: creation, slugs, search, updates and deletion
"""
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helporbit.core.config import settings
from helporbit.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    SlugTakenError,
    ValidationError,
)
from helporbit.db.session import build_engine
from helporbit.models import (
    Base,
    Invitation,
    InvitationStatus,
    Member,
    MemberRole,
    Organization,
    Ticket,
    User,
)
from helporbit.models.base import utcnow
from helporbit.services.organization_service import OrganizationService

from conftest import add_membership, create_organization, create_user


@pytest.fixture
def service():
    return OrganizationService()


class TestCreateOrganization:

    @pytest.mark.asyncio
    async def test_creator_becomes_owner(self, db_session, service, owner_user):
        organization = await service.create_organization(
            db_session, owner_user.id, "  Orbit Labs ", "Orbit-Labs", metadata={"isPublic": True}
        )

        assert organization.name == "Orbit Labs"
        assert organization.slug == "orbit-labs"
        assert organization.metadata_ == {"isPublic": True}

        rows = await service.list_user_organizations(db_session, owner_user.id)
        assert [(org.slug, member.role) for org, member in rows] == [("orbit-labs", MemberRole.OWNER)]

        await db_session.refresh(owner_user)
        assert owner_user.active_organization_id == organization.id

    @pytest.mark.asyncio
    async def test_slug_collision_ignores_case(self, db_session, service, owner_user, admin_user):
        owner_id, admin_id = owner_user.id, admin_user.id
        await service.create_organization(db_session, owner_id, "Acme", "acme")

        with pytest.raises(SlugTakenError):
            await service.create_organization(db_session, admin_id, "Acme Again", "ACME")

        count = (await db_session.execute(select(func.count(Organization.id)))).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_invalid_slug(self, db_session, service, owner_user):
        with pytest.raises(ValidationError):
            await service.create_organization(db_session, owner_user.id, "Acme", "acme corp!")

    @pytest.mark.asyncio
    async def test_blank_name(self, db_session, service, owner_user):
        with pytest.raises(ValidationError):
            await service.create_organization(db_session, owner_user.id, "   ", "acme")

    @pytest.mark.asyncio
    async def test_creation_disabled(self, db_session, service, owner_user, monkeypatch):
        monkeypatch.setattr(settings, "ALLOW_USER_TO_CREATE_ORGANIZATION", False)

        with pytest.raises(PermissionDeniedError):
            await service.create_organization(db_session, owner_user.id, "Acme", "acme")

    @pytest.mark.asyncio
    async def test_racing_creates_with_same_slug(self, tmp_path, service):
        """Both callers see the slug as free; the unique constraint lets only one through"""
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        try:
            async with session_factory() as setup:
                first_user = await create_user(setup, "first@example.com")
                second_user = await create_user(setup, "second@example.com")
                first_id, second_id = first_user.id, second_user.id

            async with session_factory() as first, session_factory() as second:
                assert await service.check_slug_available(first, "foo")
                assert await service.check_slug_available(second, "foo")

                winner = await service.create_organization(first, first_id, "Foo", "foo")
                with pytest.raises(SlugTakenError):
                    await service.create_organization(second, second_id, "Foo Too", "foo")

            async with session_factory() as check:
                slugs = (await check.execute(select(Organization.slug))).scalars().all()
                owners = (await check.execute(select(Member.user_id))).scalars().all()
            assert slugs == ["foo"]
            assert owners == [first_id]
            assert winner.slug == "foo"
        finally:
            await engine.dispose()


class TestSlugLookup:

    @pytest.mark.asyncio
    async def test_check_slug_available(self, db_session, service, organization):
        assert await service.check_slug_available(db_session, "ACME") is False
        assert await service.check_slug_available(db_session, "fresh-slug") is True

    @pytest.mark.asyncio
    async def test_get_by_slug_ignores_case(self, db_session, service, organization):
        found = await service.get_organization_by_slug(db_session, "Acme")
        assert found.id == organization.id

    @pytest.mark.asyncio
    async def test_unknown_slug(self, db_session, service):
        with pytest.raises(NotFoundError):
            await service.get_organization_by_slug(db_session, "nope")


class TestOrganizationInfo:

    @pytest.mark.asyncio
    async def test_defaults_without_metadata(self, db_session, service):
        await create_organization(db_session, "plain", "Plain Org")

        info = await service.get_organization_info(db_session, "plain")

        assert info.name == "Plain Org"
        assert info.primary_color == "#6b7280"
        assert info.is_public is False
        assert info.domain is None
        assert info.logo_url is None

    @pytest.mark.asyncio
    async def test_branding_from_metadata(self, db_session, service):
        await create_organization(
            db_session, "brand", "Brand Org", metadata={"primaryColor": "#dc2626", "domain": "brand.io"}
        )

        info = await service.get_organization_info(db_session, "brand")

        assert info.primary_color == "#dc2626"
        assert info.domain == "brand.io"

    @pytest.mark.asyncio
    async def test_stored_non_hex_color_falls_back(self, db_session, service):
        await create_organization(
            db_session, "legacy", "Legacy Org", metadata={"primaryColor": "red;}</style><script>"}
        )

        info = await service.get_organization_info(db_session, "legacy")

        assert info.primary_color == "#6b7280"


class TestSearch:

    @pytest.mark.asyncio
    async def test_only_public_organizations(self, db_session, service):
        await create_organization(db_session, "acme", "Acme Inc", metadata={"isPublic": True, "domain": "acme.com"})
        await create_organization(db_session, "acme-labs", "Acme Labs", metadata={"isPublic": True})
        await create_organization(db_session, "acme-secret", "Acme Secret", metadata={"isPublic": False})
        await create_organization(db_session, "acme-hidden", "Acme Hidden")

        results = await service.search_organizations(db_session, "ACME")

        assert [org.slug for org in results] == ["acme", "acme-labs"]

    @pytest.mark.asyncio
    async def test_matches_domain(self, db_session, service):
        await create_organization(db_session, "orbit", "Orbit", metadata={"isPublic": True, "domain": "orbit.dev"})

        results = await service.search_organizations(db_session, "orbit.dev")

        assert [org.slug for org in results] == ["orbit"]

    @pytest.mark.asyncio
    async def test_empty_term_returns_nothing(self, db_session, service, organization):
        assert await service.search_organizations(db_session, "") == []
        assert await service.search_organizations(db_session, "   ") == []

    @pytest.mark.asyncio
    async def test_wildcards_are_literal(self, db_session, service, organization):
        assert await service.search_organizations(db_session, "%") == []


class TestUpdateOrganization:

    @pytest.mark.asyncio
    async def test_metadata_is_merged(self, db_session, service, owner, organization):
        updated = await service.update_organization(
            db_session, organization.id, owner, name="Acme Corp", metadata={"primaryColor": "#111111"}
        )

        assert updated.name == "Acme Corp"
        assert updated.metadata_ == {"domain": "acme.com", "isPublic": True, "primaryColor": "#111111"}

    @pytest.mark.asyncio
    async def test_member_cannot_update(self, db_session, service, owner, member, organization):
        with pytest.raises(PermissionDeniedError):
            await service.update_organization(db_session, organization.id, member, name="Hijacked")

    @pytest.mark.asyncio
    async def test_slug_taken_on_update(self, db_session, service, owner, organization):
        organization_id = organization.id
        await create_organization(db_session, "taken", "Taken Org")

        with pytest.raises(SlugTakenError):
            await service.update_organization(db_session, organization_id, owner, slug="Taken")


class TestDeleteOrganization:

    @pytest.mark.asyncio
    async def test_cascade_removes_dependents(self, db_session, service, owner, member, organization, owner_user):
        organization_id = organization.id
        owner_user.active_organization_id = organization_id
        db_session.add(Invitation(
            email="pending@example.com",
            inviter_id=owner.id,
            organization_id=organization_id,
            role=MemberRole.MEMBER,
            status=InvitationStatus.PENDING,
            expires_at=utcnow() + timedelta(hours=48),
        ))
        db_session.add(Ticket(
            title="Broken login",
            description="Nobody can sign in today",
            organization_id=organization_id,
            requester_id=owner_user.id,
            assignee_id=member.id,
        ))
        await db_session.commit()

        await service.delete_organization(db_session, organization_id, owner)

        for model in (Organization, Member, Invitation, Ticket):
            count = (await db_session.execute(select(func.count()).select_from(model))).scalar_one()
            assert count == 0, model.__name__

        user = await db_session.get(User, owner_user.id)
        assert user.active_organization_id is None

    @pytest.mark.asyncio
    async def test_admin_cannot_delete(self, db_session, service, owner, admin, organization):
        with pytest.raises(PermissionDeniedError):
            await service.delete_organization(db_session, organization.id, admin)


class TestActiveOrganization:

    @pytest.mark.asyncio
    async def test_switch_to_member_organization(self, db_session, service, owner, organization, owner_user):
        user = await service.set_active_organization(db_session, owner_user, organization.id)
        assert user.active_organization_id == organization.id

    @pytest.mark.asyncio
    async def test_non_member_cannot_switch(self, db_session, service, organization, outsider_user):
        with pytest.raises(PermissionDeniedError):
            await service.set_active_organization(db_session, outsider_user, organization.id)

    @pytest.mark.asyncio
    async def test_list_user_organizations(self, db_session, service, owner_user):
        first = await create_organization(db_session, "first", "First")
        second = await create_organization(db_session, "second", "Second")
        await add_membership(db_session, first, owner_user, MemberRole.OWNER)
        await add_membership(db_session, second, owner_user, MemberRole.GUEST)

        rows = await service.list_user_organizations(db_session, owner_user.id)

        assert {(org.slug, member.role) for org, member in rows} == {
            ("first", MemberRole.OWNER),
            ("second", MemberRole.GUEST),
        }
