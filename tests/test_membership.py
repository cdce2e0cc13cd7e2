"""
Membership manager tests: adding, re-roling, removing and leaving
"""
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helporbit.core.exceptions import (
    LastOwnerError,
    NotFoundError,
    PermissionDeniedError,
    UniquenessError,
)
from helporbit.db.session import build_engine
from helporbit.models import Base, MemberRole, User
from helporbit.services.cache import member_cache
from helporbit.services.membership_service import MembershipService

from conftest import add_membership, create_organization, create_user


class TestAddMember:

    @pytest.mark.asyncio
    async def test_owner_adds_member(self, db_session, membership_service, owner, organization, outsider_user):
        added = await membership_service.add_member(
            db_session, organization.id, outsider_user.id, MemberRole.MEMBER, actor=owner
        )

        assert added.role == MemberRole.MEMBER
        assert added.user.email == "outsider@example.com"
        assert await membership_service.count_members(db_session, organization.id) == 2

    @pytest.mark.asyncio
    async def test_duplicate_add_rejected(self, db_session, membership_service, owner, member, organization, member_user):
        with pytest.raises(UniquenessError):
            await membership_service.add_member(db_session, organization.id, member_user.id, actor=owner)

    @pytest.mark.asyncio
    async def test_admin_cannot_add_owner(self, db_session, membership_service, admin, organization, outsider_user):
        with pytest.raises(PermissionDeniedError):
            await membership_service.add_member(
                db_session, organization.id, outsider_user.id, MemberRole.OWNER, actor=admin
            )

    @pytest.mark.asyncio
    async def test_member_cannot_add(self, db_session, membership_service, member, organization, outsider_user):
        with pytest.raises(PermissionDeniedError):
            await membership_service.add_member(db_session, organization.id, outsider_user.id, actor=member)

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session, membership_service, owner, organization):
        with pytest.raises(NotFoundError):
            await membership_service.add_member(db_session, organization.id, "missing-user", actor=owner)

    @pytest.mark.asyncio
    async def test_membership_limit(self, db_session, membership_service, owner, organization, outsider_user):
        membership_service.membership_limit = 1

        with pytest.raises(PermissionDeniedError, match="limit"):
            await membership_service.add_member(db_session, organization.id, outsider_user.id, actor=owner)


class TestUpdateRole:

    @pytest.mark.asyncio
    async def test_owner_promotes_to_owner(self, db_session, membership_service, owner, member, organization):
        updated = await membership_service.update_member_role(
            db_session, organization.id, member.id, MemberRole.OWNER, owner
        )

        assert updated.role == MemberRole.OWNER
        assert await membership_service.count_owners(db_session, organization.id) == 2

    @pytest.mark.asyncio
    async def test_admin_cannot_assign_owner(self, db_session, membership_service, owner, admin, member, organization):
        with pytest.raises(PermissionDeniedError):
            await membership_service.update_member_role(
                db_session, organization.id, member.id, MemberRole.OWNER, admin
            )

    @pytest.mark.asyncio
    async def test_admin_cannot_change_owner(self, db_session, membership_service, owner, admin, organization):
        with pytest.raises(PermissionDeniedError):
            await membership_service.update_member_role(
                db_session, organization.id, owner.id, MemberRole.MEMBER, admin
            )

    @pytest.mark.asyncio
    async def test_admin_changes_member(self, db_session, membership_service, owner, admin, member, organization):
        updated = await membership_service.update_member_role(
            db_session, organization.id, member.id, MemberRole.GUEST, admin
        )
        assert updated.role == MemberRole.GUEST

    @pytest.mark.asyncio
    async def test_member_cannot_change_roles(self, db_session, membership_service, owner, member, guest, organization):
        with pytest.raises(PermissionDeniedError):
            await membership_service.update_member_role(
                db_session, organization.id, guest.id, MemberRole.MEMBER, member
            )

    @pytest.mark.asyncio
    async def test_sole_owner_cannot_be_demoted(self, db_session, membership_service, owner, organization):
        with pytest.raises(LastOwnerError):
            await membership_service.update_member_role(
                db_session, organization.id, owner.id, MemberRole.ADMIN, owner
            )

    @pytest.mark.asyncio
    async def test_owner_demoted_when_another_owner_exists(
        self, db_session, membership_service, owner, member, organization
    ):
        await membership_service.update_member_role(db_session, organization.id, member.id, MemberRole.OWNER, owner)

        demoted = await membership_service.update_member_role(
            db_session, organization.id, owner.id, MemberRole.ADMIN, member
        )
        assert demoted.role == MemberRole.ADMIN

    @pytest.mark.asyncio
    async def test_unknown_member(self, db_session, membership_service, owner, organization):
        with pytest.raises(NotFoundError):
            await membership_service.update_member_role(
                db_session, organization.id, "missing", MemberRole.MEMBER, owner
            )


class TestRemoveMember:

    @pytest.mark.asyncio
    async def test_remove_by_id(self, db_session, membership_service, owner, member, organization):
        removed = await membership_service.remove_member(db_session, organization.id, member.id, owner)

        assert removed.id == member.id
        assert await membership_service.get_member(db_session, organization.id, member.user_id) is None

    @pytest.mark.asyncio
    async def test_remove_by_email(self, db_session, membership_service, owner, member, organization):
        await membership_service.remove_member(db_session, organization.id, "Member@Example.com", owner)

        assert await membership_service.count_members(db_session, organization.id) == 1

    @pytest.mark.asyncio
    async def test_remove_clears_active_organization(
        self, db_session, membership_service, owner, member, organization, member_user
    ):
        member_user.active_organization_id = organization.id
        await db_session.commit()

        await membership_service.remove_member(db_session, organization.id, member.id, owner)

        await db_session.refresh(member_user)
        assert member_user.active_organization_id is None

    @pytest.mark.asyncio
    async def test_cannot_remove_self(self, db_session, membership_service, owner, admin, organization):
        with pytest.raises(PermissionDeniedError):
            await membership_service.remove_member(db_session, organization.id, admin.id, admin)

    @pytest.mark.asyncio
    async def test_admin_cannot_remove_owner(self, db_session, membership_service, owner, admin, organization):
        with pytest.raises(PermissionDeniedError):
            await membership_service.remove_member(db_session, organization.id, owner.id, admin)

    @pytest.mark.asyncio
    async def test_member_cannot_remove(self, db_session, membership_service, owner, member, guest, organization):
        with pytest.raises(PermissionDeniedError):
            await membership_service.remove_member(db_session, organization.id, guest.id, member)

    @pytest.mark.asyncio
    async def test_owner_removes_co_owner(self, db_session, membership_service, owner, organization):
        co_owner_user = await create_user(db_session, "co-owner@example.com")
        co_owner = await add_membership(db_session, organization, co_owner_user, MemberRole.OWNER)

        await membership_service.remove_member(db_session, organization.id, co_owner.id, owner)

        assert await membership_service.count_owners(db_session, organization.id) == 1

    @pytest.mark.asyncio
    async def test_unknown_email(self, db_session, membership_service, owner, organization):
        with pytest.raises(NotFoundError):
            await membership_service.remove_member(db_session, organization.id, "nobody@example.com", owner)


class TestLeaveOrganization:

    @pytest.mark.asyncio
    async def test_member_leaves(self, db_session, membership_service, owner, member, organization, member_user):
        await membership_service.leave_organization(db_session, organization.id, member_user)

        assert await membership_service.get_member(db_session, organization.id, member_user.id) is None

    @pytest.mark.asyncio
    async def test_sole_owner_cannot_leave(self, db_session, membership_service, owner, organization, owner_user):
        with pytest.raises(LastOwnerError):
            await membership_service.leave_organization(db_session, organization.id, owner_user)

        assert await membership_service.count_owners(db_session, organization.id) == 1

    @pytest.mark.asyncio
    async def test_two_owners_leaving_together_keep_one(self, tmp_path):
        """Each owner sees a co-owner when checking; only the first to commit may go"""
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'owners.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        try:
            async with session_factory() as setup:
                organization = await create_organization(setup)
                first_user = await create_user(setup, "first-owner@example.com")
                second_user = await create_user(setup, "second-owner@example.com")
                await add_membership(setup, organization, first_user, MemberRole.OWNER)
                await add_membership(setup, organization, second_user, MemberRole.OWNER)
                organization_id, first_id, second_id = organization.id, first_user.id, second_user.id

            async with session_factory() as first, session_factory() as second:

                async def first_leaves():
                    user = await first.get(User, first_id)
                    await MembershipService().leave_organization(first, organization_id, user)

                class LeaveDuringCheck(MembershipService):
                    """Runs another owner's leave right after this service has counted owners"""

                    async def _lock_owner_ids(self, db, organization_id):
                        owner_ids = await super()._lock_owner_ids(db, organization_id)
                        await first_leaves()
                        return owner_ids

                second_user = await second.get(User, second_id)
                with pytest.raises(LastOwnerError):
                    await LeaveDuringCheck().leave_organization(second, organization_id, second_user)

            async with session_factory() as check:
                service = MembershipService()
                assert await service.count_owners(check, organization_id) == 1
                assert await service.get_member(check, organization_id, first_id) is None
                assert await service.get_member(check, organization_id, second_id) is not None
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_non_member_cannot_leave(self, db_session, membership_service, organization, outsider_user):
        with pytest.raises(NotFoundError):
            await membership_service.leave_organization(db_session, organization.id, outsider_user)


class TestMemberDirectory:

    @pytest.mark.asyncio
    async def test_list_members_filters_roles(self, db_session, membership_service, owner, admin, member, guest, organization):
        members, total = await membership_service.list_members(
            db_session, organization.id, roles=[MemberRole.OWNER, MemberRole.ADMIN]
        )

        assert total == 2
        assert {m.role for m in members} == {MemberRole.OWNER, MemberRole.ADMIN}

    @pytest.mark.asyncio
    async def test_list_members_paginates(self, db_session, membership_service, owner, admin, member, guest, organization):
        page, total = await membership_service.list_members(db_session, organization.id, limit=2, offset=2)

        assert total == 4
        assert len(page) == 2

    @pytest.mark.asyncio
    async def test_assignable_members_exclude_guests(self, db_session, membership_service, owner, member, guest, organization):
        entries = await membership_service.list_assignable_members(db_session, organization.id)

        assert {entry["email"] for entry in entries} == {"owner@example.com", "member@example.com"}
        assert member_cache.get(organization.id) == entries

    @pytest.mark.asyncio
    async def test_role_change_invalidates_cache(self, db_session, membership_service, owner, member, guest, organization):
        await membership_service.list_assignable_members(db_session, organization.id)

        await membership_service.update_member_role(db_session, organization.id, guest.id, MemberRole.MEMBER, owner)

        assert member_cache.get(organization.id) is None
        entries = await membership_service.list_assignable_members(db_session, organization.id)
        assert "guest@example.com" in {entry["email"] for entry in entries}
