"""
Invitation Service
Handles the invitation lifecycle: create, accept, reject, cancel, resend
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple
from urllib.parse import quote

from email_validator import validate_email, EmailNotValidError
from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from helporbit.core.config import settings
from helporbit.core.exceptions import (
    AlreadyProcessedError,
    ExpiredError,
    NotFoundError,
    PermissionDeniedError,
    UniquenessError,
    ValidationError,
    WrongUserError,
)
from helporbit.core.permissions import can_assign_role, check_permission, outranks
from helporbit.models.base import utcnow
from helporbit.models.invitation import Invitation, InvitationStatus
from helporbit.models.member import Member, MemberRole
from helporbit.models.organization import Organization
from helporbit.models.user import User
from helporbit.schemas.invitation import ErrorAction, InvitationError, InvitationResponse, InvitationView
from helporbit.services.cache import (
    revalidate_common_paths,
    revalidate_invitation_cache,
    revalidate_member_cache,
    revalidate_user_cache,
)
from helporbit.services.email_service import EmailService, get_email_service
from helporbit.services.membership_service import MembershipService, get_membership_service

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """
    Lower-cased, validated email address.

    Raises:
        ValidationError: If the address is malformed
    """
    try:
        return validate_email((email or "").strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError("Invalid email address", errors={"email": [str(e)]})


def invitation_response(invitation: Invitation, now: datetime) -> InvitationResponse:
    """Serialize with ``is_expired`` evaluated at ``now``"""
    return InvitationResponse(
        id=invitation.id,
        email=invitation.email,
        role=invitation.role,
        status=invitation.status,
        organization_id=invitation.organization_id,
        inviter_id=invitation.inviter_id,
        expires_at=invitation.expires_at,
        created_at=invitation.created_at,
        updated_at=invitation.updated_at,
        is_expired=invitation.is_expired_at(now),
    )


class InvitationService:
    """
    Service for managing organization invitations.

    ``clock`` returns the current naive UTC datetime; tests inject a fake
    one to move time forward.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        email_service: Optional[EmailService] = None,
        membership_service: Optional[MembershipService] = None,
    ):
        self.clock = clock
        self.email_service = email_service or get_email_service()
        self.membership_service = membership_service or get_membership_service()
        self.expire_hours = settings.INVITATION_EXPIRE_HOURS

    def now(self) -> datetime:
        return self.clock()

    async def get_invitation(self, db: AsyncSession, invitation_id: str) -> Invitation:
        """
        Invitation with its organization and inviter loaded.

        Raises:
            NotFoundError: No invitation with this id
        """
        result = await db.execute(
            select(Invitation)
            .options(
                selectinload(Invitation.organization),
                selectinload(Invitation.inviter).selectinload(Member.user),
            )
            .where(Invitation.id == invitation_id)
        )
        invitation = result.scalar_one_or_none()
        if not invitation:
            raise NotFoundError("Invitation not found")
        return invitation

    async def _find_live_invitation(self, db: AsyncSession, organization_id: str, email: str) -> Optional[Invitation]:
        result = await db.execute(
            select(Invitation)
            .where(
                Invitation.organization_id == organization_id,
                Invitation.email == email,
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at > self.now(),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _is_member_email(self, db: AsyncSession, organization_id: str, email: str) -> bool:
        result = await db.execute(
            select(Member.id)
            .join(User, Member.user_id == User.id)
            .where(Member.organization_id == organization_id, User.email == email)
        )
        return result.first() is not None

    async def create_invitation(
        self,
        db: AsyncSession,
        organization_id: str,
        email: str,
        role: MemberRole,
        inviter: Member,
        resend: bool = False,
    ) -> Invitation:
        """
        Create a pending invitation and email the invitee.

        Raises:
            ValidationError: Malformed email or unknown role
            PermissionDeniedError: Inviter may not invite, or may not grant ``role``
            NotFoundError: Organization does not exist
            UniquenessError: The email already belongs to a member, or a live
                invitation exists and ``resend`` is False
        """
        email = normalize_email(email)
        try:
            role = MemberRole(role)
        except ValueError:
            raise ValidationError(f"Unknown role: {role}", errors={"role": [f"Unknown role: {role}"]})

        if inviter.organization_id != organization_id:
            raise PermissionDeniedError("You are not a member of this organization")
        check_permission(inviter.role, "invitation", "create", "You don't have permission to invite members")
        if not can_assign_role(inviter.role, role):
            raise PermissionDeniedError(f"You cannot invite members as {role.value}")

        organization = await db.get(Organization, organization_id)
        if not organization:
            raise NotFoundError("Organization not found")

        if await self._is_member_email(db, organization_id, email):
            raise UniquenessError("User is already a member of this organization")

        if not resend and await self._find_live_invitation(db, organization_id, email):
            raise UniquenessError(f"An active invitation already exists for {email}")

        now = self.now()
        invitation = Invitation(
            email=email,
            organization_id=organization_id,
            inviter_id=inviter.id,
            role=role,
            status=InvitationStatus.PENDING,
            expires_at=now + timedelta(hours=self.expire_hours),
            created_at=now,
            updated_at=now,
        )
        db.add(invitation)
        await db.commit()

        logger.info(f"Invitation {invitation.id} created for {email} to organization {organization_id} as {role.value}")

        inviter_user = await db.get(User, inviter.user_id)
        inviter_name = (inviter_user.name or inviter_user.email) if inviter_user else "A teammate"
        sent = self.email_service.send_invitation_email(
            to_email=email,
            organization_name=organization.name,
            organization_slug=organization.slug,
            invitation_id=invitation.id,
            inviter_name=inviter_name,
            role=role.value,
            primary_color=organization.primary_color,
        )
        if not sent:
            # The invitation stays valid; it can be resent later
            logger.warning(f"Failed to send invitation email for invitation {invitation.id} to {email}")

        revalidate_invitation_cache(organization_id)
        revalidate_common_paths(organization.slug)

        return invitation

    async def resend_invitation(self, db: AsyncSession, invitation_id: str, actor: Member) -> Invitation:
        """
        Issue a fresh invitation (new id, new expiry) for the same email and
        role. The original row is left as it is.
        """
        original = await self.get_invitation(db, invitation_id)
        if original.organization_id != actor.organization_id:
            raise NotFoundError("Invitation not found")

        return await self.create_invitation(
            db,
            organization_id=original.organization_id,
            email=original.email,
            role=original.role,
            inviter=actor,
            resend=True,
        )

    def _check_acceptable(self, invitation: Invitation, user: User) -> None:
        """Raise the first reason ``user`` cannot act on ``invitation``"""
        if invitation.status != InvitationStatus.PENDING:
            raise AlreadyProcessedError(f"This invitation has already been {invitation.status.value}")
        if self.now() >= invitation.expires_at:
            raise ExpiredError()
        if invitation.email.lower() != user.email.lower():
            raise WrongUserError()

    async def _leave_pending(self, db: AsyncSession, invitation: Invitation, status: InvitationStatus) -> None:
        """
        Move the stored row out of ``pending``, but only if it is still pending.

        A concurrent accept, reject or cancel that committed first makes the
        update match nothing; the transaction is rolled back and the caller
        gets AlreadyProcessedError.
        """
        invitation_id = invitation.id
        now = self.now()
        result = await db.execute(
            update(Invitation)
            .where(Invitation.id == invitation_id, Invitation.status == InvitationStatus.PENDING)
            .values(status=status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            logger.info(f"Invitation {invitation_id} left pending concurrently; {status.value} refused")
            raise AlreadyProcessedError("This invitation has already been processed")
        set_committed_value(invitation, "status", status)
        set_committed_value(invitation, "updated_at", now)

    async def accept_invitation(self, db: AsyncSession, invitation_id: str, user: User) -> Tuple[Invitation, Member]:
        """
        Accept an invitation as ``user``.

        Creates the membership at the invited role, or upgrades an existing
        membership when the invited role ranks higher. The organization
        becomes the user's active organization.

        Raises (in this order):
            NotFoundError, AlreadyProcessedError, ExpiredError, WrongUserError
        """
        invitation = await self.get_invitation(db, invitation_id)
        self._check_acceptable(invitation, user)

        member = await self.membership_service.get_member(db, invitation.organization_id, user.id)
        if member is None:
            count = await self.membership_service.count_members(db, invitation.organization_id)
            if count >= self.membership_service.membership_limit:
                raise PermissionDeniedError("Organization membership limit reached")

        # Membership is written in the same transaction as the status change
        await self._leave_pending(db, invitation, InvitationStatus.ACCEPTED)
        if member is None:
            member = Member(user_id=user.id, organization_id=invitation.organization_id, role=invitation.role)
            db.add(member)
        elif outranks(invitation.role, member.role):
            member.role = invitation.role
        user.active_organization_id = invitation.organization_id
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise UniquenessError("User is already a member of this organization")

        logger.info(f"Invitation {invitation.id} accepted by user {user.id}")
        revalidate_invitation_cache(invitation.organization_id)
        revalidate_member_cache(invitation.organization_id, user.id)
        revalidate_user_cache(user.id)
        revalidate_common_paths(invitation.organization.slug)

        member = await self.membership_service.get_member_by_id(db, invitation.organization_id, member.id)
        return invitation, member

    async def reject_invitation(self, db: AsyncSession, invitation_id: str, user: User) -> Invitation:
        """
        Decline an invitation addressed to ``user``.

        Raises:
            NotFoundError, AlreadyProcessedError, WrongUserError
        """
        invitation = await self.get_invitation(db, invitation_id)
        if invitation.status != InvitationStatus.PENDING:
            raise AlreadyProcessedError(f"This invitation has already been {invitation.status.value}")
        if invitation.email.lower() != user.email.lower():
            raise WrongUserError()

        await self._leave_pending(db, invitation, InvitationStatus.REJECTED)
        await db.commit()

        logger.info(f"Invitation {invitation.id} rejected by user {user.id}")
        revalidate_invitation_cache(invitation.organization_id)
        return invitation

    async def cancel_invitation(self, db: AsyncSession, invitation_id: str, actor: Member) -> Invitation:
        """
        Withdraw a pending invitation.

        Raises:
            NotFoundError: No such invitation in the actor's organization
            PermissionDeniedError: Actor lacks ``invitation:cancel``
            AlreadyProcessedError: The invitation is no longer pending
        """
        invitation = await self.get_invitation(db, invitation_id)
        if invitation.organization_id != actor.organization_id:
            raise NotFoundError("Invitation not found")
        check_permission(actor.role, "invitation", "cancel", "You don't have permission to cancel invitations")
        if invitation.status != InvitationStatus.PENDING:
            raise AlreadyProcessedError(f"This invitation has already been {invitation.status.value}")

        await self._leave_pending(db, invitation, InvitationStatus.CANCELLED)
        await db.commit()

        logger.info(f"Invitation {invitation.id} cancelled by member {actor.id}")
        revalidate_invitation_cache(invitation.organization_id)
        return invitation

    async def list_invitations(
        self,
        db: AsyncSession,
        organization_id: str,
        status: Optional[InvitationStatus] = None,
        limit: int = 100,
        offset: int = 0,
        sort_direction: str = "desc",
    ) -> Tuple[List[Invitation], int]:
        """Invitations of an organization, newest first by default, with the total count"""
        filters = [Invitation.organization_id == organization_id]
        if status is not None:
            filters.append(Invitation.status == InvitationStatus(status))

        order = Invitation.created_at.asc() if sort_direction == "asc" else Invitation.created_at.desc()
        result = await db.execute(
            select(Invitation).where(*filters).order_by(order, Invitation.id).offset(offset).limit(limit)
        )
        invitations = list(result.scalars().all())
        total = (await db.execute(select(func.count(Invitation.id)).where(*filters))).scalar_one()
        return invitations, total

    async def list_user_invitations(self, db: AsyncSession, email: str) -> List[Invitation]:
        """Pending, unexpired invitations addressed to ``email``"""
        result = await db.execute(
            select(Invitation)
            .options(selectinload(Invitation.organization))
            .where(
                Invitation.email == email.strip().lower(),
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at > self.now(),
            )
            .order_by(Invitation.created_at.desc())
        )
        return list(result.scalars().all())

    async def build_invitation_view(
        self,
        db: AsyncSession,
        invitation_id: str,
        user: Optional[User],
        organization_slug: Optional[str] = None,
    ) -> InvitationView:
        """
        Everything the accept-invitation page shows, including why the
        invitation cannot be accepted and where to go next.
        """
        slug = organization_slug or ""
        page = f"/org/{slug}/accept-invitation/{invitation_id}"
        login_with_return = ErrorAction(label="Go to Login", href=f"/login?from={quote(page, safe='')}")

        if user is None:
            return InvitationView(error=InvitationError(
                type="needs-login",
                title="Login Required",
                message="Please sign in to view and accept this invitation.",
                action=ErrorAction(label="Login to Continue", href=login_with_return.href),
            ))

        try:
            invitation = await self.get_invitation(db, invitation_id)
        except NotFoundError:
            return InvitationView(error=InvitationError(
                type="not-found",
                title="Invitation Not Found",
                message="The invitation you're looking for doesn't exist or has expired.",
                action=ErrorAction(label="Go to Login", href="/login"),
            ))

        organization = invitation.organization
        if organization_slug and organization.slug != organization_slug.lower():
            return InvitationView(error=InvitationError(
                type="not-found",
                title="Organization Mismatch",
                message="This invitation does not belong to the requested organization.",
                action=ErrorAction(label="Go to Login", href="/login"),
            ))

        inviter_user = invitation.inviter.user if invitation.inviter else None
        view = InvitationView(
            invitation=invitation_response(invitation, self.now()),
            organization_name=organization.name,
            organization_slug=organization.slug,
            organization_logo=organization.logo,
            inviter_email=inviter_user.email if inviter_user else None,
            inviter_name=inviter_user.name if inviter_user else None,
        )

        try:
            self._check_acceptable(invitation, user)
        except AlreadyProcessedError:
            status_messages = {
                InvitationStatus.ACCEPTED: "You have already accepted this invitation and should have access to the organization.",
                InvitationStatus.REJECTED: "This invitation was declined and is no longer valid.",
                InvitationStatus.CANCELLED: "This invitation has been cancelled by the organization administrator.",
            }
            if invitation.status == InvitationStatus.ACCEPTED:
                action = ErrorAction(label="Go to Organization", href=f"/org/{organization.slug}/dashboard")
            else:
                action = ErrorAction(label="Go to Login", href="/login")
            view.error = InvitationError(
                type="already-processed",
                title=f"Invitation {invitation.status.value.capitalize()}",
                message=status_messages.get(invitation.status, "This invitation is no longer active."),
                action=action,
            )
        except ExpiredError:
            view.error = InvitationError(
                type="expired",
                title="Invitation Expired",
                message=(
                    f"This invitation expired on {invitation.expires_at:%Y-%m-%d}. "
                    "Please contact the organization administrator for a new invitation."
                ),
                action=ErrorAction(label="Go to Login", href="/login"),
            )
        except WrongUserError:
            view.error = InvitationError(
                type="wrong-user",
                title="Wrong Account",
                message=(
                    f"This invitation is for {invitation.email}, but you're signed in as {user.email}. "
                    "Please sign in with the correct account or sign out and try again."
                ),
                action=ErrorAction(label=f"Sign in as {invitation.email}", href=f"/org/{organization.slug}/login"),
                secondary_action=ErrorAction(label="Switch Organization", href="/select-organization"),
            )
        else:
            view.can_accept = True

        return view


# Singleton instance
_invitation_service: Optional[InvitationService] = None


def get_invitation_service() -> InvitationService:
    """Get or create the invitation service singleton"""
    global _invitation_service
    if _invitation_service is None:
        _invitation_service = InvitationService()
    return _invitation_service
