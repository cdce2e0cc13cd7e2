"""
Invitation Model
Handles invitations to join an organization at a given role
"""
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, String, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship

from helporbit.models.base import Base, TimestampMixin, generate_id, utcnow
from helporbit.models.member import MemberRole, member_role_type


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    InvitationStatus.ACCEPTED,
    InvitationStatus.REJECTED,
    InvitationStatus.CANCELLED,
})


class Invitation(Base, TimestampMixin):
    """
    Invitation to an organization.

    Status only ever moves out of ``pending``. Expiry is never written back:
    a pending invitation past ``expires_at`` is expired by comparison at read time.
    """
    __tablename__ = "invitations"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String(255), nullable=False, index=True)
    inviter_id = Column(String(36), ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role = Column(member_role_type(), default=MemberRole.MEMBER, nullable=False)
    status = Column(
        SQLEnum(InvitationStatus, values_callable=lambda e: [m.value for m in e], name="invitation_status"),
        default=InvitationStatus.PENDING,
        nullable=False,
    )
    expires_at = Column(DateTime, nullable=False)

    # Relationships
    organization = relationship("Organization", back_populates="invitations")
    inviter = relationship("Member", foreign_keys=[inviter_id])

    def is_expired_at(self, now: Optional[datetime] = None) -> bool:
        """Only pending invitations can be expired."""
        now = now or utcnow()
        return self.status == InvitationStatus.PENDING and now > self.expires_at

    @property
    def is_expired(self) -> bool:
        """Check if invitation has expired"""
        return self.is_expired_at()

    @property
    def is_pending(self) -> bool:
        return self.status == InvitationStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<Invitation(id={self.id}, email='{self.email}', org_id={self.organization_id}, status={self.status})>"
