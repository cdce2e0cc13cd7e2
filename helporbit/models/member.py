"""
Organization membership model
"""
from sqlalchemy import Column, String, ForeignKey, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.orm import relationship
import enum

from helporbit.models.base import Base, TimestampMixin, generate_id


class MemberRole(str, enum.Enum):
    """Roles a user can hold inside one organization"""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    GUEST = "guest"


def member_role_type() -> SQLEnum:
    return SQLEnum(MemberRole, values_callable=lambda e: [m.value for m in e], name="member_role")


class Member(Base, TimestampMixin):
    """
    Join entity between a user and an organization.

    Tickets reference members as assignees and invitations reference
    members as inviters, so both are scoped to the organization.
    """
    __tablename__ = "members"
    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="uq_members_user_organization"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role = Column(member_role_type(), default=MemberRole.MEMBER, nullable=False)

    # Relationships
    user = relationship("User", back_populates="memberships")
    organization = relationship("Organization", back_populates="members")

    def __repr__(self):
        return f"<Member(id={self.id}, user_id={self.user_id}, org_id={self.organization_id}, role={self.role})>"
