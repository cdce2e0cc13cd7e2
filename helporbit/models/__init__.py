"""
SQLAlchemy models - Import all for Alembic autogenerate
"""
from helporbit.models.base import Base, TimestampMixin

# Import all models
from helporbit.models.user import User, UserStatus
from helporbit.models.organization import Organization
from helporbit.models.member import Member, MemberRole
from helporbit.models.invitation import Invitation, InvitationStatus
from helporbit.models.ticket import (
    Ticket,
    TicketStatus,
    TicketPriority,
    TicketType,
    TicketComment,
    TicketAttachment,
)

# Export all for easy imports
__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "UserStatus",
    "Organization",
    "Member",
    "MemberRole",
    "Invitation",
    "InvitationStatus",
    "Ticket",
    "TicketStatus",
    "TicketPriority",
    "TicketType",
    "TicketComment",
    "TicketAttachment",
]
