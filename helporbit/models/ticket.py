"""
Ticket, comment and attachment models
"""
import enum
import json
import logging
from typing import List, Optional

from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship

from helporbit.models.base import Base, TimestampMixin, generate_id, utcnow

logger = logging.getLogger(__name__)


class TicketStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    WAITING_FOR_CUSTOMER = "waiting_for_customer"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketType(str, enum.Enum):
    GENERAL = "general"
    BUG = "bug"
    FEATURE_REQUEST = "feature_request"
    SUPPORT = "support"
    BILLING = "billing"
    OTHER = "other"


def _enum(enum_cls, name):
    return SQLEnum(enum_cls, values_callable=lambda e: [m.value for m in e], name=name)


def encode_tags(tags: Optional[List[str]]) -> Optional[str]:
    """Tags are stored as a JSON array string; order and duplicates are kept."""
    if tags is None:
        return None
    return json.dumps(list(tags))


def decode_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        tags = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Failed to parse ticket tags: %r", raw)
        return []
    return [str(tag) for tag in tags] if isinstance(tags, list) else []


class Ticket(Base, TimestampMixin):
    """Support request scoped to an organization"""
    __tablename__ = "tickets"

    id = Column(String(36), primary_key=True, default=generate_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(_enum(TicketStatus, "ticket_status"), default=TicketStatus.OPEN, nullable=False, index=True)
    priority = Column(_enum(TicketPriority, "ticket_priority"), default=TicketPriority.MEDIUM, nullable=False)
    type = Column(_enum(TicketType, "ticket_type"), default=TicketType.GENERAL, nullable=False)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    requester_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    assignee_id = Column(String(36), ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    tags = Column(Text, nullable=True)  # JSON array as string
    due_date = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    # Relationships
    organization = relationship("Organization", back_populates="tickets")
    requester = relationship("User", foreign_keys=[requester_id])
    assignee = relationship("Member", foreign_keys=[assignee_id])
    comments = relationship(
        "TicketComment", back_populates="ticket", passive_deletes=True,
        order_by="TicketComment.created_at",
    )

    @property
    def tag_list(self) -> List[str]:
        return decode_tags(self.tags)

    def __repr__(self):
        return f"<Ticket(id={self.id}, org_id={self.organization_id}, status={self.status})>"


class TicketComment(Base, TimestampMixin):
    __tablename__ = "ticket_comments"

    id = Column(String(36), primary_key=True, default=generate_id)
    ticket_id = Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    is_internal = Column(Boolean, default=False, nullable=False)  # hidden from guests

    ticket = relationship("Ticket", back_populates="comments")
    author = relationship("User")


class TicketAttachment(Base):
    """Attachment metadata; file bodies live in external storage"""
    __tablename__ = "ticket_attachments"

    id = Column(String(36), primary_key=True, default=generate_id)
    ticket_id = Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=True, index=True)
    comment_id = Column(String(36), ForeignKey("ticket_comments.id", ondelete="CASCADE"), nullable=True)
    filename = Column(String(255), nullable=False)
    url = Column(Text, nullable=False)
    size = Column(Integer, nullable=False)
    content_type = Column(String(255), nullable=False)
    uploaded_by = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    uploaded_at = Column(DateTime, default=utcnow, nullable=False)
