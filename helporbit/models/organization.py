"""
Organization model
"""
import re

from sqlalchemy import Column, String, Text, JSON
from sqlalchemy.orm import relationship

from helporbit.models.base import Base, TimestampMixin, generate_id


DEFAULT_PRIMARY_COLOR = "#6b7280"
HEX_COLOR_PATTERN = re.compile(r"#(?:[0-9a-fA-F]{3}){1,2}")


def is_hex_color(value) -> bool:
    return isinstance(value, str) and HEX_COLOR_PATTERN.fullmatch(value) is not None


class Organization(Base, TimestampMixin):
    """
    Organization (tenant) table.

    Members, invitations and tickets are removed by ON DELETE CASCADE
    when the organization row is deleted.
    """
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False)
    slug = Column(String(50), unique=True, nullable=False, index=True)
    logo = Column(Text, nullable=True)

    # Free-form settings: domain, primaryColor, isPublic, description ...
    metadata_ = Column("metadata", JSON, nullable=True, default=dict)

    # Relationships
    members = relationship("Member", back_populates="organization", passive_deletes=True)
    invitations = relationship("Invitation", back_populates="organization", passive_deletes=True)
    tickets = relationship("Ticket", back_populates="organization", passive_deletes=True)

    @property
    def domain(self):
        return (self.metadata_ or {}).get("domain")

    @property
    def primary_color(self) -> str:
        # Rendered into email stylesheets, so anything but a hex colour falls back
        color = (self.metadata_ or {}).get("primaryColor")
        return color if is_hex_color(color) else DEFAULT_PRIMARY_COLOR

    @property
    def is_public(self) -> bool:
        return bool((self.metadata_ or {}).get("isPublic", False))

    def __repr__(self):
        return f"<Organization(id={self.id}, slug='{self.slug}')>"
