"""
User model
"""
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Enum as SQLEnum, DateTime
from sqlalchemy.orm import relationship
import enum

from helporbit.models.base import Base, TimestampMixin, generate_id, utcnow


class UserStatus(str, enum.Enum):
    """Account status"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    BANNED = "banned"
    PENDING = "pending"


class User(Base, TimestampMixin):
    """
    User table - custom JWT authentication system
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    image = Column(String(1024), nullable=True)

    # Status & Security
    status = Column(
        SQLEnum(UserStatus, values_callable=lambda e: [m.value for m in e], name="user_status"),
        default=UserStatus.ACTIVE,
        nullable=False,
    )
    email_verified = Column(Boolean, default=False, nullable=False)
    login_count = Column(Integer, default=0, nullable=False)
    last_active_at = Column(DateTime, default=utcnow, nullable=True)

    # Organization the user is currently working in
    active_organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True
    )

    # Password reset
    password_reset_token = Column(String(255), nullable=True)
    password_reset_expires = Column(DateTime, nullable=True)

    # Email verification
    email_verification_token = Column(String(255), nullable=True)
    email_verification_expires = Column(DateTime, nullable=True)

    # Relationships
    memberships = relationship("Member", back_populates="user", passive_deletes=True)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"
