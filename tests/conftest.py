"""
PyTest configuration and fixtures for HelpOrbit backend tests
"""
import os
import tempfile

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "helporbit-test-logs"))
os.environ["ENVIRONMENT"] = "test"
os.environ["AWS_ACCESS_KEY_ID"] = ""
os.environ["AWS_SECRET_ACCESS_KEY"] = ""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from helporbit.main import app
from helporbit.db.session import build_engine, get_db
from helporbit.models import Base, Member, MemberRole, Organization, User, UserStatus
from helporbit.services.auth_service import auth_service
from helporbit.services.cache import member_cache
from helporbit.services.invitation_service import InvitationService
from helporbit.services.membership_service import MembershipService


TEST_PASSWORD = "Test123!@#"


class FakeClock:
    """Mutable clock for time-dependent rules"""

    def __init__(self, start: datetime = datetime(2026, 3, 10, 12, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class FakeEmailService:
    """Records outgoing invitation emails instead of calling SES"""

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent = []

    def send_invitation_email(self, **kwargs) -> bool:
        self.sent.append(kwargs)
        return self.succeed


@pytest.fixture(autouse=True)
def clear_member_cache():
    member_cache.clear()
    yield
    member_cache.clear()


@pytest_asyncio.fixture(scope="function")
async def engine():
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(engine):
    """
    Fresh in-memory database for each test.
    """
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session):
    """
    Route the app's database dependency to the test session.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def membership_service():
    return MembershipService()


@pytest.fixture
def invitation_service(clock, email_service, membership_service):
    return InvitationService(clock=clock, email_service=email_service, membership_service=membership_service)


async def create_user(db, email: str, name: str = "Test User", status: UserStatus = UserStatus.ACTIVE) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=auth_service.hash_password(TEST_PASSWORD),
        status=status,
        email_verified=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def create_organization(db, slug: str = "acme", name: str = "Acme Inc", metadata=None) -> Organization:
    organization = Organization(name=name, slug=slug, metadata_=metadata or {})
    db.add(organization)
    await db.commit()
    await db.refresh(organization)
    return organization


async def add_membership(db, organization: Organization, user: User, role: MemberRole) -> Member:
    member = Member(user_id=user.id, organization_id=organization.id, role=role)
    db.add(member)
    await db.commit()
    await db.refresh(member)
    return member


def auth_headers_for(user: User) -> dict:
    token = auth_service.create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def owner_user(db_session):
    return await create_user(db_session, "owner@example.com", "Olivia Owner")


@pytest_asyncio.fixture
async def admin_user(db_session):
    return await create_user(db_session, "admin@example.com", "Adam Admin")


@pytest_asyncio.fixture
async def member_user(db_session):
    return await create_user(db_session, "member@example.com", "Mia Member")


@pytest_asyncio.fixture
async def guest_user(db_session):
    return await create_user(db_session, "guest@example.com", "Gus Guest")


@pytest_asyncio.fixture
async def outsider_user(db_session):
    return await create_user(db_session, "outsider@example.com", "Otto Outsider")


@pytest_asyncio.fixture
async def organization(db_session):
    return await create_organization(
        db_session, "acme", "Acme Inc", metadata={"domain": "acme.com", "isPublic": True}
    )


@pytest_asyncio.fixture
async def owner(db_session, organization, owner_user):
    return await add_membership(db_session, organization, owner_user, MemberRole.OWNER)


@pytest_asyncio.fixture
async def admin(db_session, organization, admin_user):
    return await add_membership(db_session, organization, admin_user, MemberRole.ADMIN)


@pytest_asyncio.fixture
async def member(db_session, organization, member_user):
    return await add_membership(db_session, organization, member_user, MemberRole.MEMBER)


@pytest_asyncio.fixture
async def guest(db_session, organization, guest_user):
    return await add_membership(db_session, organization, guest_user, MemberRole.GUEST)
