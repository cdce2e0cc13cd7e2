"""
Seed database with demo users, organizations, members, invitations and tickets

Usage:
    python -m helporbit.utils.seed_data
"""
import asyncio
import sys
from datetime import datetime, timedelta
from typing import Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helporbit.db.session import AsyncSessionLocal
from helporbit.models import (
    Invitation,
    InvitationStatus,
    Member,
    MemberRole,
    Organization,
    Ticket,
    TicketAttachment,
    TicketComment,
    TicketPriority,
    TicketStatus,
    User,
    UserStatus,
)
from helporbit.models.base import utcnow
from helporbit.models.ticket import encode_tags
from helporbit.services.auth_service import auth_service


# Every seeded account shares this password (development only)
DEMO_PASSWORD = "Password123!"

USERS = [
    {"key": "john", "name": "John Doe", "email": "john.doe@acme.com", "login_count": 45},
    {"key": "jane", "name": "Jane Smith", "email": "jane.smith@acme.com", "login_count": 32},
    {"key": "sarah", "name": "Sarah Wilson", "email": "sarah@example.com", "login_count": 12},
    {"key": "mike", "name": "Mike Johnson", "email": "mike@company.com", "login_count": 28},
    {"key": "alex", "name": "Alex Chen", "email": "alex@startup.io", "login_count": 8},
    {"key": "emma", "name": "Emma Davis", "email": "emma@mobile-user.com", "login_count": 18},
    {"key": "david", "name": "David Brown", "email": "david.brown@techstart.io", "login_count": 67},
    {"key": "lisa", "name": "Lisa Martinez", "email": "lisa@globalsolutions.com", "login_count": 23},
]

ORGANIZATIONS = [
    {
        "name": "ACME Corporation",
        "slug": "acme-corp",
        "metadata": {"domain": "acme.com", "primaryColor": "#dc2626", "isPublic": True,
                     "industry": "Technology", "size": "Large"},
    },
    {
        "name": "TechStart Inc",
        "slug": "techstart-inc",
        "metadata": {"domain": "techstart.io", "primaryColor": "#7c3aed", "isPublic": True,
                     "industry": "Software", "size": "Medium"},
    },
    {
        "name": "Global Solutions Ltd",
        "slug": "global-solutions",
        "metadata": {"domain": "globalsolutions.com", "primaryColor": "#059669", "isPublic": True,
                     "industry": "Consulting", "size": "Large"},
    },
    {
        "name": "StartupHub",
        "slug": "startuphub",
        "metadata": {"domain": "startuphub.co", "primaryColor": "#ea580c", "isPublic": False,
                     "industry": "Incubator", "size": "Small"},
    },
]

# (user key, organization slug, role)
MEMBERS = [
    ("john", "acme-corp", MemberRole.OWNER),
    ("jane", "acme-corp", MemberRole.ADMIN),
    ("david", "techstart-inc", MemberRole.OWNER),
    ("john", "techstart-inc", MemberRole.MEMBER),
    ("lisa", "global-solutions", MemberRole.OWNER),
    ("jane", "global-solutions", MemberRole.ADMIN),
    ("alex", "startuphub", MemberRole.OWNER),
]

# (email, organization slug, inviter key, role, days valid)
INVITATIONS = [
    ("newuser@example.com", "acme-corp", "john", MemberRole.MEMBER, 7),
    ("contractor@freelance.com", "techstart-inc", "david", MemberRole.GUEST, 3),
]

TICKETS = [
    {
        "key": "sso",
        "org": "acme-corp",
        "title": "Login issues with SSO authentication",
        "description": "Users are experiencing difficulties logging in through our SSO provider. "
                       "The authentication flow seems to hang on the redirect step.",
        "status": TicketStatus.OPEN,
        "priority": TicketPriority.URGENT,
        "requester": "sarah",
        "assignee": "john",
        "tags": ["sso", "authentication", "login"],
        "created_at": datetime(2024, 1, 20, 10, 30),
    },
    {
        "key": "payment",
        "org": "acme-corp",
        "title": "Payment processing error on checkout",
        "description": "Customers are reporting payment failures during checkout with credit cards. "
                       "Error code: PAYMENT_GATEWAY_TIMEOUT",
        "status": TicketStatus.IN_PROGRESS,
        "priority": TicketPriority.HIGH,
        "requester": "mike",
        "assignee": "jane",
        "tags": ["payment", "checkout", "billing"],
        "created_at": datetime(2024, 1, 20, 8, 45),
    },
    {
        "key": "dark-mode",
        "org": "acme-corp",
        "title": "Feature request: Dark mode support",
        "description": "Many users have requested dark mode support for the application, "
                       "ideally following the system preference.",
        "status": TicketStatus.OPEN,
        "priority": TicketPriority.MEDIUM,
        "requester": "alex",
        "assignee": None,
        "tags": ["feature-request", "ui", "enhancement"],
        "created_at": datetime(2024, 1, 19, 16, 20),
    },
    {
        "key": "mobile-crash",
        "org": "acme-corp",
        "title": "Mobile app crashing on startup",
        "description": "The mobile application crashes immediately upon startup on Android 12+ devices.",
        "status": TicketStatus.WAITING_FOR_CUSTOMER,
        "priority": TicketPriority.HIGH,
        "requester": "emma",
        "assignee": "john",
        "tags": ["mobile", "bug", "android", "crash"],
        "created_at": datetime(2024, 1, 19, 14, 10),
    },
    {
        "key": "rate-limit",
        "org": "techstart-inc",
        "title": "API rate limiting implementation",
        "description": "Need to implement proper rate limiting for our public API to prevent abuse.",
        "status": TicketStatus.OPEN,
        "priority": TicketPriority.MEDIUM,
        "requester": "david",
        "assignee": "david",
        "tags": ["api", "security", "performance"],
        "created_at": datetime(2024, 1, 18, 11, 0),
    },
    {
        "key": "db-perf",
        "org": "techstart-inc",
        "title": "Database performance optimization",
        "description": "Query response times have been increasing. Dashboard load times are particularly affected.",
        "status": TicketStatus.RESOLVED,
        "priority": TicketPriority.HIGH,
        "requester": "john",
        "assignee": "david",
        "tags": ["database", "performance", "optimization"],
        "created_at": datetime(2024, 1, 15, 9, 0),
        "resolved_at": datetime(2024, 1, 18, 16, 45),
    },
]

# (ticket key, author key, content, internal)
COMMENTS = [
    ("sso", "john", "Started investigating. Looks related to the SAML configuration.", True),
    ("sso", "sarah", "Still happening after trying different browsers and clearing cookies.", False),
    ("payment", "jane", "Timeout with the payment gateway. Raising the limit and improving error handling.", True),
    ("mobile-crash", "john", "Could you share the device model, Android version and any crash logs?", False),
    ("db-perf", "david", "Added indexes and optimized dashboard loading. Response times improved by 60%.", True),
]

# (ticket key, uploader key, filename, size, content type)
ATTACHMENTS = [
    ("sso", "sarah", "sso-error-screenshot.png", 245760, "image/png"),
    ("mobile-crash", "emma", "crash-log.txt", 8192, "text/plain"),
    ("db-perf", "david", "performance-report.pdf", 512000, "application/pdf"),
]


async def seed_users(db: AsyncSession) -> Dict[str, User]:
    print("\n🌱 Seeding users...")

    users = {}
    password_hash = auth_service.hash_password(DEMO_PASSWORD)
    for user_data in USERS:
        result = await db.execute(select(User).where(User.email == user_data["email"]))
        existing = result.scalar_one_or_none()

        if existing:
            print(f"  ⏭️  User '{user_data['email']}' already exists")
            users[user_data["key"]] = existing
            continue

        user = User(
            name=user_data["name"],
            email=user_data["email"],
            password_hash=password_hash,
            image=f"https://avatar.vercel.sh/{user_data['key']}",
            status=UserStatus.ACTIVE,
            email_verified=True,
            login_count=user_data["login_count"],
        )
        db.add(user)
        await db.flush()
        users[user_data["key"]] = user
        print(f"  ✅ Created user: {user.email}")

    await db.commit()
    return users


async def seed_organizations(db: AsyncSession) -> Dict[str, Organization]:
    print("\n🌱 Seeding organizations...")

    organizations = {}
    for org_data in ORGANIZATIONS:
        result = await db.execute(select(Organization).where(Organization.slug == org_data["slug"]))
        existing = result.scalar_one_or_none()

        if existing:
            print(f"  ⏭️  Organization '{org_data['slug']}' already exists")
            organizations[org_data["slug"]] = existing
            continue

        organization = Organization(
            name=org_data["name"],
            slug=org_data["slug"],
            logo=f"https://avatar.vercel.sh/{org_data['slug']}",
            metadata_=org_data["metadata"],
        )
        db.add(organization)
        await db.flush()
        organizations[org_data["slug"]] = organization
        print(f"  ✅ Created organization: {organization.name}")

    await db.commit()
    return organizations


async def seed_members(db: AsyncSession, users: dict, organizations: dict) -> Dict[tuple, Member]:
    print("\n🌱 Seeding members...")

    members = {}
    for user_key, slug, role in MEMBERS:
        user = users[user_key]
        organization = organizations[slug]
        result = await db.execute(
            select(Member).where(Member.user_id == user.id, Member.organization_id == organization.id)
        )
        member = result.scalar_one_or_none()

        if member is None:
            member = Member(user_id=user.id, organization_id=organization.id, role=role)
            db.add(member)
            await db.flush()
            print(f"  ✅ {user.email} joined {slug} as {role.value}")

        if user.active_organization_id is None:
            user.active_organization_id = organization.id
        members[(user_key, slug)] = member

    await db.commit()
    return members


async def seed_invitations(db: AsyncSession, organizations: dict, members: dict):
    print("\n🌱 Seeding invitations...")

    now = utcnow()
    created = 0
    for email, slug, inviter_key, role, days in INVITATIONS:
        organization = organizations[slug]
        result = await db.execute(
            select(Invitation).where(
                Invitation.email == email,
                Invitation.organization_id == organization.id,
                Invitation.status == InvitationStatus.PENDING,
            )
        )
        if result.scalars().first():
            print(f"  ⏭️  Pending invitation for '{email}' already exists")
            continue

        db.add(Invitation(
            email=email,
            inviter_id=members[(inviter_key, slug)].id,
            organization_id=organization.id,
            role=role,
            status=InvitationStatus.PENDING,
            expires_at=now + timedelta(days=days),
        ))
        created += 1

    await db.commit()
    print(f"✅ Created {created} invitations")


async def seed_tickets(db: AsyncSession, users: dict, organizations: dict, members: dict):
    print("\n🌱 Seeding tickets...")

    result = await db.execute(
        select(Ticket.id).where(Ticket.organization_id.in_([org.id for org in organizations.values()]))
    )
    if result.first():
        print("  ⏭️  Tickets already exist")
        return

    tickets = {}
    for ticket_data in TICKETS:
        slug = ticket_data["org"]
        assignee_key = ticket_data["assignee"]
        ticket = Ticket(
            title=ticket_data["title"],
            description=ticket_data["description"],
            status=ticket_data["status"],
            priority=ticket_data["priority"],
            organization_id=organizations[slug].id,
            requester_id=users[ticket_data["requester"]].id,
            assignee_id=members[(assignee_key, slug)].id if assignee_key else None,
            tags=encode_tags(ticket_data["tags"]),
            resolved_at=ticket_data.get("resolved_at"),
            created_at=ticket_data["created_at"],
            updated_at=ticket_data.get("resolved_at") or ticket_data["created_at"],
        )
        db.add(ticket)
        tickets[ticket_data["key"]] = ticket
    await db.flush()

    for ticket_key, author_key, content, is_internal in COMMENTS:
        db.add(TicketComment(
            ticket_id=tickets[ticket_key].id,
            author_id=users[author_key].id,
            content=content,
            is_internal=is_internal,
        ))

    for ticket_key, uploader_key, filename, size, content_type in ATTACHMENTS:
        db.add(TicketAttachment(
            ticket_id=tickets[ticket_key].id,
            filename=filename,
            url=f"https://storage.example.com/attachments/{filename}",
            size=size,
            content_type=content_type,
            uploaded_by=users[uploader_key].id,
        ))

    await db.commit()
    print(f"✅ Created {len(tickets)} tickets, {len(COMMENTS)} comments, {len(ATTACHMENTS)} attachments")


async def main():
    print("\n" + "=" * 60)
    print("🌱 SEEDING DATABASE: HelpOrbit")
    print("=" * 60)

    async with AsyncSessionLocal() as db:
        try:
            users = await seed_users(db)
            organizations = await seed_organizations(db)
            members = await seed_members(db, users, organizations)
            await seed_invitations(db, organizations, members)
            await seed_tickets(db, users, organizations, members)

            print("\n" + "=" * 60)
            print("✅ DATABASE SEEDING COMPLETED!")
            print("=" * 60)
            print("\n📊 Summary:")
            print(f"  • {len(USERS)} users (password: {DEMO_PASSWORD})")
            print(f"  • {len(ORGANIZATIONS)} organizations")
            print(f"  • {len(MEMBERS)} memberships")
            print("\n")

        except Exception as e:
            print(f"\n❌ ERROR: {e}")
            await db.rollback()
            sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
