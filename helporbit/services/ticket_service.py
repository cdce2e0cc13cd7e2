"""
Ticket Service
Ticket CRUD, assignment, status changes, comments and statistics
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import select, func, case, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from helporbit.core.exceptions import NotFoundError, ValidationError
from helporbit.core.permissions import check_permission
from helporbit.models.base import utcnow
from helporbit.models.member import Member, MemberRole
from helporbit.models.ticket import (
    Ticket,
    TicketAttachment,
    TicketComment,
    TicketPriority,
    TicketStatus,
    encode_tags,
)
from helporbit.schemas.ticket import (
    AttachmentCreate,
    RecentTicket,
    TicketCreate,
    TicketStats,
    TicketUpdate,
)
from helporbit.services.cache import revalidate_ticket_cache

logger = logging.getLogger(__name__)


# Statuses that clear resolved_at when a ticket moves back into them
REOPENED_STATUSES = frozenset({
    TicketStatus.OPEN,
    TicketStatus.IN_PROGRESS,
    TicketStatus.WAITING_FOR_CUSTOMER,
})


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _ticket_query():
    return select(Ticket).options(
        selectinload(Ticket.requester),
        selectinload(Ticket.assignee).selectinload(Member.user),
    )


class TicketService:
    """Service for organization tickets"""

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    async def get_ticket(self, db: AsyncSession, organization_id: str, ticket_id: str) -> Ticket:
        """
        Ticket with requester and assignee loaded.

        Raises:
            NotFoundError: No such ticket in the organization
        """
        result = await db.execute(
            _ticket_query().where(Ticket.id == ticket_id, Ticket.organization_id == organization_id)
        )
        ticket = result.scalar_one_or_none()
        if not ticket:
            raise NotFoundError("Ticket not found")
        return ticket

    async def list_tickets(
        self,
        db: AsyncSession,
        organization_id: str,
        status: Optional[Iterable[TicketStatus]] = None,
        priority: Optional[Iterable[TicketPriority]] = None,
        assignee_id: Optional[str] = None,
        requester_id: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Ticket], int]:
        """Newest tickets first, filtered, with the total matching count"""
        filters = [Ticket.organization_id == organization_id]
        if status:
            filters.append(Ticket.status.in_(list(status)))
        if priority:
            filters.append(Ticket.priority.in_(list(priority)))
        if assignee_id:
            filters.append(Ticket.assignee_id == assignee_id)
        if requester_id:
            filters.append(Ticket.requester_id == requester_id)
        if search and search.strip():
            term = search.strip()
            filters.append(or_(
                Ticket.title.icontains(term, autoescape=True),
                Ticket.description.icontains(term, autoescape=True),
            ))

        result = await db.execute(
            _ticket_query()
            .where(*filters)
            .order_by(Ticket.created_at.desc(), Ticket.id)
            .offset(offset)
            .limit(limit)
        )
        tickets = list(result.scalars().all())
        total = (await db.execute(select(func.count(Ticket.id)).where(*filters))).scalar_one()
        return tickets, total

    async def _require_assignee(self, db: AsyncSession, organization_id: str, assignee_id: str) -> Member:
        member = await db.get(Member, assignee_id)
        if not member or member.organization_id != organization_id:
            raise ValidationError(
                "Assignee must be a member of this organization",
                errors={"assignee_id": ["Assignee must be a member of this organization"]},
            )
        return member

    def _apply_status(self, ticket: Ticket, status: TicketStatus) -> None:
        status = TicketStatus(status)
        if status == ticket.status:
            return
        if status == TicketStatus.RESOLVED:
            ticket.resolved_at = self.clock()
        elif status in REOPENED_STATUSES:
            ticket.resolved_at = None
        ticket.status = status

    async def create_ticket(self, db: AsyncSession, organization_id: str, actor: Member, data: TicketCreate) -> Ticket:
        """
        Open a new ticket requested by the acting member.

        Raises:
            PermissionDeniedError: Actor lacks ``ticket:create``
        """
        check_permission(actor.role, "ticket", "create")

        ticket = Ticket(
            title=data.title,
            description=data.description,
            status=TicketStatus.OPEN,
            priority=data.priority,
            type=data.type,
            tags=encode_tags(data.tags),
            due_date=to_naive_utc(data.due_date),
            organization_id=organization_id,
            requester_id=actor.user_id,
        )
        db.add(ticket)
        await db.commit()

        logger.info(f"Ticket {ticket.id} created in organization {organization_id} by user {actor.user_id}")
        revalidate_ticket_cache(organization_id, ticket.id)
        return await self.get_ticket(db, organization_id, ticket.id)

    async def update_ticket(
        self,
        db: AsyncSession,
        organization_id: str,
        ticket_id: str,
        actor: Member,
        data: TicketUpdate,
    ) -> Ticket:
        """
        Partial update; only fields present in ``data`` change.

        Raises:
            PermissionDeniedError: Actor lacks ``ticket:update``
            NotFoundError: No such ticket
        """
        check_permission(actor.role, "ticket", "update")
        ticket = await self.get_ticket(db, organization_id, ticket_id)

        changes = data.model_dump(exclude_unset=True)
        for field in ("title", "description", "priority", "type"):
            if changes.get(field) is not None:
                setattr(ticket, field, changes[field])
        if "due_date" in changes:
            ticket.due_date = to_naive_utc(changes["due_date"])
        if "tags" in changes:
            ticket.tags = encode_tags(changes["tags"])
        if changes.get("status") is not None:
            self._apply_status(ticket, changes["status"])

        await db.commit()

        revalidate_ticket_cache(organization_id, ticket.id)
        return await self.get_ticket(db, organization_id, ticket.id)

    async def assign_ticket(
        self,
        db: AsyncSession,
        organization_id: str,
        ticket_id: str,
        assignee_id: Optional[str],
        actor: Member,
    ) -> Ticket:
        """
        Set or clear the assignee. Nothing else on the ticket changes.

        Raises:
            PermissionDeniedError: Actor lacks ``ticket:assign``
            ValidationError: Assignee is not a member of the organization
        """
        check_permission(actor.role, "ticket", "assign")
        ticket = await self.get_ticket(db, organization_id, ticket_id)

        if assignee_id is not None:
            await self._require_assignee(db, organization_id, assignee_id)
        ticket.assignee_id = assignee_id
        await db.commit()

        logger.info(f"Ticket {ticket.id} assigned to {assignee_id or 'nobody'} by member {actor.id}")
        revalidate_ticket_cache(organization_id, ticket.id)

        # Drop the stale relationship so the re-read loads the new assignee
        db.expire(ticket, ["assignee"])
        return await self.get_ticket(db, organization_id, ticket.id)

    async def change_ticket_status(
        self,
        db: AsyncSession,
        organization_id: str,
        ticket_id: str,
        status: TicketStatus,
        actor: Member,
    ) -> Ticket:
        check_permission(actor.role, "ticket", "update")
        ticket = await self.get_ticket(db, organization_id, ticket_id)
        previous = ticket.status
        self._apply_status(ticket, status)
        await db.commit()

        logger.info(f"Ticket {ticket.id} status {previous.value} -> {ticket.status.value}")
        revalidate_ticket_cache(organization_id, ticket.id)
        return await self.get_ticket(db, organization_id, ticket.id)

    async def delete_ticket(self, db: AsyncSession, organization_id: str, ticket_id: str, actor: Member) -> None:
        check_permission(actor.role, "ticket", "delete")
        ticket = await self.get_ticket(db, organization_id, ticket_id)
        await db.delete(ticket)
        await db.commit()

        logger.info(f"Ticket {ticket_id} deleted by member {actor.id}")
        revalidate_ticket_cache(organization_id, ticket_id)

    async def get_ticket_stats(self, db: AsyncSession, organization_id: str) -> TicketStats:
        """
        Open, in progress, resolved today and urgent (open or in progress)
        counts, in one aggregate query.
        """
        start_of_day = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)

        def count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        result = await db.execute(
            select(
                count_where(Ticket.status == TicketStatus.OPEN),
                count_where(Ticket.status == TicketStatus.IN_PROGRESS),
                count_where(
                    (Ticket.status == TicketStatus.RESOLVED) & (Ticket.resolved_at >= start_of_day)
                ),
                count_where(
                    (Ticket.priority == TicketPriority.URGENT)
                    & Ticket.status.in_([TicketStatus.OPEN, TicketStatus.IN_PROGRESS])
                ),
                func.count(Ticket.id),
            ).where(Ticket.organization_id == organization_id)
        )
        open_count, in_progress, resolved_today, urgent, total = result.one()
        return TicketStats(
            open=int(open_count),
            in_progress=int(in_progress),
            resolved_today=int(resolved_today),
            urgent=int(urgent),
            total=int(total),
        )

    async def get_recent_tickets(self, db: AsyncSession, organization_id: str, limit: int = 5) -> List[RecentTicket]:
        tickets, _ = await self.list_tickets(db, organization_id, limit=limit)
        return [
            RecentTicket(
                id=ticket.id,
                title=ticket.title,
                status=ticket.status,
                priority=ticket.priority,
                type=ticket.type,
                customer=ticket.requester.name if ticket.requester else "Unknown",
                assignee_id=ticket.assignee_id,
                created_at=ticket.created_at,
                tags=ticket.tag_list,
            )
            for ticket in tickets
        ]

    async def add_comment(
        self,
        db: AsyncSession,
        organization_id: str,
        ticket_id: str,
        actor: Member,
        content: str,
        is_internal: bool = False,
    ) -> TicketComment:
        check_permission(actor.role, "ticket", "comment")
        ticket = await self.get_ticket(db, organization_id, ticket_id)

        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty", errors={"content": ["Comment cannot be empty"]})

        comment = TicketComment(ticket_id=ticket.id, author_id=actor.user_id, content=content, is_internal=is_internal)
        db.add(comment)
        await db.commit()

        revalidate_ticket_cache(organization_id, ticket.id)
        result = await db.execute(
            select(TicketComment).options(selectinload(TicketComment.author)).where(TicketComment.id == comment.id)
        )
        return result.scalar_one()

    async def list_comments(
        self, db: AsyncSession, organization_id: str, ticket_id: str, actor: Member
    ) -> List[TicketComment]:
        """Comments oldest first; internal notes are hidden from guests"""
        check_permission(actor.role, "ticket", "read")
        await self.get_ticket(db, organization_id, ticket_id)

        query = (
            select(TicketComment)
            .options(selectinload(TicketComment.author))
            .where(TicketComment.ticket_id == ticket_id)
            .order_by(TicketComment.created_at.asc(), TicketComment.id)
        )
        if actor.role == MemberRole.GUEST:
            query = query.where(TicketComment.is_internal.is_(False))
        result = await db.execute(query)
        return list(result.scalars().all())

    async def add_attachment(
        self,
        db: AsyncSession,
        organization_id: str,
        ticket_id: str,
        actor: Member,
        data: AttachmentCreate,
    ) -> TicketAttachment:
        """Record metadata for a file stored elsewhere"""
        check_permission(actor.role, "ticket", "update")
        ticket = await self.get_ticket(db, organization_id, ticket_id)

        if data.comment_id:
            comment = await db.get(TicketComment, data.comment_id)
            if not comment or comment.ticket_id != ticket.id:
                raise NotFoundError("Comment not found")

        attachment = TicketAttachment(
            ticket_id=ticket.id,
            comment_id=data.comment_id,
            filename=data.filename,
            url=data.url,
            size=data.size,
            content_type=data.content_type,
            uploaded_by=actor.user_id,
        )
        db.add(attachment)
        await db.commit()

        revalidate_ticket_cache(organization_id, ticket.id)
        return attachment

    async def list_attachments(self, db: AsyncSession, organization_id: str, ticket_id: str) -> List[TicketAttachment]:
        await self.get_ticket(db, organization_id, ticket_id)
        result = await db.execute(
            select(TicketAttachment)
            .where(TicketAttachment.ticket_id == ticket_id)
            .order_by(TicketAttachment.uploaded_at.asc(), TicketAttachment.id)
        )
        return list(result.scalars().all())


# Global ticket service instance
ticket_service = TicketService()
