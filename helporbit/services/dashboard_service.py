"""
Dashboard data for an organization
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from helporbit.core.permissions import check_permission
from helporbit.models.member import Member
from helporbit.schemas.ticket import DashboardResponse
from helporbit.services.ticket_service import TicketService, ticket_service

logger = logging.getLogger(__name__)


async def get_dashboard_data(
    db: AsyncSession,
    organization_id: str,
    actor: Member,
    recent_limit: int = 5,
    tickets: TicketService = ticket_service,
) -> DashboardResponse:
    """Ticket statistics plus the most recent tickets"""
    check_permission(actor.role, "dashboard", "read")

    stats = await tickets.get_ticket_stats(db, organization_id)
    recent = await tickets.get_recent_tickets(db, organization_id, limit=recent_limit)
    logger.debug(f"Dashboard for organization {organization_id}: {stats.total} tickets")

    return DashboardResponse(stats=stats, recent_tickets=recent)
