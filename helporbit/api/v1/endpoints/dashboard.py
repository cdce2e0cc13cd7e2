"""
Dashboard API Endpoint
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from helporbit.db.session import get_db
from helporbit.models.member import Member
from helporbit.schemas.ticket import DashboardResponse
from helporbit.api.dependencies import get_current_member
from helporbit.services.dashboard_service import get_dashboard_data

router = APIRouter(prefix="/organizations/{organization_id}/dashboard", tags=["Dashboard"])


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    organization_id: str,
    recent: int = Query(5, ge=1, le=20, description="Number of recent tickets"),
    db: AsyncSession = Depends(get_db),
    member: Member = Depends(get_current_member)
):
    """
    Ticket statistics and the most recent tickets.
    """
    return await get_dashboard_data(db, organization_id, member, recent_limit=recent)
