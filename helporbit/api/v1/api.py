"""
API v1 router
"""
from fastapi import APIRouter

from helporbit.api.v1.endpoints import (
    auth,
    organizations,
    members,
    invitations,
    tickets,
    dashboard,
)

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(auth.router)
api_router.include_router(organizations.router)
api_router.include_router(members.router)
api_router.include_router(invitations.router)
api_router.include_router(tickets.router)
api_router.include_router(dashboard.router)


@api_router.get("/")
async def api_root():
    """API v1 root endpoint"""
    return {
        "message": "HelpOrbit API v1",
        "status": "active",
        "version": "1.0.0",
        "endpoints": {
            "auth": "/auth",
            "organizations": "/organizations",
            "members": "/organizations/{organization_id}/members",
            "invitations": "/organizations/{organization_id}/invitations, /invitations",
            "tickets": "/organizations/{organization_id}/tickets",
            "dashboard": "/organizations/{organization_id}/dashboard",
            "docs": "/docs",
            "health": "/health"
        }
    }
