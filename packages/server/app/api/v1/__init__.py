"""
API v1 Router

All group-scoped endpoints are prefixed with /groups/{groupId}.
"""

from fastapi import APIRouter
from . import activity, queues, topics
from .groups import router_global as groups_global_router
from .groups import router_scoped as groups_scoped_router

router = APIRouter()

# Group routes (not group-scoped: list, create, accept invitation)
router.include_router(groups_global_router)

# Group routes (group-scoped: details, members, invitations)
router.include_router(groups_scoped_router, prefix="/groups/{groupId}", tags=["Groups"])

router.include_router(queues.router, prefix="/groups/{groupId}/queues", tags=["Queues"])
router.include_router(
    topics.router,
    prefix="/groups/{groupId}/queues/{queueId}/topics",
    tags=["Topics"],
)
router.include_router(activity.router, prefix="/groups/{groupId}/activity", tags=["Activity"])


@router.get("/", tags=["API"])
async def api_root():
    """API root - returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/groups",
            "/groups/{groupId}/queues",
            "/groups/{groupId}/queues/{queueId}/topics",
            "/groups/{groupId}/activity",
            "/invitations/{token}/accept",
        ],
    }
