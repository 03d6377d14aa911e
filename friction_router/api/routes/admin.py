"""
Admin Routes - anonymized usage views.

Only the configured administrator may call these. Counts of distinct
users are reported as buckets, never exact values.
"""
from fastapi import APIRouter, Depends, Query

from friction_router.api.deps import get_analytics_reader, require_admin
from friction_router.models.auxiliary import StatsResponse, UserListResponse
from friction_router.models.chat import ErrorResponse
from friction_router.services.analytics import AnalyticsReader

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
    responses={403: {"model": ErrorResponse, "description": "Not an administrator"}},
)


@router.get("/stats", response_model=StatsResponse, summary="Daily usage aggregates")
def usage_stats(
    days: int = Query(default=7, ge=1, le=30),
    reader: AnalyticsReader = Depends(get_analytics_reader),
) -> StatsResponse:
    return StatsResponse(days=reader.daily_stats(days))


@router.get("/users", response_model=UserListResponse, summary="Anonymized user activity")
def user_activity(
    limit: int = Query(default=100, ge=1, le=500),
    reader: AnalyticsReader = Depends(get_analytics_reader),
) -> UserListResponse:
    users, approximate_total = reader.user_list(limit)
    return UserListResponse(users=users, approximateTotal=approximate_total)
