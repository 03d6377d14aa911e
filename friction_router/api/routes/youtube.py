"""
YouTube Routes - unauthenticated catalog proxy.

Responses are public data and carry Cache-Control headers so browsers
and the edge can reuse them.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from friction_router.api.deps import get_youtube_client
from friction_router.services.youtube_service import YouTubeClient

router = APIRouter(prefix="/api/youtube", tags=["YouTube"])

METADATA_CACHE = "public, max-age=1200"
CHANNEL_CACHE = "public, max-age=600"


@router.get("/metadata", summary="Video metadata for up to 50 ids")
def video_metadata(
    response: Response,
    ids: Optional[str] = Query(default=None, description="Comma-separated video ids"),
    client: YouTubeClient = Depends(get_youtube_client),
):
    result = client.video_metadata(ids)
    response.headers["Cache-Control"] = METADATA_CACHE
    return result


@router.get("/resolve-channel", summary="Resolve a channel id, URL, @handle or name")
def resolve_channel(
    response: Response,
    q: Optional[str] = Query(default=None),
    client: YouTubeClient = Depends(get_youtube_client),
):
    result = client.resolve_channel(q)
    response.headers["Cache-Control"] = CHANNEL_CACHE
    return result


@router.get("/channel-sample", summary="Recent uploads from a channel")
def channel_sample(
    response: Response,
    channelId: Optional[str] = Query(default=None),
    pool: Optional[str] = Query(default=None),
    client: YouTubeClient = Depends(get_youtube_client),
):
    result = client.channel_sample(channelId, pool)
    response.headers["Cache-Control"] = CHANNEL_CACHE
    return result
