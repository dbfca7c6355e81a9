from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from typing import List
from suprss.core.database import get_db
from suprss.core.auth import get_current_user
from suprss.models.user import User
from suprss.schemas.feed import Feed as FeedSchema, FeedLabels
from suprss.schemas.feed_io import FeedImportRequest, FeedImportResult
from suprss.services.collections import CollectionService
from suprss.services.feed_io import CONTENT_TYPES, FeedTransferService, normalize_format
from suprss.api.dependencies import get_poller
from suprss.api.validation import FormatParam
from suprss.services.scheduler import FeedPollScheduler

router = APIRouter()


@router.get("/", response_model=List[FeedSchema])
def reachable_feeds(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Every feed the current user can reach through any collection."""
    return CollectionService(db).reachable_feeds(current_user.id)


@router.get("/tags", response_model=FeedLabels)
def reachable_labels(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Tags and categories used by the feeds the current user can reach."""
    return CollectionService(db).reachable_labels(current_user.id)


@router.post("/import", response_model=FeedImportResult)
async def import_feeds(
    payload: FeedImportRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    poller: FeedPollScheduler = Depends(get_poller),
):
    """Import feeds from an OPML, JSON or CSV document.

    Without ``collection_id`` the feeds go to the caller's personal
    collection. URLs that fail are reported in ``failed``; the others stay
    imported.
    """
    collections = CollectionService(db, client=poller.client)
    outcome = await FeedTransferService(db, collections=collections).import_feeds(
        current_user.id,
        payload.document,
        payload.format,
        payload.collection_id,
    )
    return FeedImportResult(
        collection_id=outcome.collection_id,
        discovered=outcome.discovered,
        added=outcome.added,
        failed=outcome.failed,
    )


@router.get("/export")
def export_feeds(
    format: str = FormatParam,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    name = normalize_format(format)
    content = FeedTransferService(db).export_feeds(current_user.id, name)
    return Response(
        content=content,
        media_type=CONTENT_TYPES[name],
        headers={"Content-Disposition": f'attachment; filename="suprss-feeds.{name}"'},
    )
