import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from suprss.api.dependencies import get_poller
from suprss.api.validation import (
    FavoriteParam,
    FeedIdParam,
    LimitParam,
    SearchParam,
    SkipParam,
    TagParam,
    UnreadParam,
)
from suprss.core.auth import get_current_user
from suprss.core.database import get_db
from suprss.models.collection import CollectionMembership, Role
from suprss.models.user import User
from suprss.schemas.article import Article as ArticleSchema
from suprss.schemas.collection import (
    Collection as CollectionSchema,
    CollectionCreate,
    Member as MemberSchema,
    MemberCreate,
    MemberRoleUpdate,
)
from suprss.schemas.discussion import (
    Comment as CommentSchema,
    CommentCreate,
    Message as MessageSchema,
    MessageCreate,
)
from suprss.schemas.feed import Feed as FeedSchema, FeedCreate, FeedUpdate
from suprss.services.collections import CollectionService
from suprss.services.discussion import DiscussionService
from suprss.services.scheduler import FeedPollScheduler
from suprss.services.subscriptions import ArticleFilter, ArticleQuery

router = APIRouter()
logger = logging.getLogger(__name__)


def _collection_out(collection, role) -> dict:
    return {
        "id": collection.id,
        "name": collection.name,
        "is_shared": collection.is_shared,
        "owner_id": collection.owner_id,
        "created_at": collection.created_at,
        "role": role.value,
    }


def _member_out(membership: CollectionMembership) -> dict:
    return {
        "user_id": membership.user_id,
        "email": membership.user.email,
        "name": membership.user.name,
        "role": membership.role_enum.value,
        "joined_at": membership.joined_at,
    }


# Collections


@router.get("/", response_model=List[CollectionSchema])
def list_collections(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Collections the current user belongs to, with their role in each."""
    service = CollectionService(db)
    return [
        _collection_out(collection, role)
        for collection, role in service.list_collections(current_user.id)
    ]


@router.post("/", response_model=CollectionSchema, status_code=status.HTTP_201_CREATED)
def create_collection(
    payload: CollectionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service = CollectionService(db)
    collection = service.create_collection(current_user.id, payload.name)
    return _collection_out(collection, Role.OWNER)


@router.get("/{collection_id}", response_model=CollectionSchema)
def get_collection(
    collection_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    collection, role = CollectionService(db).get_collection(current_user.id, collection_id)
    return _collection_out(collection, role)


@router.delete("/{collection_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_collection(
    collection_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Delete a collection. Owner only; subscribed feeds are kept."""
    CollectionService(db).delete_collection(current_user.id, collection_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Members


@router.get("/{collection_id}/members", response_model=List[MemberSchema])
def list_members(
    collection_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    memberships = CollectionService(db).list_members(current_user.id, collection_id)
    return [_member_out(m) for m in memberships]


@router.post(
    "/{collection_id}/members",
    response_model=MemberSchema,
    status_code=status.HTTP_201_CREATED,
)
def add_member(
    collection_id: int,
    payload: MemberCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    membership = CollectionService(db).add_member(
        current_user.id,
        collection_id,
        email=payload.email,
        target_user_id=payload.user_id,
        role=payload.role,
    )
    return _member_out(membership)


@router.put("/{collection_id}/members/{user_id}", response_model=MemberSchema)
def change_member_role(
    collection_id: int,
    user_id: int,
    payload: MemberRoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    membership = CollectionService(db).change_role(
        current_user.id, collection_id, user_id, payload.role
    )
    return _member_out(membership)


@router.delete(
    "/{collection_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT
)
def remove_member(
    collection_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    CollectionService(db).remove_member(current_user.id, collection_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Feeds


@router.get("/{collection_id}/feeds", response_model=List[FeedSchema])
def list_feeds(
    collection_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return CollectionService(db).list_feeds(current_user.id, collection_id)


@router.post(
    "/{collection_id}/feeds",
    response_model=FeedSchema,
    status_code=status.HTTP_201_CREATED,
)
async def add_feed(
    collection_id: int,
    payload: FeedCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    poller: FeedPollScheduler = Depends(get_poller),
):
    """Subscribe the collection to a feed URL, creating the feed on first use."""
    service = CollectionService(db, client=poller.client)
    return await service.add_feed(
        current_user.id,
        collection_id,
        payload.url,
        tags=payload.tags,
        categories=payload.categories,
    )


@router.put("/{collection_id}/feeds/{feed_id}", response_model=FeedSchema)
def update_feed(
    collection_id: int,
    feed_id: int,
    payload: FeedUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Edit feed metadata, or pause/resume polling with ``status``."""
    return CollectionService(db).update_feed(
        current_user.id, collection_id, feed_id, **payload.model_dump(exclude_unset=True)
    )


@router.delete(
    "/{collection_id}/feeds/{feed_id}", status_code=status.HTTP_204_NO_CONTENT
)
def remove_feed(
    collection_id: int,
    feed_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    CollectionService(db).remove_feed(current_user.id, collection_id, feed_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{collection_id}/refresh")
async def refresh_collection(
    collection_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    poller: FeedPollScheduler = Depends(get_poller),
):
    """Poll every active feed of the collection now.

    Feeds already being polled are left to their running task.
    """
    feeds = CollectionService(db).feeds_to_refresh(current_user.id, collection_id)
    targets = [(feed.id, feed.url) for feed in feeds]

    results = await asyncio.gather(
        *(poller.poll_feed(feed_id, url) for feed_id, url in targets)
    )
    completed = [r for r in results if r is not None]

    return {
        "message": f"Refreshed {len(completed)} of {len(targets)} feeds",
        "feeds": len(targets),
        "refreshed": len(completed),
        "new_articles": sum(r.inserted for r in completed),
    }


# Articles


@router.get("/{collection_id}/articles", response_model=List[ArticleSchema])
def list_articles(
    collection_id: int,
    feed_id: Optional[int] = FeedIdParam,
    tag: Optional[str] = TagParam,
    unread: Optional[bool] = UnreadParam,
    favorite: Optional[bool] = FavoriteParam,
    search: Optional[str] = SearchParam,
    skip: int = SkipParam,
    limit: int = LimitParam,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Articles from the collection's feeds, newest first, with the caller's read/favorite flags."""
    query = ArticleQuery(db)
    filters = ArticleFilter(
        feed_id=feed_id, tag=tag, unread=unread, favorite=favorite, search=search
    )
    articles = query.list_articles(current_user.id, collection_id, filters, skip, limit)
    return query.annotate(current_user.id, articles)


@router.post(
    "/{collection_id}/articles/{article_id}/comments",
    response_model=CommentSchema,
    status_code=status.HTTP_201_CREATED,
)
def add_comment(
    collection_id: int,
    article_id: int,
    payload: CommentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return DiscussionService(db).add_comment(
        current_user.id, collection_id, article_id, payload.content
    )


# Messages


@router.get("/{collection_id}/messages", response_model=List[MessageSchema])
def list_messages(
    collection_id: int,
    skip: int = SkipParam,
    limit: int = LimitParam,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return DiscussionService(db).list_messages(current_user.id, collection_id, skip, limit)


@router.post(
    "/{collection_id}/messages",
    response_model=MessageSchema,
    status_code=status.HTTP_201_CREATED,
)
def post_message(
    collection_id: int,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return DiscussionService(db).post_message(current_user.id, collection_id, payload.content)
