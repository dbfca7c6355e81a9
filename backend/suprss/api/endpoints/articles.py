from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
import logging
from suprss.core.database import get_db
from suprss.core.auth import get_current_user
from suprss.models.user import User
from suprss.schemas.article import (
    Article as ArticleSchema,
    ArticleStateOut,
    ArticleStateUpdate,
)
from suprss.schemas.discussion import Comment as CommentSchema
from suprss.services.article_state import ArticleStateTracker
from suprss.services.discussion import DiscussionService
from suprss.services.subscriptions import ArticleFilter, ArticleQuery
from suprss.api.validation import (
    CollectionIdParam,
    FavoriteParam,
    FeedIdParam,
    LimitParam,
    SearchParam,
    SkipParam,
    TagParam,
    UnreadParam,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", response_model=List[ArticleSchema])
def search_articles(
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
    """Search across every feed reachable through the user's collections.

    ``unread=true`` keeps articles never marked read, ``favorite=true`` keeps
    favorites, and ``search`` matches title or content case-insensitively.
    """
    query = ArticleQuery(db)
    filters = ArticleFilter(
        feed_id=feed_id, tag=tag, unread=unread, favorite=favorite, search=search
    )
    articles = query.search_articles(current_user.id, filters, skip, limit)
    return query.annotate(current_user.id, articles)


@router.get("/{article_id}", response_model=ArticleSchema)
def get_article(
    article_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = ArticleQuery(db)
    article = query.get_article(current_user.id, article_id)
    return query.annotate(current_user.id, [article])[0]


@router.put("/{article_id}/read", response_model=ArticleStateOut)
def set_article_read(
    article_id: int,
    payload: ArticleStateUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    state = ArticleStateTracker(db).set_read(current_user.id, article_id, payload.value)
    return ArticleStateOut(
        article_id=article_id, is_read=state.is_read, is_favorite=state.is_favorite
    )


@router.put("/{article_id}/favorite", response_model=ArticleStateOut)
def set_article_favorite(
    article_id: int,
    payload: ArticleStateUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    state = ArticleStateTracker(db).set_favorite(
        current_user.id, article_id, payload.value
    )
    return ArticleStateOut(
        article_id=article_id, is_read=state.is_read, is_favorite=state.is_favorite
    )


@router.get("/{article_id}/comments", response_model=List[CommentSchema])
def list_comments(
    article_id: int,
    collection_id: Optional[int] = CollectionIdParam,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Comments on the article from the caller's collections, oldest first."""
    return DiscussionService(db).list_comments(current_user.id, article_id, collection_id)
