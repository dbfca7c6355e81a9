from suprss.schemas.feed import Feed, FeedCreate, FeedUpdate
from suprss.schemas.article import Article, ArticleStateUpdate, ArticleStateOut
from suprss.schemas.collection import (
    Collection,
    CollectionCreate,
    Member,
    MemberCreate,
    MemberRoleUpdate,
)
from suprss.schemas.discussion import (
    Comment,
    CommentCreate,
    CommentUpdate,
    Message,
    MessageCreate,
)
from suprss.schemas.feed_io import FeedImportRequest, FeedImportResult

__all__ = [
    "Feed",
    "FeedCreate",
    "FeedUpdate",
    "Article",
    "ArticleStateUpdate",
    "ArticleStateOut",
    "Collection",
    "CollectionCreate",
    "Member",
    "MemberCreate",
    "MemberRoleUpdate",
    "Comment",
    "CommentCreate",
    "CommentUpdate",
    "Message",
    "MessageCreate",
    "FeedImportRequest",
    "FeedImportResult",
]
