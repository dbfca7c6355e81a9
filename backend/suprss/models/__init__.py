from .user import User
from .feed import Feed, FeedStatus
from .article import Article
from .collection import Collection, CollectionFeed, CollectionMembership, Role
from .article_state import ArticleState
from .discussion import Comment, Message

__all__ = [
    "User",
    "Feed",
    "FeedStatus",
    "Article",
    "Collection",
    "CollectionFeed",
    "CollectionMembership",
    "Role",
    "ArticleState",
    "Comment",
    "Message",
]
