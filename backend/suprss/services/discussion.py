import logging
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from suprss.core.exceptions import NotAuthorized, NotFound
from suprss.models.collection import CollectionFeed, Role
from suprss.models.discussion import Comment, Message
from suprss.services.access import AccessGate

logger = logging.getLogger(__name__)


class DiscussionService:
    """Article comments and collection chat, both scoped to one collection."""

    def __init__(self, db: Session, gate: Optional[AccessGate] = None):
        self.db = db
        self.gate = gate or AccessGate(db)

    def add_comment(
        self, user_id: int, collection_id: int, article_id: int, content: str
    ) -> Comment:
        self.gate.authorize(user_id, collection_id, Role.READER)
        article = self.gate.authorize_article(user_id, article_id)

        linked = (
            self.db.query(CollectionFeed)
            .filter(
                CollectionFeed.collection_id == collection_id,
                CollectionFeed.feed_id == article.feed_id,
            )
            .first()
        )
        if linked is None:
            raise NotFound("Article is not part of this collection")

        comment = Comment(
            collection_id=collection_id,
            article_id=article_id,
            author_id=user_id,
            content=content,
        )
        self.db.add(comment)
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def list_comments(
        self, user_id: int, article_id: int, collection_id: Optional[int] = None
    ) -> List[Comment]:
        """Comments on an article from the collections the caller belongs to."""
        self.gate.authorize_article(user_id, article_id)

        if collection_id is not None:
            self.gate.authorize(user_id, collection_id, Role.READER)
            collection_ids = [collection_id]
        else:
            collection_ids = self.gate.collection_ids_for(user_id)
        if not collection_ids:
            return []

        return (
            self.db.query(Comment)
            .options(joinedload(Comment.author))
            .filter(
                Comment.article_id == article_id,
                Comment.collection_id.in_(collection_ids),
            )
            .order_by(Comment.created_at, Comment.id)
            .all()
        )

    def edit_comment(self, user_id: int, comment_id: int, content: str) -> Comment:
        comment = self._own_comment(user_id, comment_id)
        comment.content = content
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def delete_comment(self, user_id: int, comment_id: int):
        comment = self._own_comment(user_id, comment_id)
        self.db.delete(comment)
        self.db.commit()

    def post_message(self, user_id: int, collection_id: int, content: str) -> Message:
        self.gate.authorize(user_id, collection_id, Role.READER)
        message = Message(collection_id=collection_id, author_id=user_id, content=content)
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def list_messages(
        self, user_id: int, collection_id: int, skip: int = 0, limit: Optional[int] = None
    ) -> List[Message]:
        self.gate.authorize(user_id, collection_id, Role.READER)
        query = (
            self.db.query(Message)
            .options(joinedload(Message.author))
            .filter(Message.collection_id == collection_id)
            .order_by(Message.created_at, Message.id)
        )
        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def _own_comment(self, user_id: int, comment_id: int) -> Comment:
        comment = self.db.query(Comment).filter(Comment.id == comment_id).first()
        if comment is None:
            raise NotFound("Comment not found")
        # Author must still be a member
        self.gate.authorize(user_id, comment.collection_id, Role.READER)
        if comment.author_id != user_id:
            raise NotAuthorized("Only the author can modify this comment")
        return comment
