from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from suprss.core.database import Base
from suprss.core.timeutil import utcnow


class Article(Base):
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, index=True)
    feed_id = Column(Integer, ForeignKey("feeds.id"), nullable=False, index=True)

    # Deduplication key derived by the normalizer (guid, external id or link)
    natural_key = Column(String, nullable=False)

    title = Column(String, nullable=False)
    link = Column(String, nullable=False)
    author = Column(String, default="")
    content = Column(Text, default="")
    published_date = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    feed = relationship("Feed", back_populates="articles")

    __table_args__ = (
        UniqueConstraint("feed_id", "natural_key", name="uq_articles_feed_natural_key"),
        Index("ix_articles_feed_published", "feed_id", "published_date"),
    )

    @property
    def feed_title(self):
        return self.feed.title if self.feed else None
