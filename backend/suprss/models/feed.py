from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.orm import relationship
from suprss.core.database import Base
from suprss.core.timeutil import utcnow


class FeedStatus:
    ACTIVE = "active"
    PAUSED = "paused"

    ALL = (ACTIVE, PAUSED)


class Feed(Base):
    """A syndication source, shared by every collection that links it."""

    __tablename__ = "feeds"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(String, unique=True, nullable=False, index=True)
    title = Column(String)
    description = Column(String)
    tags = Column(JSON, default=list)  # list of strings
    categories = Column(JSON, default=list)
    status = Column(String, default=FeedStatus.ACTIVE, nullable=False, index=True)
    update_interval = Column(Integer, default=60, nullable=False)  # minutes
    last_fetched = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    articles = relationship("Article", back_populates="feed")
    collection_links = relationship("CollectionFeed", back_populates="feed")
