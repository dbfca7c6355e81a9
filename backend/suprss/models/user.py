from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from suprss.core.database import Base
from suprss.core.timeutil import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    memberships = relationship(
        "CollectionMembership", back_populates="user", cascade="all, delete-orphan"
    )
    article_states = relationship(
        "ArticleState", back_populates="user", cascade="all, delete-orphan"
    )
