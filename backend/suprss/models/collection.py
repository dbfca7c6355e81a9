import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from suprss.core.database import Base
from suprss.core.timeutil import utcnow


class Role(str, enum.Enum):
    """Membership roles, ordered READER < EDITOR < OWNER."""

    READER = "READER"
    EDITOR = "EDITOR"
    OWNER = "OWNER"

    @property
    def rank(self) -> int:
        return _ROLE_RANKS[self]

    def satisfies(self, required: "Role") -> bool:
        return self.rank >= required.rank

    @classmethod
    def parse(cls, value) -> "Role":
        """Accept role names case-insensitively; MEMBER is the legacy name of EDITOR."""
        if isinstance(value, Role):
            return value
        name = str(value).strip().upper()
        if name == "MEMBER":
            return cls.EDITOR
        return cls(name)


_ROLE_RANKS = {Role.READER: 1, Role.EDITOR: 2, Role.OWNER: 3}


class Collection(Base):
    __tablename__ = "collections"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    is_shared = Column(Boolean, default=False, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    owner = relationship("User")
    memberships = relationship(
        "CollectionMembership",
        back_populates="collection",
        cascade="all, delete-orphan",
    )
    feed_links = relationship(
        "CollectionFeed", back_populates="collection", cascade="all, delete-orphan"
    )


class CollectionFeed(Base):
    """Subscription of a collection to a feed."""

    __tablename__ = "collection_feeds"

    collection_id = Column(
        Integer,
        ForeignKey("collections.id", ondelete="CASCADE"),
        primary_key=True,
    )
    feed_id = Column(
        Integer, ForeignKey("feeds.id"), primary_key=True, index=True
    )
    added_at = Column(DateTime, default=utcnow)

    collection = relationship("Collection", back_populates="feed_links")
    feed = relationship("Feed", back_populates="collection_links")


class CollectionMembership(Base):
    __tablename__ = "collection_memberships"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    collection_id = Column(
        Integer,
        ForeignKey("collections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(String, nullable=False, default=Role.READER.value)
    joined_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="memberships")
    collection = relationship("Collection", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("user_id", "collection_id", name="uq_membership_user_collection"),
    )

    @property
    def role_enum(self) -> Role:
        return Role.parse(self.role)
