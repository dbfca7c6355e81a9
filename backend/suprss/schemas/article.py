from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class Article(BaseModel):
    id: int
    feed_id: int
    feed_title: Optional[str] = None
    title: str
    link: str
    author: Optional[str] = None
    content: Optional[str] = None
    published_date: datetime

    # Per-caller state, False when no state row exists
    is_read: bool = False
    is_favorite: bool = False

    class Config:
        from_attributes = True


class ArticleStateUpdate(BaseModel):
    value: bool


class ArticleStateOut(BaseModel):
    article_id: int
    is_read: bool
    is_favorite: bool
