from pydantic import BaseModel, Field
from datetime import datetime


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=10000)


class CommentUpdate(CommentCreate):
    pass


class Comment(BaseModel):
    id: int
    collection_id: int
    article_id: int
    author_id: int
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=10000)


class Message(BaseModel):
    id: int
    collection_id: int
    author_id: int
    content: str
    created_at: datetime

    class Config:
        from_attributes = True
