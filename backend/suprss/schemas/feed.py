from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List


def clean_labels(values: Optional[List[str]]) -> Optional[List[str]]:
    """Strip tag/category names, dropping blanks and repeats."""
    if values is None:
        return None
    cleaned = []
    for value in values:
        value = value.strip()
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned


class FeedCreate(BaseModel):
    url: str = Field(min_length=1, max_length=2048)
    tags: Optional[List[str]] = None
    categories: Optional[List[str]] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("Feed URL must use http or https")
        return v

    @field_validator("tags", "categories")
    @classmethod
    def validate_labels(cls, v):
        return clean_labels(v)


class FeedUpdate(BaseModel):
    title: Optional[str] = None
    tags: Optional[List[str]] = None
    categories: Optional[List[str]] = None
    status: Optional[str] = Field(None, pattern="^(active|paused)$")
    update_interval: Optional[int] = Field(None, ge=1, le=10080)

    @field_validator("tags", "categories")
    @classmethod
    def validate_labels(cls, v):
        return clean_labels(v)


class Feed(BaseModel):
    id: int
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = []
    categories: List[str] = []
    status: str
    update_interval: int
    last_fetched: Optional[datetime] = None

    class Config:
        from_attributes = True


class FeedLabels(BaseModel):
    tags: List[str] = []
    categories: List[str] = []
