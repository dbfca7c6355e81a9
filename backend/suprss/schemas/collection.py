from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Optional


class CollectionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)


class Collection(BaseModel):
    id: int
    name: str
    is_shared: bool
    owner_id: Optional[int] = None
    created_at: datetime
    role: Optional[str] = None  # caller's role

    class Config:
        from_attributes = True


class MemberCreate(BaseModel):
    email: Optional[str] = None
    user_id: Optional[int] = None
    role: str = "EDITOR"

    @model_validator(mode="after")
    def require_target(self):
        if not self.email and self.user_id is None:
            raise ValueError("Either email or user_id is required")
        return self


class MemberRoleUpdate(BaseModel):
    role: str


class Member(BaseModel):
    user_id: int
    email: str
    name: Optional[str] = None
    role: str
    joined_at: Optional[datetime] = None
