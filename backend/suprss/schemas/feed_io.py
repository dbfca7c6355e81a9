from pydantic import BaseModel
from typing import Optional, List


class FeedImportRequest(BaseModel):
    document: str
    format: str = "opml"
    collection_id: Optional[int] = None


class FeedImportResult(BaseModel):
    collection_id: int
    discovered: int
    added: List[str] = []
    failed: List[str] = []
