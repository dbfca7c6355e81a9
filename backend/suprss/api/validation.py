"""
Shared query parameters for API endpoints.
"""

from fastapi import Query

FeedIdParam = Query(None, ge=1, le=2147483647, description="Feed ID filter")
CollectionIdParam = Query(None, ge=1, le=2147483647, description="Collection ID")
TagParam = Query(None, min_length=1, max_length=100, description="Feed tag filter")
SearchParam = Query(
    None, max_length=200, description="Case-insensitive text in title or content"
)
UnreadParam = Query(None, description="true: unread only, false: read only")
FavoriteParam = Query(None, description="true: favorites only, false: non-favorites")
LimitParam = Query(100, ge=1, le=1000, description="Maximum items to return")
SkipParam = Query(0, ge=0, le=100000, description="Number of items to skip")
FormatParam = Query("opml", description="One of opml, json, csv")
