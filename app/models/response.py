from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ErrorBody(BaseModel):
    """Shared error response shape"""
    error: str
    message: str
    reason: Optional[str] = None
    details: Optional[str] = None


class TikTokVideoInfo(BaseModel):
    """TikTok metadata response"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    video_id: str
    description: str
    thumbnail: Optional[str] = None
    duration: int = 0
    author: str
    like_count: int
    share_count: int
    comment_count: int
    upload_date: str
    video_url: str
