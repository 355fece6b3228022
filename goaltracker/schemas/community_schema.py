from pydantic import BaseModel
from typing import Literal, Optional
from datetime import datetime


class Community(BaseModel):
    id: str
    name: str
    description: str = ""
    color: str = ""
    member_count: int = 0
    post_count: int = 0


class CommunityCreate(BaseModel):
    name: str
    description: str = ""
    color: str = ""


class Post(BaseModel):
    id: str
    community_id: str
    user_id: str
    content: str
    image_url: Optional[str] = None
    author_name: str = "Anonymous"
    author_avatar: str = ""
    likes: int = 0
    comments: int = 0
    # idempotency key generated by the author's client
    client_id: Optional[str] = None
    created_at: datetime


class PostCreate(BaseModel):
    content: str
    image_url: Optional[str] = None
    client_id: Optional[str] = None


class Comment(BaseModel):
    id: str
    post_id: str
    user_id: str
    author_name: str = "Anonymous"
    content: str
    created_at: datetime


class CommentCreate(BaseModel):
    content: str


class FeedEvent(BaseModel):
    type: Literal["INSERT"] = "INSERT"
    table: Literal["posts"] = "posts"
    new: Post
