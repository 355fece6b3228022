from fastapi import HTTPException
from typing import List, Optional
import logging

from goaltracker.db.data_client import DataClient, DuplicateRowError
from goaltracker.schemas.community_schema import (
    Comment,
    CommentCreate,
    Community,
    CommunityCreate,
    Post,
    PostCreate,
)
from goaltracker.services.feed_service import FeedHub, feed_hub
from goaltracker.services.profile_service import ANONYMOUS_NAME, ProfileService
from goaltracker.utils.util_func import get_current_time, new_id

logger = logging.getLogger(__name__)


class CommunityService:
    """Communities, membership, posts, likes and comments.

    Counters on ``communities`` and ``posts`` follow the join tables: every
    insert or delete in ``community_members``, ``posts``, ``post_likes`` and
    ``comments`` adjusts the matching counter, which never drops below zero.
    Without a ``user_id`` the service only serves reads, as the feed socket does.
    """

    def __init__(self, client: DataClient, user_id: Optional[str], hub: Optional[FeedHub] = None):
        self.client = client
        self.user_id = user_id
        self.hub = hub or feed_hub
        self.profiles = ProfileService(client)

    # Communities

    async def list_communities(self) -> List[Community]:
        rows = await self.client.select("communities", order_by="name")
        return [Community.model_validate(row) for row in rows]

    async def get_community(self, community_id: str) -> Community:
        row = await self.client.select_one("communities", {"id": community_id})
        if not row:
            raise HTTPException(status_code=404, detail="Community not found")
        return Community.model_validate(row)

    async def create_community(self, data: CommunityCreate) -> Community:
        row = await self.client.insert(
            "communities", {**data.model_dump(), "member_count": 0, "post_count": 0}
        )
        return Community.model_validate(row)

    # Membership

    def _membership(self, community_id: str) -> dict:
        return {"community_id": community_id, "user_id": self.user_id}

    async def is_member(self, community_id: str) -> bool:
        return await self.client.select_one("community_members", self._membership(community_id)) is not None

    async def join(self, community_id: str) -> Community:
        await self.get_community(community_id)
        if not await self.is_member(community_id):
            try:
                await self.client.insert(
                    "community_members",
                    {**self._membership(community_id), "joined_at": get_current_time()},
                )
            except DuplicateRowError:
                return await self.get_community(community_id)
            await self.client.increment("communities", {"id": community_id}, "member_count", 1)
            logger.info(f"[Community] {self.user_id} joined {community_id}")
        return await self.get_community(community_id)

    async def leave(self, community_id: str) -> Community:
        await self.get_community(community_id)
        removed = await self.client.delete("community_members", self._membership(community_id))
        if removed:
            await self.client.increment("communities", {"id": community_id}, "member_count", -1)
            logger.info(f"[Community] {self.user_id} left {community_id}")
        return await self.get_community(community_id)

    # Posts

    async def list_posts(self, community_id: str, limit: int = 50) -> List[Post]:
        await self.get_community(community_id)
        rows = await self.client.select(
            "posts",
            {"community_id": community_id},
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [Post.model_validate(row) for row in rows]

    async def _require_post(self, post_id: str) -> Post:
        row = await self.client.select_one("posts", {"id": post_id})
        if not row:
            raise HTTPException(status_code=404, detail="Post not found")
        return Post.model_validate(row)

    async def _post_by_client_id(self, client_id: str) -> Optional[Post]:
        row = await self.client.select_one("posts", {"user_id": self.user_id, "client_id": client_id})
        return Post.model_validate(row) if row else None

    async def create_post(self, community_id: str, data: PostCreate) -> Post:
        """Insert a post and publish it to the community feed.

        Repeating a request with the same ``client_id`` returns the post the
        author already stored, also when both requests race to insert it.
        """
        if not data.content.strip():
            raise HTTPException(status_code=422, detail="Post content is empty")
        await self.get_community(community_id)
        if not await self.is_member(community_id):
            raise HTTPException(status_code=403, detail="Join the community to post")
        if data.client_id:
            existing = await self._post_by_client_id(data.client_id)
            if existing:
                return existing

        profile = await self.profiles.get_profile(self.user_id)
        row = {
            "id": new_id(),
            "community_id": community_id,
            "user_id": self.user_id,
            "content": data.content.strip(),
            "image_url": data.image_url,
            "author_name": (profile.full_name if profile else "") or ANONYMOUS_NAME,
            "author_avatar": profile.avatar_url if profile else "",
            "likes": 0,
            "comments": 0,
            "created_at": get_current_time(),
        }
        if data.client_id:
            # absent rather than null so the partial unique index skips it
            row["client_id"] = data.client_id
        try:
            saved = await self.client.insert("posts", row)
        except DuplicateRowError:
            # a concurrent repeat of the same request stored it first
            existing = await self._post_by_client_id(data.client_id) if data.client_id else None
            if existing is None:
                raise
            return existing
        await self.client.increment("communities", {"id": community_id}, "post_count", 1)
        post = Post.model_validate(saved)
        self.hub.publish(post)
        return post

    async def delete_post(self, post_id: str) -> None:
        post = await self._require_post(post_id)
        if post.user_id != self.user_id:
            raise HTTPException(status_code=403, detail="Only the author can delete a post")
        await self.client.delete("post_likes", {"post_id": post_id})
        await self.client.delete("comments", {"post_id": post_id})
        await self.client.delete("posts", {"id": post_id})
        await self.client.increment("communities", {"id": post.community_id}, "post_count", -1)

    # Likes

    async def like_post(self, post_id: str) -> Post:
        await self._require_post(post_id)
        like = {"post_id": post_id, "user_id": self.user_id}
        if not await self.client.select_one("post_likes", like):
            try:
                await self.client.insert("post_likes", like)
            except DuplicateRowError:
                return await self._require_post(post_id)
            await self.client.increment("posts", {"id": post_id}, "likes", 1)
        return await self._require_post(post_id)

    async def unlike_post(self, post_id: str) -> Post:
        await self._require_post(post_id)
        removed = await self.client.delete("post_likes", {"post_id": post_id, "user_id": self.user_id})
        if removed:
            await self.client.increment("posts", {"id": post_id}, "likes", -1)
        return await self._require_post(post_id)

    # Comments

    async def list_comments(self, post_id: str) -> List[Comment]:
        await self._require_post(post_id)
        rows = await self.client.select("comments", {"post_id": post_id}, order_by="created_at")
        return [Comment.model_validate(row) for row in rows]

    async def add_comment(self, post_id: str, data: CommentCreate) -> Comment:
        if not data.content.strip():
            raise HTTPException(status_code=422, detail="Comment is empty")
        await self._require_post(post_id)
        profile = await self.profiles.get_profile(self.user_id)
        saved = await self.client.insert(
            "comments",
            {
                "post_id": post_id,
                "user_id": self.user_id,
                "author_name": (profile.full_name if profile else "") or ANONYMOUS_NAME,
                "content": data.content.strip(),
                "created_at": get_current_time(),
            },
        )
        await self.client.increment("posts", {"id": post_id}, "comments", 1)
        return Comment.model_validate(saved)
