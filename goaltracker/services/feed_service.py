from collections import defaultdict
from typing import Dict, List, Optional, Set
import asyncio
import logging

from goaltracker.schemas.community_schema import FeedEvent, Post

logger = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 100


class FeedHub:
    """In-process fan-out of post insert events to the sockets watching a community."""

    def __init__(self):
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, community_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers[community_id].add(queue)
        return queue

    def unsubscribe(self, community_id: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(community_id)
        if not subscribers:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[community_id]

    def subscriber_count(self, community_id: str) -> int:
        return len(self._subscribers.get(community_id, ()))

    def publish(self, post: Post) -> int:
        event = FeedEvent(new=post)
        delivered = 0
        for queue in list(self._subscribers.get(post.community_id, ())):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"[Feed] Subscriber queue full for {post.community_id}, dropping event")
        return delivered


feed_hub = FeedHub()


class CommunityFeed:
    """The posts one socket has already delivered for a community.

    A socket starts from the stored posts and then follows insert events.
    An event for a post it already holds, matched on id or on the author's
    ``client_id``, replaces that copy and is not sent again.
    """

    def __init__(self, posts: Optional[List[Post]] = None):
        self.posts: List[Post] = list(posts or [])

    def _index_of(self, post: Post) -> Optional[int]:
        for i, existing in enumerate(self.posts):
            if existing.id == post.id:
                return i
            if (
                post.client_id
                and existing.client_id == post.client_id
                and existing.user_id == post.user_id
            ):
                return i
        return None

    def apply_event(self, event: FeedEvent) -> bool:
        """Merge an insert event; returns True when it added a new post."""
        index = self._index_of(event.new)
        if index is not None:
            self.posts[index] = event.new
            return False
        self.posts.insert(0, event.new)
        return True
