import asyncio
import logging
from datetime import datetime

import pytest
from fastapi import HTTPException, WebSocketDisconnect

from goaltracker.schemas.community_schema import CommentCreate, CommunityCreate, FeedEvent, Post, PostCreate
from goaltracker.services.community_service import CommunityService
from goaltracker.routers import community_router
from goaltracker.services.feed_service import CommunityFeed, FeedHub


@pytest.fixture
def hub():
    return FeedHub()


@pytest.fixture
def make_community_service(client, hub):
    def factory(user_id="user-1"):
        return CommunityService(client, user_id, hub)

    return factory


async def new_community(service):
    return await service.create_community(CommunityCreate(name="Runners", description="Weekly runs"))


@pytest.mark.asyncio
async def test_join_and_leave_track_member_count(make_community_service):
    alice, bob = make_community_service("alice"), make_community_service("bob")
    community = await new_community(alice)

    await alice.join(community.id)
    await alice.join(community.id)
    joined = await bob.join(community.id)
    assert joined.member_count == 2

    left = await alice.leave(community.id)
    left = await alice.leave(community.id)
    assert left.member_count == 1
    assert not await alice.is_member(community.id)
    assert await bob.is_member(community.id)


@pytest.mark.asyncio
async def test_posting_requires_membership(make_community_service):
    service = make_community_service()
    community = await new_community(service)
    with pytest.raises(HTTPException) as exc:
        await service.create_post(community.id, PostCreate(content="Hi all"))
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_post_uses_profile_and_bumps_count(client, make_community_service):
    await client.insert(
        "profiles",
        {"id": "user-1", "full_name": "Ada Lovelace", "avatar_url": "a.png", "updated_at": datetime(2026, 10, 1)},
    )
    service = make_community_service()
    community = await new_community(service)
    await service.join(community.id)

    post = await service.create_post(community.id, PostCreate(content="  First run done  "))

    assert post.content == "First run done"
    assert post.author_name == "Ada Lovelace"
    assert (await service.get_community(community.id)).post_count == 1
    assert [p.id for p in await service.list_posts(community.id)] == [post.id]


@pytest.mark.asyncio
async def test_post_without_profile_is_anonymous(make_community_service):
    service = make_community_service()
    community = await new_community(service)
    await service.join(community.id)
    post = await service.create_post(community.id, PostCreate(content="Hello"))
    assert post.author_name == "Anonymous"


@pytest.mark.asyncio
async def test_repeated_client_id_returns_same_post(make_community_service):
    service = make_community_service()
    community = await new_community(service)
    await service.join(community.id)

    first = await service.create_post(community.id, PostCreate(content="Hello", client_id="c-1"))
    second = await service.create_post(community.id, PostCreate(content="Hello", client_id="c-1"))

    assert first.id == second.id
    assert (await service.get_community(community.id)).post_count == 1


@pytest.mark.asyncio
async def test_client_id_is_scoped_to_its_author(make_community_service):
    alice, bob = make_community_service("alice"), make_community_service("bob")
    community = await new_community(alice)
    await alice.join(community.id)
    await bob.join(community.id)

    mine = await alice.create_post(community.id, PostCreate(content="Hi", client_id="c-1"))
    theirs = await bob.create_post(community.id, PostCreate(content="Hey", client_id="c-1"))

    assert mine.id != theirs.id
    assert theirs.user_id == "bob"


@pytest.mark.asyncio
async def test_racing_repeat_of_client_id_returns_stored_post(db, client, make_community_service, monkeypatch):
    await db["posts"].create_index([("user_id", 1), ("client_id", 1)], unique=True)
    service = make_community_service()
    community = await new_community(service)
    await service.join(community.id)
    first = await service.create_post(community.id, PostCreate(content="Hello", client_id="c-1"))

    real_select_one = client.select_one
    missed = []

    async def lookup_before_commit(table, filters):
        # the repeat looks before the first insert is visible
        if table == "posts" and "client_id" in filters and not missed:
            missed.append(filters)
            return None
        return await real_select_one(table, filters)

    monkeypatch.setattr(client, "select_one", lookup_before_commit)
    second = await service.create_post(community.id, PostCreate(content="Hello", client_id="c-1"))

    assert missed
    assert second.id == first.id
    assert (await service.get_community(community.id)).post_count == 1


@pytest.mark.asyncio
async def test_racing_like_is_counted_once(db, client, make_community_service, monkeypatch):
    await db["post_likes"].create_index([("post_id", 1), ("user_id", 1)], unique=True)
    service = make_community_service()
    community = await new_community(service)
    await service.join(community.id)
    post = await service.create_post(community.id, PostCreate(content="Hello"))
    await service.like_post(post.id)

    real_select_one = client.select_one

    async def like_not_seen(table, filters):
        if table == "post_likes":
            return None
        return await real_select_one(table, filters)

    monkeypatch.setattr(client, "select_one", like_not_seen)

    assert (await service.like_post(post.id)).likes == 1


@pytest.mark.asyncio
async def test_like_counter_follows_join_table(make_community_service):
    service = make_community_service()
    community = await new_community(service)
    await service.join(community.id)
    post = await service.create_post(community.id, PostCreate(content="Hello"))

    assert (await service.like_post(post.id)).likes == 1
    assert (await service.like_post(post.id)).likes == 1
    assert (await service.unlike_post(post.id)).likes == 0
    assert (await service.unlike_post(post.id)).likes == 0


@pytest.mark.asyncio
async def test_comments_bump_counter(make_community_service):
    service = make_community_service()
    community = await new_community(service)
    await service.join(community.id)
    post = await service.create_post(community.id, PostCreate(content="Hello"))

    comment = await service.add_comment(post.id, CommentCreate(content="Nice!"))

    assert [c.id for c in await service.list_comments(post.id)] == [comment.id]
    assert (await service._require_post(post.id)).comments == 1


@pytest.mark.asyncio
async def test_new_post_is_published_to_subscribers(hub, make_community_service):
    service = make_community_service()
    community = await new_community(service)
    await service.join(community.id)
    queue = hub.subscribe(community.id)

    post = await service.create_post(community.id, PostCreate(content="Hello", client_id="c-9"))

    event = queue.get_nowait()
    assert event.type == "INSERT"
    assert event.new.id == post.id
    hub.unsubscribe(community.id, queue)
    assert hub.subscriber_count(community.id) == 0


@pytest.mark.asyncio
async def test_unknown_community_is_404(make_community_service):
    with pytest.raises(HTTPException) as exc:
        await make_community_service().get_community("nope")
    assert exc.value.status_code == 404


def make_post(post_id, client_id=None, content="Hello", user_id="user-1"):
    return Post(
        id=post_id,
        community_id="c1",
        user_id=user_id,
        content=content,
        client_id=client_id,
        created_at=datetime(2026, 10, 19, 8, 0),
    )


def test_feed_skips_event_for_post_it_already_holds():
    feed = CommunityFeed([make_post("p1", client_id="c-1"), make_post("old")])

    added = feed.apply_event(FeedEvent(new=make_post("p1", client_id="c-1", content="Edited")))

    assert added is False
    assert [p.id for p in feed.posts] == ["p1", "old"]
    assert feed.posts[0].content == "Edited"


def test_feed_matches_client_id_of_the_same_author():
    feed = CommunityFeed([make_post("first-try", client_id="c-1")])
    assert feed.apply_event(FeedEvent(new=make_post("retry", client_id="c-1"))) is False
    assert [p.id for p in feed.posts] == ["retry"]


def test_feed_adds_posts_from_other_users():
    feed = CommunityFeed([make_post("old", client_id="c-1")])
    assert feed.apply_event(FeedEvent(new=make_post("new", client_id="c-1", user_id="user-2")))
    assert [p.id for p in feed.posts] == ["new", "old"]


def test_feed_ignores_repeated_event():
    feed = CommunityFeed()
    feed.apply_event(FeedEvent(new=make_post("p1")))
    assert feed.apply_event(FeedEvent(new=make_post("p1"))) is False
    assert len(feed.posts) == 1


class FakeSocket:
    def __init__(self):
        self.sent = []
        self.closed_with = None
        self.fail_sends = False
        self.disconnect = asyncio.Event()

    async def accept(self):
        pass

    async def send_json(self, message):
        if self.fail_sends:
            raise RuntimeError("socket gone")
        self.sent.append(message)

    async def close(self, code=1000):
        self.closed_with = code

    async def receive_text(self):
        await self.disconnect.wait()
        raise WebSocketDisconnect()


async def until(condition):
    async def poll():
        while not condition():
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout=2)


@pytest.mark.asyncio
async def test_feed_socket_starts_from_stored_posts_and_skips_repeats(db, hub, make_community_service):
    service = make_community_service()
    community = await new_community(service)
    await service.join(community.id)
    before = await service.create_post(community.id, PostCreate(content="Before", client_id="c-1"))

    socket = FakeSocket()
    task = asyncio.create_task(community_router.community_feed(socket, community.id, db=db, hub=hub))
    await until(lambda: socket.sent)

    hub.publish(before)
    after = await service.create_post(community.id, PostCreate(content="After"))
    await until(lambda: len(socket.sent) == 2)
    socket.disconnect.set()
    await task

    assert socket.sent[0]["type"] == "SUBSCRIBED"
    assert [p["id"] for p in socket.sent[0]["posts"]] == [before.id]
    assert socket.sent[1]["new"]["id"] == after.id
    assert hub.subscriber_count(community.id) == 0


@pytest.mark.asyncio
async def test_feed_socket_for_missing_community_is_closed(db, hub):
    socket = FakeSocket()
    await community_router.community_feed(socket, "missing", db=db, hub=hub)
    assert socket.sent == [{"type": "ERROR", "message": "Community not found"}]
    assert socket.closed_with == 1008
    assert hub.subscriber_count("missing") == 0


@pytest.mark.asyncio
async def test_feed_socket_logs_failed_send(db, hub, make_community_service, caplog):
    service = make_community_service()
    community = await new_community(service)
    await service.join(community.id)

    socket = FakeSocket()
    task = asyncio.create_task(community_router.community_feed(socket, community.id, db=db, hub=hub))
    await until(lambda: socket.sent)

    socket.fail_sends = True
    with caplog.at_level(logging.ERROR):
        await service.create_post(community.id, PostCreate(content="Lost"))
        await until(lambda: "Sending to a" in caplog.text)
    socket.disconnect.set()
    await task
