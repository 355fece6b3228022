from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import List
import asyncio
import logging

from goaltracker.db.data_client import DataClient, DataClientError
from goaltracker.db.mongo import get_database
from goaltracker.schemas.community_schema import (
    Comment,
    CommentCreate,
    Community,
    CommunityCreate,
    Post,
    PostCreate,
)
from goaltracker.services.community_service import CommunityService
from goaltracker.services.feed_service import CommunityFeed, FeedHub, feed_hub
from goaltracker.utils.auth import get_current_user_id

router = APIRouter()
logger = logging.getLogger(__name__)


def get_feed_hub() -> FeedHub:
    return feed_hub


def get_community_service(
    user_id: str = Depends(get_current_user_id),
    db: AsyncIOMotorDatabase = Depends(get_database),
    hub: FeedHub = Depends(get_feed_hub),
) -> CommunityService:
    return CommunityService(DataClient(db), user_id, hub)


@router.get("/", response_model=List[Community])
async def list_communities(service: CommunityService = Depends(get_community_service)):
    try:
        return await service.list_communities()
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/", response_model=Community)
async def create_community(
    data: CommunityCreate, service: CommunityService = Depends(get_community_service)
):
    try:
        return await service.create_community(data)
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{community_id}", response_model=Community)
async def get_community(community_id: str, service: CommunityService = Depends(get_community_service)):
    try:
        return await service.get_community(community_id)
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{community_id}/membership")
async def membership(community_id: str, service: CommunityService = Depends(get_community_service)):
    try:
        return {"member": await service.is_member(community_id)}
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{community_id}/join", response_model=Community)
async def join_community(community_id: str, service: CommunityService = Depends(get_community_service)):
    try:
        return await service.join(community_id)
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{community_id}/leave", response_model=Community)
async def leave_community(community_id: str, service: CommunityService = Depends(get_community_service)):
    try:
        return await service.leave(community_id)
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{community_id}/posts", response_model=List[Post])
async def list_posts(community_id: str, service: CommunityService = Depends(get_community_service)):
    try:
        return await service.list_posts(community_id)
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{community_id}/posts", response_model=Post)
async def create_post(
    community_id: str, data: PostCreate, service: CommunityService = Depends(get_community_service)
):
    try:
        return await service.create_post(community_id, data)
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/posts/{post_id}")
async def delete_post(post_id: str, service: CommunityService = Depends(get_community_service)):
    try:
        await service.delete_post(post_id)
        return {"message": "Post deleted"}
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/posts/{post_id}/like", response_model=Post)
async def like_post(post_id: str, service: CommunityService = Depends(get_community_service)):
    try:
        return await service.like_post(post_id)
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/posts/{post_id}/like", response_model=Post)
async def unlike_post(post_id: str, service: CommunityService = Depends(get_community_service)):
    try:
        return await service.unlike_post(post_id)
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/posts/{post_id}/comments", response_model=List[Comment])
async def list_comments(post_id: str, service: CommunityService = Depends(get_community_service)):
    try:
        return await service.list_comments(post_id)
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/posts/{post_id}/comments", response_model=Comment)
async def add_comment(
    post_id: str, data: CommentCreate, service: CommunityService = Depends(get_community_service)
):
    try:
        return await service.add_comment(post_id, data)
    except DataClientError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.websocket("/{community_id}/feed")
async def community_feed(
    websocket: WebSocket,
    community_id: str,
    db: AsyncIOMotorDatabase = Depends(get_database),
    hub: FeedHub = Depends(get_feed_hub),
):
    """Push post insert events for one community until the client disconnects."""
    await websocket.accept()
    service = CommunityService(DataClient(db), user_id=None, hub=hub)
    # subscribe before loading so nothing inserted in between is missed
    queue = hub.subscribe(community_id)
    try:
        feed = CommunityFeed(await service.list_posts(community_id))
    except (HTTPException, DataClientError) as e:
        hub.unsubscribe(community_id, queue)
        logger.error(f"[Feed] Could not open feed for {community_id}: {e}")
        message = "Community not found" if isinstance(e, HTTPException) else "Feed unavailable"
        await websocket.send_json({"type": "ERROR", "message": message})
        await websocket.close(code=1008)
        return

    async def forward():
        while True:
            event = await queue.get()
            if feed.apply_event(event):
                await websocket.send_json(event.model_dump(mode="json"))

    def sender_done(task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[Feed] Sending to a {community_id} subscriber failed: {error!r}")

    sender = None
    try:
        await websocket.send_json(
            {
                "type": "SUBSCRIBED",
                "community_id": community_id,
                "posts": [p.model_dump(mode="json") for p in feed.posts],
            }
        )
        sender = asyncio.create_task(forward())
        sender.add_done_callback(sender_done)
        # inbound messages are ignored; receiving is how a disconnect is noticed
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        if sender is not None:
            sender.cancel()
        hub.unsubscribe(community_id, queue)
