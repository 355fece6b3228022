from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from svix.webhooks import Webhook, WebhookVerificationError
from dotenv import load_dotenv
import json
import logging
import os

from goaltracker.db.data_client import DataClient, DataClientError
from goaltracker.db.mongo import get_database
from goaltracker.schemas.profile_schema import IdentityUserData
from goaltracker.services.profile_service import ProfileService

load_dotenv()
router = APIRouter()
logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")
PROFILE_EVENTS = ("user.created", "user.updated")


@router.post("/identity")
async def identity_webhook(request: Request, db: AsyncIOMotorDatabase = Depends(get_database)):
    headers = {name: request.headers.get(name) for name in SIGNATURE_HEADERS}
    if not all(headers.values()):
        return JSONResponse(status_code=400, content={"error": "Missing svix headers"})

    secret = os.getenv("WEBHOOK_SECRET")
    if not secret:
        logger.error("[Webhook] WEBHOOK_SECRET is not configured")
        return JSONResponse(status_code=500, content={"error": "Webhook secret not configured"})

    body = await request.body()
    try:
        Webhook(secret).verify(body, headers)
    except WebhookVerificationError as e:
        logger.error(f"[Webhook] Error verifying webhook: {e}")
        return JSONResponse(status_code=400, content={"error": "Error verifying webhook"})

    # verify only checks the signature, the event is the signed body
    try:
        event = json.loads(body)
    except ValueError as e:
        logger.error(f"[Webhook] Webhook body is not JSON: {e}")
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})
    if not isinstance(event, dict):
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})

    event_type = event.get("type")
    if event_type in PROFILE_EVENTS:
        try:
            data = IdentityUserData.model_validate(event.get("data") or {})
        except ValidationError as e:
            logger.error(f"[Webhook] Malformed {event_type} payload: {e}")
            return JSONResponse(status_code=400, content={"error": "Invalid user payload"})
        try:
            await ProfileService(DataClient(db)).upsert_from_identity(data)
        except DataClientError as e:
            logger.error(f"[Webhook] Error upserting profile: {e}")
            return JSONResponse(status_code=500, content={"error": "Database error"})
    else:
        logger.info(f"[Webhook] Ignoring event {event_type}")

    return {"message": "Success"}
