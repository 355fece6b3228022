from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import logging

from goaltracker.schemas.plan_schema import ChatRequest, ChatResponse, PlanRequest, PlanResponse
from goaltracker.services.plan_service import PlanGenerationError, PlanService

router = APIRouter()
logger = logging.getLogger(__name__)

plan_service = PlanService()


def get_plan_service() -> PlanService:
    return plan_service


@router.post("/generate-goal-plan", response_model=PlanResponse)
async def generate_goal_plan(
    request: PlanRequest, service: PlanService = Depends(get_plan_service)
):
    try:
        return await service.generate_plan(request)
    except PlanGenerationError as e:
        return JSONResponse(status_code=422, content={"error": str(e)})
    except Exception as e:
        logger.error(f"[Plan] Generation failed: {e}")
        return JSONResponse(status_code=500, content={"error": str(e) or "Failed to generate goal plan"})


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, service: PlanService = Depends(get_plan_service)):
    try:
        output = await service.chat_completion(request.prompt)
        return ChatResponse(output=output)
    except Exception as e:
        logger.error(f"[Plan] Chat completion failed: {e}")
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})
