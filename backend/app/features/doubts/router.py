"""
Doubts feature: API routes.

Static paths are declared before ``/{doubt_id}`` so they are not captured by it.
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.core.dependencies import (
    get_current_user,
    get_doubt_service,
    get_guest_quota,
    get_guest_service,
    require_faculty,
)
from app.core.rate_limit import GuestQuota
from app.core.security import CurrentUser
from app.features.doubts.guest import GuestDoubtService, limit_reached_answer
from app.features.doubts.schemas import (
    AnswerRequest,
    ApiKeyRequest,
    AskRequest,
    AskResponse,
    DoubtListResponse,
    DoubtResponse,
    FeedbackRequest,
    GuestAnswer,
    GuestAskRequest,
    MessageResponse,
)
from app.features.doubts.service import DoubtService

router = APIRouter()


@router.post("/ask", response_model=AskResponse)
async def ask_doubt(
    data: AskRequest,
    user: CurrentUser = Depends(get_current_user),
    service: DoubtService = Depends(get_doubt_service),
):
    """Ask a doubt: semantic memory first, the AI mentor on a miss."""
    return await service.ask(user, data)


@router.post("/guest", response_model=GuestAnswer)
async def ask_as_guest(
    data: GuestAskRequest,
    request: Request,
    quota: GuestQuota = Depends(get_guest_quota),
    service: GuestDoubtService = Depends(get_guest_service),
):
    """Rate-limited, non-persistent entry point for messaging relays."""
    if not data.query and not data.media_url:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": "Query or media is required"},
        )

    identifier = data.guest_id or (request.client.host if request.client else "unknown")
    if not quota.hit(identifier):
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "success": False,
                "answer": limit_reached_answer(service.login_url, quota.limit),
                "limitReached": True,
            },
        )

    return await service.resolve(data)


@router.post("/jobs/{job_id}/cancel", response_model=MessageResponse)
async def cancel_generation(
    job_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: DoubtService = Depends(get_doubt_service),
):
    """Stop an in-flight answer generation."""
    service.cancel_job(user, job_id)
    return MessageResponse(message="Generation cancelled")


@router.post("/config/api-key", response_model=MessageResponse)
async def save_api_key(
    data: ApiKeyRequest,
    user: CurrentUser = Depends(get_current_user),
    service: DoubtService = Depends(get_doubt_service),
):
    """Store the caller's own model key (encrypted at rest)."""
    await service.set_api_key(user, data.api_key)
    return MessageResponse(message="API key saved")


@router.get("/my-doubts", response_model=DoubtListResponse)
async def list_my_doubts(
    user: CurrentUser = Depends(get_current_user),
    service: DoubtService = Depends(get_doubt_service),
):
    doubts = await service.list_my_doubts(user)
    return DoubtListResponse(count=len(doubts), data=doubts)


@router.get("/escalated/{course_id}", response_model=DoubtListResponse)
async def list_escalated_doubts(
    course_id: str,
    user: CurrentUser = Depends(require_faculty),
    service: DoubtService = Depends(get_doubt_service),
):
    """Escalated doubts of a course, for its instructors."""
    doubts = await service.list_escalated(user, course_id)
    return DoubtListResponse(count=len(doubts), data=doubts)


@router.get("/{doubt_id}", response_model=DoubtResponse)
async def get_doubt(
    doubt_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: DoubtService = Depends(get_doubt_service),
):
    return DoubtResponse(data=await service.get_doubt(user, doubt_id))


@router.post("/{doubt_id}/escalate", response_model=DoubtResponse)
async def escalate_doubt(
    doubt_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: DoubtService = Depends(get_doubt_service),
):
    """Send the doubt to the course instructors."""
    doubt = await service.escalate(user, doubt_id)
    return DoubtResponse(message="Doubt escalated to faculty", data=doubt)


@router.post("/{doubt_id}/answer", response_model=DoubtResponse)
async def answer_doubt(
    doubt_id: str,
    data: AnswerRequest,
    user: CurrentUser = Depends(require_faculty),
    service: DoubtService = Depends(get_doubt_service),
):
    """Instructor answer; optionally saved as the verified memory entry."""
    doubt = await service.answer(user, doubt_id, data)
    return DoubtResponse(message="Doubt answered successfully", data=doubt)


@router.post("/{doubt_id}/feedback", response_model=DoubtResponse)
async def give_feedback(
    doubt_id: str,
    data: FeedbackRequest,
    user: CurrentUser = Depends(get_current_user),
    service: DoubtService = Depends(get_doubt_service),
):
    doubt = await service.feedback(user, doubt_id, data)
    return DoubtResponse(message="Feedback recorded", data=doubt)
