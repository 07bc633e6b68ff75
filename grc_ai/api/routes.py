from fastapi import APIRouter, Request

from grc_ai.core.errors import request_id_from_request
from grc_ai.metrics import metrics_router
from grc_ai.models.dispatch import DispatchResponse, PromptRequest
from grc_ai.services.dispatch_service import DispatchService

LEGACY_DISPATCH_PATH = "/functions/v1/ai-chat-glm"
DISPATCH_PATH = "/v1/ai/chat"

router = APIRouter()
router.include_router(metrics_router)


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
def readyz(request: Request) -> dict[str, object]:
    service: DispatchService = request.app.state.dispatch_service
    dependencies = service.readiness()
    status = "ready" if all(value == "ok" for value in dependencies.values()) else "degraded"
    return {"status": status, "dependencies": dependencies}


@router.post(LEGACY_DISPATCH_PATH, response_model=DispatchResponse)
@router.post(DISPATCH_PATH, response_model=DispatchResponse)
async def dispatch_prompt(request: Request, payload: PromptRequest) -> DispatchResponse:
    service: DispatchService = request.app.state.dispatch_service
    return await service.handle(
        request_id=request_id_from_request(request),
        authorization=request.headers.get("authorization"),
        payload=payload,
    )
