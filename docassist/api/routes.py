from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from ..core.errors import AgentNotFoundError, DocAssistError
from ..core.logging import get_logger
from ..dependencies import get_state_store, get_turn_orchestrator
from ..orchestration.enums import RunStatus
from ..orchestration.state import SessionKey
from ..orchestration.store import ConversationStateStore
from ..orchestration.turns import TurnOrchestrator
from ..schemas.turns import SessionStateResponse, TurnErrorResponse, TurnRequest, TurnResponse

logger = get_logger(name=__name__)

router = APIRouter()


def _error_response(status_code: int, *, error: str, message: str, retry_after: int | None = None) -> JSONResponse:
    body = TurnErrorResponse(error=error, message=message, retry_after=retry_after)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, exclude_none=True))


@router.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/turns", response_model=TurnResponse, response_model_by_alias=True, tags=["turns"])
async def execute_turn(
    request: TurnRequest,
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator),
) -> TurnResponse | JSONResponse:
    try:
        outcome = await orchestrator.execute_turn(request)
    except AgentNotFoundError as exc:
        return _error_response(status.HTTP_404_NOT_FOUND, error="agent_not_found", message=str(exc))
    except DocAssistError as exc:
        logger.exception("turn_failed", agent_id=request.agent_id, session_id=request.session_id)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, error="internal_error", message=str(exc))

    verdict = outcome.verdict
    if verdict is not None:
        return _error_response(
            verdict.status_code,
            error=verdict.error,
            message=verdict.message,
            retry_after=verdict.retry_after,
        )
    return TurnResponse(
        message=outcome.final_message or "",
        session_id=outcome.session_id or "",
        run_status=outcome.run_status or RunStatus.COMPLETED,
        conversation_complete=outcome.conversation_complete,
    )


@router.get(
    "/sessions/{agent_id}/{thread_id}",
    response_model=SessionStateResponse,
    response_model_by_alias=True,
    tags=["sessions"],
)
async def get_session(
    agent_id: str,
    thread_id: str,
    store: ConversationStateStore = Depends(get_state_store),
) -> SessionStateResponse:
    record = await store.get(SessionKey(thread_id=thread_id, agent_id=agent_id))
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return SessionStateResponse.model_validate(record.model_dump())
