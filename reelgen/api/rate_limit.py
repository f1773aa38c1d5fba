import asyncio
from typing import Annotated, Optional

from fastapi import APIRouter, Query

from reelgen.api.deps import ClientIP, HeaderSessionId, Services
from reelgen.schemas.generation import RateLimitStatusResponse

router = APIRouter()


@router.get("/rate-limit-status", response_model=RateLimitStatusResponse)
async def rate_limit_status(
    services: Services,
    client_ip: ClientIP,
    header_session_id: HeaderSessionId,
    session_id: Annotated[Optional[str], Query(alias="sessionId", max_length=128)] = None,
) -> RateLimitStatusResponse:
    """Per-window usage and ceilings for the caller's identities."""
    session_id = session_id or header_session_id
    decision = await asyncio.to_thread(services.limiter.check, client_ip, session_id)
    backend = services.limiter.backend
    return RateLimitStatusResponse(
        can_generate=decision.allowed,
        backend=backend.name,
        shared=backend.shared,
        ip=decision.ip.to_dict(),
        session=decision.session.to_dict() if decision.session else None,
    )
