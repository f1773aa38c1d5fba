"""Video generation endpoints: start a job, poll its progress."""

import asyncio
import logging
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks

from reelgen.api.deps import ClientIP, HeaderSessionId, Services
from reelgen.exceptions import JobNotFoundError, RateLimitExceededError
from reelgen.schemas.generation import (
    GenerateRequest,
    GenerateResponse,
    ProgressResponse,
    RateLimitExceededResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/generate",
    response_model=GenerateResponse,
    responses={429: {"model": RateLimitExceededResponse}},
)
async def generate_video(
    payload: GenerateRequest,
    services: Services,
    client_ip: ClientIP,
    header_session_id: HeaderSessionId,
    background_tasks: BackgroundTasks,
) -> GenerateResponse:
    """
    Start composing a video.

    Inputs are validated first (400, no job created), then the caller's
    quotas are checked and recorded (429, no job created). The job id is
    returned immediately; composition continues in the background.
    """
    session_id = payload.session_id or header_session_id
    job_id = f"job_{uuid4().hex}"

    request = services.generation.build_request(job_id, payload)
    await services.generation.validate(request)

    decision = await asyncio.to_thread(services.limiter.admit, client_ip, session_id)
    if not decision.allowed:
        limiting = decision.limiting
        reset_at = limiting.reset_at
        raise RateLimitExceededError(
            limit_type=limiting.kind,
            details=limiting.to_dict(),
            reset_time=datetime.fromtimestamp(reset_at, tz=timezone.utc) if reset_at else None,
        )

    services.generation.accept(job_id)
    background_tasks.add_task(services.generation.run, request, session_id)
    logger.info(
        f"[GENERATE] job={job_id} ip={client_ip} session={session_id} "
        f"slides={len(request.media_paths)} avatars={len(request.avatars)}"
    )
    return GenerateResponse(job_id=job_id)


@router.get(
    "/progress/{job_id}",
    response_model=ProgressResponse,
    response_model_exclude_none=True,
)
async def get_progress(job_id: str, services: Services) -> dict:
    """Current status of a job; 404 once it is unknown or reclaimed."""
    job = services.jobs.get(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job.to_dict()
