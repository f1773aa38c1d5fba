"""Session liveness, upload ownership and manual cleanup."""

import asyncio
import logging
import time
from pathlib import Path

from fastapi import APIRouter

from reelgen.api.deps import HeaderSessionId, Services
from reelgen.exceptions import InvalidInputError
from reelgen.schemas.session import (
    CleanupResponse,
    HeartbeatRequest,
    HeartbeatResponse,
    RegisterFilesRequest,
    RegisterFilesResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    body: HeartbeatRequest,
    services: Services,
    header_session_id: HeaderSessionId,
) -> HeartbeatResponse:
    """Keep a session alive, or mark it as leaving."""
    session_id = body.session_id or header_session_id
    if not session_id:
        raise InvalidInputError("Session ID required")

    services.sessions.heartbeat(session_id, leaving=body.leaving)
    if body.leaving:
        logger.info(f"[SESSION] {session_id} is leaving")
    return HeartbeatResponse(session_id=session_id, timestamp=time.time(), leaving=body.leaving)


@router.post("/sessions/files", response_model=RegisterFilesResponse)
async def register_session_files(
    body: RegisterFilesRequest,
    services: Services,
) -> RegisterFilesResponse:
    """Record uploaded files as owned by a session.

    Only files inside the uploads directory can be registered.
    """
    uploads_root = services.settings.uploads_path.resolve()
    paths: list[str] = []
    for raw in body.paths:
        resolved = Path(services.generation.resolve_media_path(raw))
        if not resolved.is_relative_to(uploads_root):
            raise InvalidInputError(f"Only uploaded files can be registered: {raw}")
        paths.append(str(resolved))

    session = services.sessions.add_files(body.session_id, paths)
    return RegisterFilesResponse(session_id=session.id, file_count=len(session.files))


@router.post("/cleanup", response_model=CleanupResponse)
async def run_cleanup(services: Services) -> dict:
    """Run one reclamation sweep now."""
    report = await asyncio.to_thread(services.sweeper.run_once)
    return report.to_dict()
