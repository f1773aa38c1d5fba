import asyncio
import logging

from fastapi import APIRouter

from reelgen.api.deps import Services

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/ffmpeg-status")
async def ffmpeg_status(services: Services) -> dict:
    """Check that the FFmpeg binary runs and report its version line."""
    ffmpeg_path = services.settings.ffmpeg_path
    try:
        proc = await asyncio.create_subprocess_exec(
            ffmpeg_path,
            "-version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning(f"FFmpeg not runnable at {ffmpeg_path}: {e}")
        return {"available": False, "path": ffmpeg_path, "error": str(e)}

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=10)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return {"available": False, "path": ffmpeg_path, "error": "ffmpeg -version timed out"}

    lines = stdout.decode("utf-8", errors="replace").splitlines()
    return {
        "available": proc.returncode == 0,
        "path": ffmpeg_path,
        "version": lines[0] if lines else None,
    }
