"""Generation orchestration: request -> job -> composition -> artifact link."""

import asyncio
import logging
import re
import shutil
from pathlib import Path
from typing import Callable

from reelgen.config import Settings
from reelgen.exceptions import InvalidInputError, MissingInputError, ReelgenError
from reelgen.render.avatar import AvatarPlacement
from reelgen.render.compositor import CompositionRequest, CompositionResult, MediaCompositor
from reelgen.render.timeline import TimingMode
from reelgen.schemas.generation import GenerateRequest
from reelgen.services.artifact_links import ArtifactLinkStore
from reelgen.services.job_tracker import GenerationJob, JobTracker
from reelgen.services.session_store import SessionStore

logger = logging.getLogger(__name__)

CHARACTER_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class GenerationService:
    """Turns validated requests into tracked background compositions."""

    def __init__(
        self,
        settings: Settings,
        jobs: JobTracker,
        links: ArtifactLinkStore,
        sessions: SessionStore,
        compositor_factory: Callable[[], MediaCompositor] | None = None,
    ) -> None:
        self.settings = settings
        self.jobs = jobs
        self.links = links
        self.sessions = sessions
        self.compositor_factory = compositor_factory or (lambda: MediaCompositor(settings))

    # -------------------------------------------------------------------------
    # Request handling
    # -------------------------------------------------------------------------

    def resolve_media_path(self, reference: str) -> str:
        """Map a client media reference to an absolute path under the data root.

        Relative references are looked up in the uploads directory.
        """
        candidate = Path(reference)
        if not candidate.is_absolute():
            candidate = self.settings.uploads_path / candidate
        resolved = candidate.resolve()
        root = self.settings.data_path.resolve()
        if not resolved.is_relative_to(root):
            raise InvalidInputError(f"Media path is outside the working directory: {reference}")
        return str(resolved)

    def resolve_avatar_path(self, character: str) -> str:
        if not CHARACTER_PATTERN.match(character):
            raise InvalidInputError(f"Invalid avatar character: {character}")
        return str(self.settings.avatars_path / f"{character}.webm")

    def build_request(self, job_id: str, payload: GenerateRequest) -> CompositionRequest:
        """Convert the API payload into a composition request."""
        if not payload.photos or payload.music is None:
            raise MissingInputError()

        options = payload.settings
        if options.timing_mode:
            timing_mode = TimingMode(options.timing_mode)
        elif options.duration:
            timing_mode = TimingMode.EVEN
        else:
            timing_mode = TimingMode.AUTO

        avatars = [
            AvatarPlacement(
                character=avatar.character,
                source_path=self.resolve_avatar_path(avatar.character),
                slide_index=avatar.slide_index,
                x_percent=avatar.x,
                y_percent=avatar.y,
                scale=avatar.scale,
            )
            for avatar in payload.avatars
        ]

        return CompositionRequest(
            job_id=job_id,
            media_paths=[self.resolve_media_path(p.path) for p in payload.photos],
            audio_path=self.resolve_media_path(payload.music.path),
            total_duration_s=options.duration,
            timing_mode=timing_mode,
            fps=options.fps,
            avatars=avatars,
        )

    async def validate(self, request: CompositionRequest) -> None:
        """Synchronous input checks (ffprobe runs off the event loop)."""
        compositor = self.compositor_factory()
        await asyncio.to_thread(compositor.validate, request)

    def accept(self, job_id: str) -> GenerationJob:
        """Create the job record at 0%."""
        job = self.jobs.create(job_id)
        logger.info(f"[GENERATE] Accepted job {job_id}")
        return job

    # -------------------------------------------------------------------------
    # Background execution
    # -------------------------------------------------------------------------

    async def run(self, request: CompositionRequest, session_id: str | None = None) -> None:
        """Compose and publish. Every outcome ends in a terminal job state."""
        job_id = request.job_id
        compositor = self.compositor_factory()
        compositor.set_progress_callback(
            lambda progress, message: self.jobs.update_progress(job_id, progress, message)
        )
        self.jobs.update_progress(job_id, 0, "Processing video... 0% complete")

        try:
            result = await compositor.compose(request)
            descriptor = await self._publish(result, session_id)
        except ReelgenError as e:
            logger.error(f"[GENERATE] Job {job_id} failed: {e}")
            self.jobs.fail(job_id, str(e))
            return
        except Exception as e:
            logger.exception(f"[GENERATE] Job {job_id} crashed: {e}")
            self.jobs.fail(job_id, "Video processing failed")
            return
        finally:
            if session_id:
                self.sessions.add_files(session_id, self._job_outputs(job_id))

        self.jobs.complete(job_id, descriptor)
        logger.info(f"[GENERATE] Job {job_id} completed: {descriptor['filename']}")

    def _job_outputs(self, job_id: str) -> list[str]:
        """Files a job may have created, for session ownership."""
        return [str(self.settings.videos_path / f"video_{job_id}.mp4")]

    async def _publish(self, result: CompositionResult, session_id: str | None) -> dict:
        """Copy the output under a fresh link id and mint the link."""
        link_id = ArtifactLinkStore.new_id()
        artifacts_dir = self.settings.temp_artifacts_path
        artifacts_dir.mkdir(parents=True, exist_ok=True)
        link_file = artifacts_dir / f"{link_id}.mp4"
        await asyncio.to_thread(shutil.copyfile, result.output_path, link_file)

        link = self.links.mint(
            source_path=str(result.output_path),
            file_path=str(link_file),
            filename=result.output_path.name,
            link_id=link_id,
        )
        if session_id:
            self.sessions.add_files(session_id, [str(link_file)])

        descriptor = link.to_dict()
        descriptor.update(
            size=result.file_size,
            duration=result.duration_s,
            slides=result.slide_count,
        )
        return descriptor
