"""Portrait video composition with FFmpeg.

Pipeline:
1. Render every photo/clip into a normalized, letterboxed 1080x1920 clip
2. Concatenate the clips (concat demuxer, stream copy)
3. Final pass: lay avatar overlays over their slides, fit the music track to
   the timeline and encode H.264/AAC MP4 with faststart

Intermediate and output files are left on disk; the resource sweeper owns
their cleanup.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from reelgen.config import Settings, get_settings
from reelgen.exceptions import (
    CompositionError,
    DurationLimitError,
    EncoderTimeoutError,
    InvalidInputError,
    MediaProbeError,
    MissingInputError,
    SourceNotFoundError,
)
from reelgen.render.avatar import (
    AvatarPlacement,
    OverlayPlan,
    build_overlay_filters,
    detect_overlay_decoder,
    overlay_input_args,
    plan_overlay,
)
from reelgen.render.geometry import ContentBox, calculate_letterbox, full_canvas
from reelgen.render.tempo import detect_audio_bpm, tempo_multiplier
from reelgen.render.timeline import (
    Slide,
    TimingMode,
    build_timeline,
    is_image_file,
    is_video_file,
    plan_total_duration,
)
from reelgen.utils.media_info import get_media_duration, get_video_dimensions

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

# Progress bands (percent) per pipeline stage
SLIDES_BAND = (0, 60)
CONCAT_BAND = (60, 65)
FINAL_BAND = (65, 99)

DIAGNOSTIC_EXCERPT_CHARS = 500


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class CompositionRequest:
    """Everything needed to compose one video."""

    job_id: str
    media_paths: list[str]
    audio_path: str
    total_duration_s: Optional[float] = None
    timing_mode: TimingMode = TimingMode.EVEN
    fps: Optional[int] = None
    avatars: list[AvatarPlacement] = field(default_factory=list)


@dataclass
class CompositionResult:
    """Output of a successful composition."""

    output_path: Path
    duration_s: float
    width: int
    height: int
    file_size: int = 0
    slide_count: int = 0
    overlay_count: int = 0


def escape_concat_path(path: str) -> str:
    """Quote a path for an FFmpeg concat list entry."""
    return "'" + path.replace("'", "'\\''") + "'"


def diagnostic_excerpt(stderr: str, limit: int = DIAGNOSTIC_EXCERPT_CHARS) -> str:
    """Tail of encoder stderr, enough to explain a failure."""
    text = stderr.strip()
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]


# =============================================================================
# Compositor
# =============================================================================


class MediaCompositor:
    """Drives FFmpeg to turn photos/clips + music + avatars into one video."""

    def __init__(
        self,
        settings: Settings | None = None,
        work_root: Path | None = None,
        output_dir: Path | None = None,
    ):
        self.settings = settings or get_settings()
        self.work_root = Path(work_root or self.settings.temp_clips_path)
        self.output_dir = Path(output_dir or self.settings.videos_path)
        self.width = self.settings.render_output_width
        self.height = self.settings.render_output_height
        self.progress_callback: Optional[ProgressCallback] = None

    def set_progress_callback(self, callback: ProgressCallback) -> None:
        """Set callback for progress updates."""
        self.progress_callback = callback

    def _update_progress(self, progress: int, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(progress, message)

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate(self, request: CompositionRequest) -> None:
        """Reject unusable requests before any job exists.

        Blocking (runs ffprobe on video clips); call from a worker thread.

        Raises:
            MissingInputError: No media, no audio, or a path does not exist
            InvalidInputError: Unsupported media type or bad avatar slide index
            DurationLimitError: Requested duration or a clip is too long
        """
        settings = self.settings
        if not request.media_paths or not request.audio_path:
            raise MissingInputError()

        if len(request.media_paths) > settings.max_slides:
            raise InvalidInputError(
                f"Too many photos/clips: {len(request.media_paths)} (maximum {settings.max_slides})"
            )

        if request.total_duration_s is not None:
            if request.total_duration_s <= 0:
                raise InvalidInputError("Duration must be positive")
            if request.total_duration_s > settings.max_total_duration_s:
                raise DurationLimitError(request.total_duration_s, settings.max_total_duration_s)

        for path in request.media_paths:
            if not os.path.isfile(path):
                raise MissingInputError(f"File not found: {Path(path).name}")
            if not (is_image_file(path) or is_video_file(path)):
                raise InvalidInputError(f"Unsupported media type: {Path(path).name}")

        if not os.path.isfile(request.audio_path):
            raise MissingInputError(f"Music file not found: {Path(request.audio_path).name}")

        for path in request.media_paths:
            if not is_video_file(path):
                continue
            try:
                clip_duration = get_media_duration(path)
            except MediaProbeError as e:
                raise InvalidInputError(f"Unreadable video: {Path(path).name}") from e
            if clip_duration > settings.max_clip_duration_s:
                raise DurationLimitError(
                    clip_duration,
                    settings.max_clip_duration_s,
                    subject=f"Video {Path(path).name}",
                )

        for avatar in request.avatars:
            if not 0 <= avatar.slide_index < len(request.media_paths):
                raise InvalidInputError(
                    f"Avatar slide index {avatar.slide_index} is out of range"
                )
            if not os.path.isfile(avatar.source_path):
                raise MissingInputError(f"Avatar not found: {avatar.character}")

    # -------------------------------------------------------------------------
    # Composition
    # -------------------------------------------------------------------------

    async def compose(self, request: CompositionRequest) -> CompositionResult:
        """Compose the video described by ``request``.

        Raises:
            SourceNotFoundError: An input vanished since validation
            EncoderTimeoutError: An FFmpeg step ran past its ceiling
            CompositionError: FFmpeg failed or produced no output
        """
        for path in [*request.media_paths, request.audio_path]:
            if not os.path.isfile(path):
                raise SourceNotFoundError(path)

        fps = request.fps or self.settings.render_fps
        work_dir = self.work_root / request.job_id
        work_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = self.output_dir / f"video_{request.job_id}.mp4"

        self._update_progress(0, "Preparing media...")
        audio_duration = await asyncio.to_thread(get_media_duration, request.audio_path)
        total_duration = plan_total_duration(
            len(request.media_paths),
            request.timing_mode,
            requested_s=request.total_duration_s,
            audio_duration_s=audio_duration,
            max_total_s=self.settings.max_total_duration_s,
        )
        slides = build_timeline(request.media_paths, total_duration, fps)
        total_duration = slides[-1].end_s
        logger.info(
            f"[COMPOSE] job={request.job_id} slides={len(slides)} "
            f"total={total_duration:.2f}s audio={audio_duration:.2f}s avatars={len(request.avatars)}"
        )

        # Step 1: Normalized slide clips
        for slide in slides:
            slide.clip_path = str(work_dir / f"clip_{slide.index:03d}.mp4")
            cmd = self.build_slide_command(slide, slide.clip_path)
            lo, hi = SLIDES_BAND
            step = (hi - lo) / len(slides)
            await self._run_ffmpeg(
                cmd,
                slide.duration_s,
                progress_range=(lo + int(step * slide.index), lo + int(step * (slide.index + 1))),
            )

        # Step 2: Concatenate
        self._update_progress(CONCAT_BAND[0], "Joining slides...")
        list_path = work_dir / "list.txt"
        list_path.write_text(
            "".join(f"file {escape_concat_path(s.clip_path)}\n" for s in slides),
            encoding="utf-8",
        )
        slideshow_path = str(work_dir / "slideshow.mp4")
        await self._run_ffmpeg(
            self.build_concat_command(str(list_path), slideshow_path),
            total_duration,
            progress_range=CONCAT_BAND,
        )

        # Step 3: Overlays + audio
        plans = await self._plan_overlays(request, slides)
        final_cmd = self.build_final_command(
            slideshow_path,
            request.audio_path,
            str(output_path),
            total_duration_s=total_duration,
            audio_duration_s=audio_duration,
            overlays=plans,
        )
        await self._run_ffmpeg(final_cmd, total_duration, progress_range=FINAL_BAND)

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise CompositionError("Encoder reported success but no output was written")

        self._update_progress(100, "Video generated successfully")
        return CompositionResult(
            output_path=output_path,
            duration_s=total_duration,
            width=self.width,
            height=self.height,
            file_size=output_path.stat().st_size,
            slide_count=len(slides),
            overlay_count=len(plans),
        )

    async def _plan_overlays(
        self, request: CompositionRequest, slides: list[Slide]
    ) -> list[OverlayPlan]:
        if not request.avatars:
            return []

        settings = self.settings
        music_bpm = await asyncio.to_thread(
            detect_audio_bpm, request.audio_path, settings.default_bpm
        )
        speed = tempo_multiplier(
            music_bpm,
            settings.avatar_baseline_bpm,
            settings.tempo_min_multiplier,
            settings.tempo_max_multiplier,
        )

        decoders: dict[str, str | None] = {}
        plans: list[OverlayPlan] = []
        for avatar in request.avatars:
            slide = slides[avatar.slide_index]
            if slide.content_box is None:
                slide.content_box = await self._content_box(slide.source_path)
            if avatar.source_path not in decoders:
                decoders[avatar.source_path] = await asyncio.to_thread(
                    detect_overlay_decoder, avatar.source_path
                )
            plans.append(
                plan_overlay(
                    avatar,
                    slide.content_box,
                    slide.start_frame,
                    slide.end_frame,
                    slide.fps,
                    base_size=settings.avatar_base_size,
                    speed=speed,
                    decoder=decoders[avatar.source_path],
                )
            )
        logger.info(f"[COMPOSE] {len(plans)} overlay(s), music_bpm={music_bpm} speed={speed:.2f}")
        return plans

    async def _content_box(self, source_path: str) -> ContentBox:
        try:
            width, height = await asyncio.to_thread(get_video_dimensions, source_path)
        except MediaProbeError as e:
            logger.warning(f"[COMPOSE] Could not probe {source_path}, placing on full canvas: {e}")
            return full_canvas(self.width, self.height)
        return calculate_letterbox(width, height, self.width, self.height)

    # -------------------------------------------------------------------------
    # Command builders
    # -------------------------------------------------------------------------

    def _base_command(self) -> list[str]:
        return [self.settings.ffmpeg_path, "-y", "-hide_banner", "-loglevel", "error"]

    def _letterbox_filter(self, fps: int) -> str:
        w, h = self.width, self.height
        return (
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:color=black,setsar=1,fps={fps}"
        )

    def build_slide_command(self, slide: Slide, output_path: str) -> list[str]:
        """Command rendering one slide into a normalized, silent clip.

        The clip is cut by frame count, never by time, so concatenated slides
        land exactly on their planned frame boundaries.
        """
        cmd = self._base_command()
        if slide.is_video:
            # Short clips loop to fill the slot, long ones are cut
            cmd += ["-stream_loop", "-1", "-i", slide.source_path]
        else:
            cmd += ["-loop", "1", "-framerate", str(slide.fps), "-i", slide.source_path]
        cmd += [
            "-vf", self._letterbox_filter(slide.fps),
            "-c:v", "libx264",
            "-preset", self.settings.render_preset,
            "-crf", str(self.settings.render_crf),
            "-pix_fmt", "yuv420p",
            "-profile:v", "high",
            "-level", "4.0",
            "-an",
            "-frames:v", str(slide.frame_count),
            output_path,
        ]
        return cmd

    def build_concat_command(self, list_path: str, output_path: str) -> list[str]:
        return self._base_command() + [
            "-f", "concat",
            "-safe", "0",
            "-i", list_path,
            "-c", "copy",
            output_path,
        ]

    def build_final_command(
        self,
        video_path: str,
        audio_path: str,
        output_path: str,
        *,
        total_duration_s: float,
        audio_duration_s: float | None,
        overlays: list[OverlayPlan] | None = None,
    ) -> list[str]:
        """Final mux: overlays onto the slideshow, music fitted to the timeline.

        Audio shorter than the video is looped; longer audio is cut by ``-t``.
        Without overlays the video stream is copied untouched.
        """
        overlays = overlays or []
        cmd = self._base_command() + ["-i", video_path]
        if audio_duration_s is not None and audio_duration_s < total_duration_s:
            cmd += ["-stream_loop", "-1"]
        cmd += ["-i", audio_path]
        for plan in overlays:
            cmd += overlay_input_args(plan)

        if overlays:
            cmd += [
                "-filter_complex", build_overlay_filters(overlays, first_input_index=2),
                "-map", "[vout]",
                "-c:v", "libx264",
                "-preset", self.settings.render_preset,
                "-crf", str(self.settings.render_crf),
                "-pix_fmt", "yuv420p",
                "-profile:v", "high",
                "-level", "4.0",
            ]
        else:
            cmd += ["-map", "0:v:0", "-c:v", "copy"]

        cmd += [
            "-map", "1:a:0",
            "-c:a", "aac",
            "-b:a", self.settings.render_audio_bitrate,
            "-t", f"{total_duration_s:.3f}",
            "-movflags", "+faststart",
            output_path,
        ]
        return cmd

    # -------------------------------------------------------------------------
    # Process execution
    # -------------------------------------------------------------------------

    def encoder_timeout(self, expected_duration_s: float) -> float:
        """Wall-clock ceiling for one FFmpeg invocation."""
        return max(
            self.settings.encoder_timeout_floor_s,
            self.settings.encoder_timeout_multiplier * expected_duration_s,
        )

    async def _run_ffmpeg(
        self,
        cmd: list[str],
        expected_duration_s: float,
        progress_range: tuple[int, int] | None = None,
    ) -> None:
        """Run FFmpeg, streaming ``-progress`` output into the callback.

        Raises:
            EncoderTimeoutError: Ceiling exceeded; the process is killed
            CompositionError: Non-zero exit, with a stderr excerpt
        """
        cmd_with_progress = cmd.copy()
        # Insert -progress pipe:1 before output path
        cmd_with_progress.insert(-1, "-progress")
        cmd_with_progress.insert(-1, "pipe:1")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd_with_progress,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CompositionError("Could not start encoder", diagnostic=str(e))

        timeout = self.encoder_timeout(expected_duration_s)
        try:
            _, stderr_bytes = await asyncio.wait_for(
                asyncio.gather(
                    self._read_progress(proc.stdout, expected_duration_s, progress_range),
                    proc.stderr.read(),
                ),
                timeout=timeout,
            )
            await proc.wait()
        except asyncio.TimeoutError:
            logger.error(f"[COMPOSE] FFmpeg exceeded {timeout:.0f}s, killing pid={proc.pid}")
            proc.kill()
            await proc.wait()
            raise EncoderTimeoutError(timeout)

        if proc.returncode != 0:
            stderr = stderr_bytes.decode("utf-8", errors="replace")
            logger.error(f"[COMPOSE] FFmpeg exited {proc.returncode}: {stderr[-2000:]}")
            raise CompositionError(
                f"FFmpeg failed with exit code {proc.returncode}",
                diagnostic=diagnostic_excerpt(stderr),
            )

    async def _read_progress(
        self,
        stream: asyncio.StreamReader,
        expected_duration_s: float,
        progress_range: tuple[int, int] | None,
    ) -> None:
        last_reported = -1
        async for raw_line in stream:
            if progress_range is None:
                continue
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line.startswith("out_time_us="):
                continue
            try:
                time_s = int(line.split("=", 1)[1]) / 1_000_000
                fraction = min(1.0, max(0.0, time_s / expected_duration_s))
            except (ValueError, ZeroDivisionError):
                continue
            lo, hi = progress_range
            pct = lo + int(fraction * (hi - lo))
            if pct > last_reported:
                last_reported = pct
                self._update_progress(pct, f"Processing video... {pct}% complete")
