"""Wiring of the in-memory stores and services for one app instance."""

import logging
from dataclasses import dataclass

import redis

from reelgen.config import Settings
from reelgen.services.artifact_links import ArtifactLinkStore
from reelgen.services.generation_service import GenerationService
from reelgen.services.job_tracker import JobTracker
from reelgen.services.rate_limiter import (
    CounterBackend,
    LocalCounterBackend,
    RateLimiter,
    RedisCounterBackend,
)
from reelgen.services.resource_sweeper import ResourceSweeper
from reelgen.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    jobs: JobTracker
    links: ArtifactLinkStore
    sessions: SessionStore
    limiter: RateLimiter
    sweeper: ResourceSweeper
    generation: GenerationService


def build_counter_backend(settings: Settings) -> CounterBackend:
    """Redis when configured and reachable, otherwise per-process counters."""
    if settings.redis_url:
        try:
            backend = RedisCounterBackend.from_url(
                settings.redis_url, key_prefix=settings.rate_limit_key_prefix
            )
            logger.info("[RATE LIMIT] Using Redis counter store")
            return backend
        except (redis.RedisError, OSError) as e:
            logger.error(f"[RATE LIMIT] Redis unavailable ({e}), falling back to in-process counters")
    logger.warning(
        "[RATE LIMIT] In-process counters: limits are enforced per worker process "
        "and reset on restart"
    )
    return LocalCounterBackend()


def build_services(settings: Settings, counters: CounterBackend | None = None) -> ServiceContainer:
    for path in (
        settings.uploads_path,
        settings.videos_path,
        settings.temp_artifacts_path,
        settings.temp_clips_path,
        settings.avatars_path,
    ):
        path.mkdir(parents=True, exist_ok=True)

    counters = counters or build_counter_backend(settings)
    jobs = JobTracker(grace_period_s=settings.job_grace_period_s)
    links = ArtifactLinkStore(ttl_s=settings.artifact_ttl_s)
    sessions = SessionStore(leaving_age_s=settings.session_leaving_age_s)
    limiter = RateLimiter(counters, settings.rate_limits())
    sweeper = ResourceSweeper(settings, sessions, links, jobs, counters)
    generation = GenerationService(settings, jobs, links, sessions)
    return ServiceContainer(
        settings=settings,
        jobs=jobs,
        links=links,
        sessions=sessions,
        limiter=limiter,
        sweeper=sweeper,
        generation=generation,
    )
