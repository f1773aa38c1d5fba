"""Generation quotas per network address and per client session.

Each identity has three fixed windows (hourly, daily, weekly). A window
starts at its first recorded generation and resets independently once its
length has elapsed. A request is admitted only if every window of every
supplied identity is below its ceiling.

Two counter backends share one interface:

- ``RedisCounterBackend`` keeps counters in Redis (INCR + EXPIRE), so every
  worker process sees the same usage.
- ``LocalCounterBackend`` keeps counters in this process only. Quotas are
  enforced per process and reset on restart; with N workers an identity
  can get up to N times its ceiling. Use it for development or as a
  degraded mode, not as an equivalent of the shared store.

Counter store failures fail open: the request is admitted and the error is
logged. Input validation failures are handled elsewhere and fail closed.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

import redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Window:
    name: str
    seconds: int


HOUR = 60 * 60
DAY = 24 * HOUR
WEEK = 7 * DAY

WINDOWS: tuple[Window, ...] = (
    Window("hourly", HOUR),
    Window("daily", DAY),
    Window("weekly", WEEK),
)

IDENTITY_KINDS = ("ip", "session")


# =============================================================================
# Results
# =============================================================================


def _iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass
class WindowUsage:
    """Usage of one window for one identity."""

    window: str
    count: int
    limit: int
    reset_at: float | None = None  # epoch seconds, None while unused

    @property
    def exceeded(self) -> bool:
        return self.count >= self.limit

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "limit": self.limit,
            "remaining": self.remaining,
            "resetTime": _iso(self.reset_at),
        }


@dataclass
class RateLimitResult:
    """Admission decision for one identity."""

    identity: str
    kind: str
    allowed: bool
    windows: list[WindowUsage] = field(default_factory=list)
    degraded: bool = False  # counter store failed, admitted anyway

    def usage(self, window: str) -> WindowUsage:
        for w in self.windows:
            if w.window == window:
                return w
        raise KeyError(window)

    @property
    def reset_at(self) -> float | None:
        """When this identity is admitted again.

        The latest reset among the exceeded windows: an identity over both
        its hourly and daily ceilings stays blocked until the daily reset.
        """
        resets = [w.reset_at for w in self.windows if w.exceeded and w.reset_at is not None]
        return max(resets) if resets else None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {w.window: w.to_dict() for w in self.windows}
        data["limits"] = {w.window: w.limit for w in self.windows}
        data["allowed"] = self.allowed
        return data


@dataclass
class AdmissionDecision:
    """Combined decision over the network and session identities."""

    allowed: bool
    ip: RateLimitResult
    session: RateLimitResult | None = None

    @property
    def limiting(self) -> RateLimitResult | None:
        """Denied identity that stays blocked longest (network first on ties)."""
        denied = [r for r in (self.ip, self.session) if r is not None and not r.allowed]
        if not denied:
            return None
        return max(denied, key=lambda r: r.reset_at or 0.0)


# =============================================================================
# Counter backends
# =============================================================================


class CounterBackend(ABC):
    """Storage for per-identity window counters."""

    name: str = "abstract"
    shared: bool = False  # True when counts are consistent across processes

    @abstractmethod
    def get_counts(self, kind: str, identity: str) -> dict[str, tuple[int, float | None]]:
        """Map window name -> (count, reset time) for every window."""

    @abstractmethod
    def increment(self, kind: str, identity: str) -> None:
        """Add one generation to every window."""

    def prune(self) -> int:
        """Drop expired counters. Returns how many were removed."""
        return 0


class RedisCounterBackend(CounterBackend):
    """Counters in Redis; keys expire with their window."""

    name = "redis"
    shared = True

    def __init__(
        self,
        client: "redis.Redis",
        key_prefix: str = "rate_limit",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._prefix = key_prefix
        self._clock = clock

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "rate_limit") -> "RedisCounterBackend":
        client = redis.Redis.from_url(url, socket_timeout=2, socket_connect_timeout=2)
        client.ping()
        return cls(client, key_prefix=key_prefix)

    def _key(self, kind: str, identity: str, window: Window) -> str:
        return f"{self._prefix}:{kind}:{identity}:{window.name}"

    def get_counts(self, kind: str, identity: str) -> dict[str, tuple[int, float | None]]:
        pipe = self._client.pipeline(transaction=False)
        for window in WINDOWS:
            key = self._key(kind, identity, window)
            pipe.get(key)
            pipe.pttl(key)
        results = pipe.execute()

        now = self._clock()
        counts: dict[str, tuple[int, float | None]] = {}
        for i, window in enumerate(WINDOWS):
            raw, pttl = results[2 * i], results[2 * i + 1]
            count = int(raw) if raw is not None else 0
            # pttl: -2 missing key, -1 key without expiry
            reset_at = now + pttl / 1000 if pttl is not None and pttl > 0 else None
            counts[window.name] = (count, reset_at)
        return counts

    def increment(self, kind: str, identity: str) -> None:
        pipe = self._client.pipeline(transaction=True)
        for window in WINDOWS:
            key = self._key(kind, identity, window)
            pipe.incr(key)
            pipe.ttl(key)
        results = pipe.execute()

        # Expiry is set once, when the window opens, so it never slides
        expire_pipe = self._client.pipeline(transaction=True)
        pending = False
        for i, window in enumerate(WINDOWS):
            count, ttl = results[2 * i], results[2 * i + 1]
            if count == 1 or ttl is None or ttl < 0:
                expire_pipe.expire(self._key(kind, identity, window), window.seconds)
                pending = True
        if pending:
            expire_pipe.execute()


@dataclass
class _Bucket:
    count: int
    reset_at: float


class LocalCounterBackend(CounterBackend):
    """In-process counters.

    Not shared between worker processes and lost on restart; see the module
    docstring for what that means for enforcement.
    """

    name = "memory"
    shared = False

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._buckets: dict[tuple[str, str, str], _Bucket] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get_counts(self, kind: str, identity: str) -> dict[str, tuple[int, float | None]]:
        with self._lock:
            now = self._clock()
            counts: dict[str, tuple[int, float | None]] = {}
            for window in WINDOWS:
                key = (kind, identity, window.name)
                bucket = self._buckets.get(key)
                if bucket is None or now >= bucket.reset_at:
                    self._buckets.pop(key, None)
                    counts[window.name] = (0, None)
                else:
                    counts[window.name] = (bucket.count, bucket.reset_at)
            return counts

    def increment(self, kind: str, identity: str) -> None:
        with self._lock:
            now = self._clock()
            for window in WINDOWS:
                key = (kind, identity, window.name)
                bucket = self._buckets.get(key)
                if bucket is None or now >= bucket.reset_at:
                    self._buckets[key] = _Bucket(count=1, reset_at=now + window.seconds)
                else:
                    bucket.count += 1

    def prune(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, b in self._buckets.items() if now >= b.reset_at]
            for k in expired:
                del self._buckets[k]
            return len(expired)


# =============================================================================
# Limiter
# =============================================================================


class RateLimiter:
    """Dual-identity, three-window generation limiter."""

    def __init__(
        self,
        backend: CounterBackend,
        limits: dict[str, dict[str, int]],
    ) -> None:
        for kind in IDENTITY_KINDS:
            missing = {w.name for w in WINDOWS} - set(limits.get(kind, {}))
            if missing:
                raise ValueError(f"Missing {kind} limits for windows: {sorted(missing)}")
        self.backend = backend
        self.limits = limits
        self._admit_lock = threading.Lock()

    def check_and_reserve(self, identity: str, kind: str) -> RateLimitResult:
        """Current usage of ``identity`` and whether one more is allowed.

        Does not count the request; ``record`` commits it. Counter store
        errors admit the request.
        """
        ceilings = self.limits[kind]
        try:
            counts = self.backend.get_counts(kind, identity)
        except (redis.RedisError, OSError) as e:
            logger.error(f"[RATE LIMIT] {self.backend.name} lookup failed for {kind}, failing open: {e}")
            return RateLimitResult(
                identity=identity,
                kind=kind,
                allowed=True,
                windows=[WindowUsage(w.name, 0, ceilings[w.name]) for w in WINDOWS],
                degraded=True,
            )

        windows = [
            WindowUsage(
                window=w.name,
                count=counts[w.name][0],
                limit=ceilings[w.name],
                reset_at=counts[w.name][1],
            )
            for w in WINDOWS
        ]
        return RateLimitResult(
            identity=identity,
            kind=kind,
            allowed=not any(w.exceeded for w in windows),
            windows=windows,
        )

    def record(self, identity: str, kind: str) -> None:
        """Count one generation against every window of ``identity``."""
        try:
            self.backend.increment(kind, identity)
        except (redis.RedisError, OSError) as e:
            logger.error(f"[RATE LIMIT] {self.backend.name} increment failed for {kind}: {e}")

    def check(self, ip: str, session_id: str | None = None) -> AdmissionDecision:
        """Decision for both identities without recording anything."""
        ip_result = self.check_and_reserve(ip, "ip")
        session_result = self.check_and_reserve(session_id, "session") if session_id else None
        allowed = ip_result.allowed and (session_result is None or session_result.allowed)
        return AdmissionDecision(allowed=allowed, ip=ip_result, session=session_result)

    def admit(self, ip: str, session_id: str | None = None) -> AdmissionDecision:
        """Check both identities and, if allowed, record the generation.

        Check and record happen under one lock so concurrent requests in
        this process cannot both slip under a ceiling.
        """
        with self._admit_lock:
            decision = self.check(ip, session_id)
            if decision.allowed:
                self.record(ip, "ip")
                if session_id:
                    self.record(session_id, "session")
            else:
                limiting = decision.limiting
                logger.warning(
                    f"[RATE LIMIT] Denied {limiting.kind} {limiting.identity}: "
                    + ", ".join(f"{w.window}={w.count}/{w.limit}" for w in limiting.windows)
                )
            return decision
