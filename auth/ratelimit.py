"""
auth/ratelimit.py -- Per-(IP, username) login throttling with lockout.

Two layers protect POST /api/auth/login:
  1. slowapi (api/limiter.py) -- coarse per-IP request ceiling.
  2. LoginRateLimiter (this module) -- counts FAILED credential checks per
     "ip:username" key and locks the key out for 15 minutes after 8 failures
     inside a 10-minute window. Keying on the pair rather than the IP alone
     tolerates several people behind one NAT while still throttling targeted
     credential stuffing against the admin account.

Entry lifecycle for one key:
  absent -> tracked(count=1) -> tracked(count=N) -> locked(until=T)
  - check():          locked -> RateLimitedError; expired window -> deleted
  - record_failure(): absent/expired -> fresh entry; else count += 1 and,
                      at the threshold, blocked_until = now + lockout
  - reset():          successful login deletes the entry unconditionally

Ordering contract: callers MUST call check() before running bcrypt. A locked
key is rejected without any password comparison, which is what blunts the
cost of a brute-force run.

Storage is behind the RateLimitStore protocol so a shared backend can replace
MemoryRateLimitStore in a multi-instance deployment. The in-memory store
sweeps stale entries once it tracks SWEEP_THRESHOLD keys; a stale entry is
one whose window AND lockout have both elapsed, so an active lockout is
never evicted early.

Concurrency: counters tolerate benign races (this is a deterrent, not a
ledger); the store serializes individual operations with a lock, and the
lockout is re-read on every request.

Layer rule: no imports from api/ or content/.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from typing import Protocol

from auth.models import RateLimitEntry
from core.errors import RateLimitedError

logger = logging.getLogger("copperkoi.auth")

WINDOW_SECONDS = 10 * 60
MAX_ATTEMPTS = 8
LOCKOUT_SECONDS = 15 * 60
SWEEP_THRESHOLD = 2000


class RateLimitStore(Protocol):
    def get(self, key: str) -> RateLimitEntry | None: ...

    def put(self, key: str, entry: RateLimitEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def sweep(self, now: float) -> int: ...

    def __len__(self) -> int: ...


class MemoryRateLimitStore:
    """Process-local RateLimitStore backed by a dict."""

    def __init__(self) -> None:
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> RateLimitEntry | None:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, entry: RateLimitEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self, now: float) -> int:
        """Remove entries whose window and lockout have both elapsed."""
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.is_stale(now)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class LoginRateLimiter:
    """Failed-login counter with temporary lockout, keyed by ip:username."""

    def __init__(
        self,
        store: RateLimitStore | None = None,
        clock: Callable[[], float] = time.time,
        window_seconds: int = WINDOW_SECONDS,
        max_attempts: int = MAX_ATTEMPTS,
        lockout_seconds: int = LOCKOUT_SECONDS,
        sweep_threshold: int = SWEEP_THRESHOLD,
    ) -> None:
        self.store = store if store is not None else MemoryRateLimitStore()
        self._clock = clock
        self.window_seconds = window_seconds
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.sweep_threshold = sweep_threshold

    @staticmethod
    def key_for(ip: str, username: str) -> str:
        """Build the limiter key for an ip/username pair.

        The username is normalized the way CredentialVerifier.verify_username()
        compares it, so spellings that reach the same account share one budget.
        """
        return f"{ip}:{username.strip().lower()}"

    def _maybe_sweep(self, now: float) -> None:
        if len(self.store) >= self.sweep_threshold:
            removed = self.store.sweep(now)
            if removed:
                logger.info("Swept %d stale login rate-limit entries", removed)

    def check(self, key: str) -> None:
        """Raise RateLimitedError if the key is locked out.

        Also discards an entry whose counting window has expired without a
        lockout, so the next failure starts a fresh window.
        """
        now = self._clock()
        self._maybe_sweep(now)

        entry = self.store.get(key)
        if entry is None:
            return
        if entry.is_locked(now):
            raise RateLimitedError(
                "Too many login attempts.",
                retry_after=math.ceil(entry.blocked_until - now),
            )
        if entry.reset_at <= now:
            self.store.delete(key)

    def record_failure(self, key: str) -> RateLimitEntry:
        """Count a failed credential check and impose the lockout at the threshold."""
        now = self._clock()
        entry = self.store.get(key)
        if entry is not None and entry.is_locked(now):
            return entry
        if entry is None or entry.reset_at <= now:
            entry = RateLimitEntry(count=1, reset_at=now + self.window_seconds)
        else:
            entry.count += 1
            if entry.count >= self.max_attempts:
                entry.blocked_until = now + self.lockout_seconds
                logger.warning("Login locked out for %ds after %d failures", self.lockout_seconds, entry.count)
        self.store.put(key, entry)
        return entry

    def reset(self, key: str) -> None:
        """Forget all failures for the key (successful login)."""
        self.store.delete(key)
