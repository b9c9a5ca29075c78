"""
File-backed sliding-window rate limiting for contact form submissions.

The store is a JSON object mapping a client identifier to the list of
submission timestamps (integer seconds) seen inside the window. Every
admission runs the full read-prune-check-append-write cycle while holding
an exclusive advisory lock, so concurrent workers and processes sharing
the same file never lose updates.
"""

import fcntl
import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from fastapi import Request


RATE_LIMIT_MESSAGE = "Too many messages. Please try again later."
UNKNOWN_CLIENT_IP = "0.0.0.0"


class RateLimitStoreUnavailable(Exception):
    """The store lock could not be acquired within the configured timeout."""


class RateLimitStore:
    """
    Persistent key/value text store guarded by an exclusive file lock.

    The lock is held on a sidecar ``<store>.lock`` file rather than on the
    data file itself: writes replace the data file atomically, and a lock on
    the replaced inode would no longer exclude anyone.
    """

    def __init__(
        self,
        path: Union[str, Path],
        lock_timeout: Optional[float] = 5.0,
        poll_interval: float = 0.05,
    ):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.lock_timeout = lock_timeout
        self.poll_interval = poll_interval

    @contextmanager
    def locked(self) -> Iterator["RateLimitStore"]:
        """
        Hold the exclusive store lock for the duration of the block.

        Raises:
            OSError if the data directory or lock file cannot be created
            RateLimitStoreUnavailable if the lock wait times out
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            self._acquire(fd)
            try:
                yield self
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def _acquire(self, fd: int) -> None:
        if self.lock_timeout is None:
            fcntl.flock(fd, fcntl.LOCK_EX)
            return

        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise RateLimitStoreUnavailable(
                        f"Timed out after {self.lock_timeout}s waiting for {self.lock_path}"
                    )
                time.sleep(self.poll_interval)

    def read(self) -> Dict[str, list]:
        """Return the stored mapping. Missing or malformed content reads as empty."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                contents = f.read()
        except FileNotFoundError:
            return {}
        except UnicodeDecodeError:
            logging.warning(f"Rate limit store {self.path} is corrupt, starting from empty")
            return {}
        except OSError as e:
            logging.warning(f"Could not read rate limit store {self.path}: {str(e)}")
            return {}

        if not contents.strip():
            return {}
        try:
            data = json.loads(contents)
        except ValueError:
            logging.warning(f"Rate limit store {self.path} is corrupt, starting from empty")
            return {}
        return data if isinstance(data, dict) else {}

    def write(self, data: Dict[str, list]) -> None:
        """Replace the store contents atomically (temp file, fsync, rename)."""
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise


def _recent_events(events: object, now: int, window_seconds: int) -> List[int]:
    if not isinstance(events, list):
        return []
    return [
        ts for ts in events
        if isinstance(ts, int) and not isinstance(ts, bool) and now - ts <= window_seconds
    ]


class SlidingWindowRateLimiter:
    """Admit at most ``max_requests`` events per client in any ``window_seconds`` span."""

    def __init__(self, store: RateLimitStore, window_seconds: int = 600, max_requests: int = 5):
        self.store = store
        self.window_seconds = window_seconds
        self.max_requests = max_requests

    def admit(self, client_id: str, now: Optional[int] = None) -> bool:
        """
        Record a submission for client_id if it fits in the window.

        Args:
            client_id: Client identifier (usually the source IP address)
            now: Current time in epoch seconds (defaults to the wall clock)

        Returns:
            True if the submission is allowed, False if the client is over the limit.
            Also True whenever the store cannot be opened or locked (fail-open).
        """
        now = int(time.time()) if now is None else int(now)

        try:
            with self.store.locked():
                data = self.store.read()
                events = _recent_events(data.get(client_id), now, self.window_seconds)

                allowed = len(events) < self.max_requests
                if allowed:
                    events.append(now)
                data[client_id] = events

                try:
                    self.store.write(data)
                except OSError as e:
                    logging.error(f"Failed to write rate limit store: {str(e)}")
        except RateLimitStoreUnavailable as e:
            logging.warning(f"Rate limit lock unavailable, allowing request: {str(e)}")
            return True
        except OSError as e:
            logging.warning(f"Rate limit store unavailable, allowing request: {str(e)}")
            return True

        if not allowed:
            logging.info(f"Rate limit exceeded for {client_id}")
        return allowed

    def remaining(self, client_id: str, now: Optional[int] = None) -> int:
        """
        Number of submissions client_id may still make right now. Does not modify the store.

        Unlike admit(), this does not fail open: OSError and
        RateLimitStoreUnavailable propagate to the caller.
        """
        now = int(time.time()) if now is None else int(now)
        with self.store.locked():
            events = _recent_events(self.store.read().get(client_id), now, self.window_seconds)
        return max(self.max_requests - len(events), 0)


def get_client_ip(request: Request, trust_forwarded_for: bool = False) -> str:
    """Get client IP address for rate limiting."""
    if trust_forwarded_for:
        # Take the first IP in the chain set by the proxy/load balancer
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded and forwarded.split(",")[0].strip():
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else UNKNOWN_CLIENT_IP
