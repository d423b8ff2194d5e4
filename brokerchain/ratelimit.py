"""Token-bucket bandwidth limiting for reading from and writing to connections."""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)


class TokenBucket:
    """A token bucket refilled at ``rate`` tokens per second, holding at most ``burst``.

    The bucket starts full. Waiting for more tokens than are available
    reserves them and sleeps until they have been refilled.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._last = clock()
        self._lock = threading.Lock()

    def wait(self, n: int) -> None:
        """Block until ``n`` tokens are granted."""
        if n <= 0 or math.isinf(self.rate):
            return
        if n > self.burst:
            raise ValueError(f"requested {n} tokens exceeds burst {self.burst}")
        with self._lock:
            now = self._clock()
            if self.rate > 0:
                elapsed = max(0.0, now - self._last)
                self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
            self._last = now
            if self._tokens < n and self.rate <= 0:
                raise ValueError("rate is zero and not enough tokens are available")
            self._tokens -= n
            delay = -self._tokens / self.rate if self._tokens < 0 else 0.0
        if delay > 0:
            self._sleep(delay)


def _chunks(total: int, burst: int):
    remaining = total
    step = max(burst, 1)
    while remaining > 0:
        take = min(step, remaining)
        yield take
        remaining -= take


class RateLimitedReader:
    """Reads from a stream or socket after the limiter grants the requested bytes."""

    def __init__(self, reader: Any, limiter: TokenBucket) -> None:
        self._read = getattr(reader, "read", None) or reader.recv
        self.limiter = limiter

    def read(self, size: int = 1024) -> bytes:
        for take in _chunks(size, self.limiter.burst):
            self.limiter.wait(take)
        return self._read(size)


class RateLimitedWriter:
    """Writes to a stream or socket after the limiter grants the bytes to send."""

    def __init__(self, writer: Any, limiter: TokenBucket) -> None:
        self._write = getattr(writer, "sendall", None) or writer.write
        self.limiter = limiter

    def write(self, data: bytes) -> int:
        payload = bytes(data)
        for take in _chunks(len(payload), self.limiter.burst):
            self.limiter.wait(take)
        self._write(payload)
        return len(payload)


def write_to_conn(data: bytes, conn: Any, limiter: TokenBucket) -> bool:
    """Write data through the limiter; a failed write is logged and reported as False."""
    try:
        RateLimitedWriter(conn, limiter).write(data)
    except (OSError, ValueError) as exc:
        logger.error("Write error %s", exc)
        return False
    return True