"""Proof-of-work puzzle solved before joining the network."""

from __future__ import annotations

import hashlib
import logging
import multiprocessing
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_RANGE = 1_000_000_000
MAX_WORKERS = 16
_CHECK_EVERY = 100


def check(digest: bytes, difficulty: int) -> bool:
    """True when the first ``difficulty`` bits of the 32-byte digest are zero."""
    remaining = difficulty
    for byte in digest[:32]:
        if remaining <= 0:
            break
        bits = min(8, remaining)
        if byte >> (8 - bits):
            return False
        remaining -= bits
    return True


def _search(prefix: str, start: int, end: int, difficulty: int, stop: Any = None) -> int | None:
    checked_at = start
    for i in range(start, end):
        if i - checked_at > _CHECK_EVERY:
            checked_at = i
            if stop is not None and stop.is_set():
                return None
        if check(hashlib.sha256(f"{prefix}{i}".encode("utf-8")).digest(), difficulty):
            return i
    return None


def _ranges(max_range: int, workers: int) -> list[tuple[int, int]]:
    per_worker = max_range // workers
    bounds = []
    for i in range(workers):
        start = i * per_worker
        end = max_range if i == workers - 1 else (i + 1) * per_worker
        bounds.append((start, end))
    return bounds


def solve(
    address: str,
    problem: str,
    difficulty: int,
    max_range: int = DEFAULT_MAX_RANGE,
    workers: int | None = None,
) -> int | None:
    """Find a number n in [0, max_range) with sha256(address + problem + n) meeting the difficulty.

    Returns None when no such number exists in the range.
    """
    if workers is None:
        workers = os.cpu_count() or 1
    workers = max(1, min(workers, MAX_WORKERS))
    prefix = address + problem

    if workers == 1:
        result = _search(prefix, 0, max_range, difficulty)
    else:
        result = None
        ctx = multiprocessing.get_context()
        with ctx.Manager() as manager:
            stop = manager.Event()
            with ProcessPoolExecutor(max_workers=workers, mp_context=ctx) as pool:
                futures = [
                    pool.submit(_search, prefix, start, end, difficulty, stop)
                    for start, end in _ranges(max_range, workers)
                ]
                for future in as_completed(futures):
                    found = future.result()
                    if found is not None:
                        stop.set()
                        result = found
                        break
    if result is None:
        logger.warning("No solution found in range %d", max_range)
    return result