"""
Per-stage exclusive sections.

Bracket advance, bracket build/finalize, standings refresh and adaptive round
generation all read and write the same matches and team stats for a stage. They
run under stage_lock(stage_id) so those read-then-write sequences do not
interleave. Different stages never block each other.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

_registry_lock = threading.Lock()
_stage_locks: Dict[int, threading.RLock] = {}


def _lock_for(stage_id: int) -> threading.RLock:
    with _registry_lock:
        lock = _stage_locks.get(stage_id)
        if lock is None:
            lock = threading.RLock()
            _stage_locks[stage_id] = lock
        return lock


@contextmanager
def stage_lock(stage_id: int) -> Iterator[None]:
    """Hold the stage's lock for the duration of the block. Reentrant per thread."""
    lock = _lock_for(stage_id)
    with lock:
        yield
