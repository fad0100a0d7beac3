"""
Process-wide compute resources.

Fitting and inference share one bounded pool of compute slots, and
background training runs on one shared thread pool.
"""
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import torch
from django.conf import settings
from django.db import connections

from .logging_utils import get_logger

logger = get_logger(__name__)

_slots: Optional[threading.BoundedSemaphore] = None
_default_executor: Optional['TrainingExecutor'] = None
_guard = threading.Lock()


class ComputeSession:
    """Handle for one acquired compute slot."""
    
    def __init__(self, name: str, device: torch.device):
        self.name = name
        self.device = device


def _get_slots() -> threading.BoundedSemaphore:
    global _slots
    with _guard:
        if _slots is None:
            size = getattr(settings, 'MATCHER_MAX_CONCURRENT_RUNS', 2)
            _slots = threading.BoundedSemaphore(max(1, int(size)))
        return _slots


@contextmanager
def compute_session(name: str = "compute") -> Iterator[ComputeSession]:
    """
    Acquire a compute slot for the duration of a fit or inference run.
    
    Blocks while all slots are taken. The yielded session names the
    torch device the run should use.
    
    Args:
        name: Label used in log messages
    """
    slots = _get_slots()
    slots.acquire()
    try:
        device = torch.device('cuda' if torch.cuda.is_available() else 'cpu')
        logger.debug(f"Acquired compute slot for {name} on {device}")
        yield ComputeSession(name, device)
    finally:
        slots.release()
        logger.debug(f"Released compute slot for {name}")


class TrainingExecutor:
    """
    Thread pool for background training runs.
    
    Each task closes the worker thread's database connections when it
    finishes so long-lived workers never hold stale connections.
    """
    
    def __init__(self, max_workers: Optional[int] = None):
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix='matcher-train',
        )
    
    @staticmethod
    def _run(fn: Callable, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        finally:
            connections.close_all()
    
    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        return self._pool.submit(self._run, fn, *args, **kwargs)
    
    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)


def get_training_executor() -> TrainingExecutor:
    """Return the process-wide training executor, creating it on first use."""
    global _default_executor
    with _guard:
        if _default_executor is None:
            workers = getattr(settings, 'MATCHER_TRAINING_WORKERS', 2)
            _default_executor = TrainingExecutor(max_workers=max(1, int(workers)))
        return _default_executor
