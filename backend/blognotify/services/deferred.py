"""
Deferred (fire-and-forget) side effects.

Email and push dispatch run after the request has its answer: the in-app row is the
source of truth and a slow or failing provider must never delay or fail the primary
action. Tasks are submitted here and never awaited; failures are logged, not raised.

ThreadPoolDeferredTasks is the process-wide runner (bounded pool, DISPATCH_WORKERS).
InlineDeferredTasks runs tasks immediately on the caller's thread (scripts, tests).
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from blognotify.config import settings

logger = logging.getLogger(__name__)


def _task_name(fn: Callable) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)


class DeferredTasks:
    """Interface: submit(fn, *args, **kwargs) schedules fn and returns immediately."""

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        raise NotImplementedError

    def shutdown(self, wait: bool = False) -> None:
        pass


class InlineDeferredTasks(DeferredTasks):
    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        try:
            fn(*args, **kwargs)
        except Exception as e:
            logger.warning("Deferred task %s failed: %s", _task_name(fn), e, exc_info=True)


class ThreadPoolDeferredTasks(DeferredTasks):
    def __init__(self, max_workers: int | None = None) -> None:
        self._max_workers = max(1, max_workers or settings.dispatch_workers)
        self._executor: ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="notify_dispatch",
                )
            return self._executor

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        future = self._get_executor().submit(fn, *args, **kwargs)
        name = _task_name(fn)

        def _log_failure(f: Future) -> None:
            exc = f.exception()
            if exc is not None:
                logger.warning("Deferred task %s failed: %s", name, exc, exc_info=exc)

        future.add_done_callback(_log_failure)

    def shutdown(self, wait: bool = False) -> None:
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None


_default: DeferredTasks | None = None


def get_deferred() -> DeferredTasks:
    """Process-wide runner used when callers don't pass one."""
    global _default
    if _default is None:
        _default = ThreadPoolDeferredTasks()
    return _default


def set_deferred(runner: DeferredTasks | None) -> None:
    """Swap the process-wide runner (None resets to a fresh thread pool on next use)."""
    global _default
    if _default is not None and _default is not runner:
        _default.shutdown(wait=False)
    _default = runner
