"""Bounded waits for blocking calls that expose no timeout of their own."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar

from lotabots.core.exceptions import LotabotsError

T = TypeVar("T")


def call_with_timeout(
    fn: Callable[[], T],
    timeout: float | None,
    on_timeout: Callable[[], LotabotsError],
    on_abandon: Callable[[Future[T]], None] | None = None,
) -> T:
    """Run ``fn`` in a worker thread and wait at most ``timeout`` seconds.

    Exceptions raised by ``fn`` propagate unchanged. On expiry the error built
    by ``on_timeout`` is raised; the worker is abandoned, not interrupted.
    ``on_abandon`` receives the still-running future before that error is
    raised, so callers can tie cleanup to the worker's actual completion.
    """
    if timeout is None:
        return fn()

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="lotabots-bounded")
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        if on_abandon is not None:
            on_abandon(future)
        raise on_timeout() from None
    finally:
        executor.shutdown(wait=False)
