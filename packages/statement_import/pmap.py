"""Order-preserving bounded-concurrency map over a thread pool.

Used to run independent statement imports side by side. At most
``concurrency`` mapper calls run at once; new work is submitted only as
earlier calls finish, so large job lists are never fanned out all at once.

``stop_on_error=True`` (default) re-raises the first failure and cancels work
that has not started. With ``False`` every job runs and failures are raised
together as an ``ExceptionGroup``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    stop_on_error: bool = True,
) -> list[OutT]:
    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    items = enumerate(iterable)
    results: dict[int, OutT] = {}
    errors: list[Exception] = []
    owners: dict[Future[OutT], int] = {}

    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="p_map") as pool:

        def _submit_next() -> bool:
            nxt = next(items, None)
            if nxt is None:
                return False
            idx, item = nxt
            owners[pool.submit(mapper, item)] = idx
            return True

        for _ in range(concurrency):
            if not _submit_next():
                break

        while owners:
            done, _pending = wait(set(owners), return_when=FIRST_COMPLETED)
            for fut in done:
                idx = owners.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception as e:  # noqa: BLE001
                    if stop_on_error:
                        pool.shutdown(wait=False, cancel_futures=True)
                        raise
                    errors.append(e)
                # Keep the window full: one new job per finished one.
                _submit_next()

    if errors:
        raise ExceptionGroup("p_map: one or more mapper calls failed", errors)
    return [results[i] for i in sorted(results)]


__all__ = ["p_map"]
