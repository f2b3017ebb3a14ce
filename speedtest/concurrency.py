"""
Bounded fan-out over a list of inputs.
Caps simultaneous requests so public RPC endpoints are not flooded.
"""
import threading
import typing as t
from concurrent.futures import ThreadPoolExecutor

T = t.TypeVar("T")
R = t.TypeVar("R")


def bounded_map(
    items: t.Sequence[T],
    worker: t.Callable[[T, int], R],
    limit: int = 10,
) -> t.List[R]:
    """
    Run `worker(item, index)` for every item with at most `limit` in flight.

    Each pool thread keeps claiming the next unclaimed index until none remain,
    and writes its result into that slot, so the output follows input order
    whatever the completion order. The first exception raised by a worker is
    re-raised once the pool has drained; after it no new index is claimed.
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    results: t.List[t.Any] = [None] * len(items)
    if not items:
        return results

    lock = threading.Lock()
    next_index = 0
    failed = False

    def claim() -> t.Optional[int]:
        nonlocal next_index
        with lock:
            if failed or next_index >= len(items):
                return None
            i = next_index
            next_index += 1
            return i

    def run_worker() -> None:
        nonlocal failed
        while True:
            i = claim()
            if i is None:
                return
            try:
                results[i] = worker(items[i], i)
            except BaseException:
                with lock:
                    failed = True
                raise

    workers = min(limit, len(items))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(run_worker) for _ in range(workers)]

    # Pool has drained; surface the first failure in submission order
    for future in futures:
        future.result()
    return results
