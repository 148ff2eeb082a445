"""Fan-out/fan-in helper for per-city batch work."""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def fan_out(
    items: Sequence[T], fn: Callable[[T], R], max_workers: int = 1
) -> list[tuple[T, R | None, Exception | None]]:
    """Apply fn to every item, collecting results and errors in input order.

    An exception raised for one item is captured in that item's slot and does
    not stop the others. With max_workers > 1 items run on a thread pool.

    Returns:
        List of (item, result, error) tuples; exactly one of result/error is set
        unless fn itself returned None.
    """

    def run(item: T) -> tuple[T, R | None, Exception | None]:
        try:
            return item, fn(item), None
        except Exception as exc:  # collected per unit, reported by the caller
            return item, None, exc

    if max_workers <= 1 or len(items) <= 1:
        return [run(item) for item in items]

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(run, items))
