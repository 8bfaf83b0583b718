# region Imports
from typing import Callable, Optional
# endregion

YieldFn = Optional[Callable[[], None]]


# region Chunked Runner
def run_chunked(
    total: int,
    chunk_size: int,
    yield_fn: YieldFn,
    body: Callable[[int, int], None],
) -> int:
    """
    Call body(start, end) over [0, total) in blocks of chunk_size, handing
    control to yield_fn between blocks (never after the last one).
    Returns the number of blocks processed.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    blocks = 0
    start = 0
    while start < total:
        end = min(start + chunk_size, total)
        body(start, end)
        blocks += 1
        start = end
        if start < total and yield_fn is not None:
            yield_fn()
    return blocks


def rows_per_chunk(width: int, chunk_size: int) -> int:
    return max(1, chunk_size // max(1, width))
# endregion
