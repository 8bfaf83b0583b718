# region Imports
from typing import Tuple
import numpy as np

from raster_overlay.chunking import YieldFn, run_chunked
from raster_overlay.config import CHUNK_SIZE
from raster_overlay.models import RasterGrid
# endregion


# region Validity Mask
def valid_mask(values: np.ndarray, nodata) -> np.ndarray:
    """True where a sample is finite and not the no-data sentinel."""
    ok = np.isfinite(values)
    if nodata is not None and np.isfinite(nodata):
        ok &= values != nodata
    return ok
# endregion


# region Observed Range
def estimate_value_range(
    grid: RasterGrid,
    chunk_size: int = CHUNK_SIZE,
    yield_fn: YieldFn = None,
) -> Tuple[float, float]:
    flat = grid.data.ravel()
    lo, hi = np.inf, -np.inf

    def scan(start: int, end: int):
        nonlocal lo, hi
        block = flat[start:end]
        v = block[valid_mask(block, grid.nodata)]
        if v.size:
            lo = min(lo, float(v.min()))
            hi = max(hi, float(v.max()))

    run_chunked(flat.size, chunk_size, yield_fn, scan)

    if not np.isfinite(lo):
        lo = 0.0
    if not np.isfinite(hi):
        hi = 1.0
    return lo, hi
# endregion
