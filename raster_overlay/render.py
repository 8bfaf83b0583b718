# region Imports
import io
import numpy as np
from PIL import Image

from raster_overlay.chunking import YieldFn, run_chunked
from raster_overlay.config import CHUNK_SIZE, DEFAULT_RAMP
from raster_overlay.models import RasterGrid
from raster_overlay.ramps import get_ramp
from raster_overlay.value_range import valid_mask
# endregion


# region Colorize
def render_grid(
    grid: RasterGrid,
    ramp: str = DEFAULT_RAMP,
    chunk_size: int = CHUNK_SIZE,
    yield_fn: YieldFn = None,
) -> np.ndarray:
    """
    Colorize a scalar grid into a new (H,W,4) uint8 RGBA image.
    NaN / no-data cells are fully transparent; the rest are clamped to [0,1]
    and mapped through the ramp with alpha 255. The grid is left untouched.
    """
    fn = get_ramp(ramp)
    flat = grid.data.ravel()
    out = np.zeros((flat.size, 4), dtype=np.uint8)

    def paint(start: int, end: int):
        block = flat[start:end]
        ok = valid_mask(block, grid.nodata)
        if ok.any():
            idx = np.nonzero(ok)[0] + start
            out[idx] = fn(np.clip(block[ok], 0.0, 1.0))

    run_chunked(flat.size, chunk_size, yield_fn, paint)
    return out.reshape(grid.height, grid.width, 4)
# endregion


# region PNG Encoding
def encode_png(rgba: np.ndarray) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(rgba, dtype=np.uint8)).save(buf, "PNG")
    buf.seek(0)
    return buf.read()
# endregion
