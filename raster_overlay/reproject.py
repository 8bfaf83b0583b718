# region Imports
import logging
from typing import Optional, Tuple
import numpy as np

from raster_overlay.chunking import YieldFn, rows_per_chunk, run_chunked
from raster_overlay.config import CHUNK_SIZE, MAX_OUTPUT_WIDTH
from raster_overlay.georef import inverse_model, pixel_models
from raster_overlay.models import GeoMetadata, GeoReference, RasterGrid
from raster_overlay.projections import ProjectionRegistry
# endregion

logger = logging.getLogger(__name__)


# region Output Size
def output_shape(width: int, height: int, max_width: int = MAX_OUTPUT_WIDTH) -> Tuple[int, int]:
    """(W_out, H_out): width capped at max_width, aspect ratio kept, both >= 2."""
    w_out = max(2, min(int(width), int(max_width)))
    h_out = max(2, int(np.floor(height * (w_out / width) + 0.5)))
    return w_out, h_out
# endregion


# region Warp to lon/lat
def reproject_grid(
    grid: RasterGrid,
    georef: GeoReference,
    meta: Optional[GeoMetadata],
    projections: ProjectionRegistry,
    max_width: int = MAX_OUTPUT_WIDTH,
    chunk_size: int = CHUNK_SIZE,
    yield_fn: YieldFn = None,
) -> RasterGrid:
    """
    Resample a projected-CRS grid onto a regular lon/lat grid spanning
    georef.bounds. Inverse mapping: every output cell centre goes lon/lat ->
    source CRS -> source pixel; PixelIsPoint rounds to the nearest index,
    PixelIsArea floors. Cells that land outside the source are NaN.
    """
    if not georef.needs_reprojection:
        raise ValueError(f"EPSG:{georef.crs_code} does not need (or support) reprojection")

    meta = meta or GeoMetadata()
    W, H = grid.width, grid.height
    w_out, h_out = output_shape(W, H, max_width)
    out = np.full((h_out, w_out), np.nan, dtype=np.float64)

    model = inverse_model(pixel_models(W, H, meta, georef.bbox))
    if model is None:
        logger.warning("No invertible pixel model for EPSG:%s; output is empty", georef.crs_code)
        return RasterGrid(out, nodata=grid.nodata)
    logger.debug("Reprojecting %dx%d -> %dx%d via %s model", W, H, w_out, h_out, model.kind)

    b = georef.bounds
    d_lon = (b.east - b.west) / w_out
    d_lat = (b.north - b.south) / h_out
    lons = b.west + (np.arange(w_out) + 0.5) * d_lon
    src = grid.data

    def warp_rows(r0: int, r1: int):
        lats = b.north - (np.arange(r0, r1) + 0.5) * d_lat
        lon2, lat2 = np.meshgrid(lons, lats)
        X, Y = projections.from_geographic(georef.crs_code, lon2, lat2)
        pi, pj = model.world_to_pixel(X, Y)
        with np.errstate(invalid="ignore"):
            if georef.is_point:
                ii = np.floor(pi + 0.5)
                jj = np.floor(pj + 0.5)
            else:
                ii = np.floor(pi)
                jj = np.floor(pj)
            inside = (np.isfinite(ii) & np.isfinite(jj)
                      & (ii >= 0) & (ii < W) & (jj >= 0) & (jj < H))
        block = out[r0:r1]
        block[inside] = src[jj[inside].astype(np.intp), ii[inside].astype(np.intp)]

    run_chunked(h_out, rows_per_chunk(w_out, chunk_size), yield_fn, warp_rows)
    return RasterGrid(out, nodata=grid.nodata)
# endregion
