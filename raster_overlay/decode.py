# decode.py
import logging
from typing import Tuple, Union
import numpy as np
import requests
import rasterio
from rasterio.errors import RasterioError
from rasterio.io import MemoryFile
from rasterio.transform import Affine

from raster_overlay.config import (
    MODEL_GEOGRAPHIC, MODEL_PROJECTED, PIXEL_IS_AREA, PIXEL_IS_POINT,
)
from raster_overlay.models import GeoMetadata, RasterGrid

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 30


class RasterLoadError(RuntimeError):
    """Raster bytes could not be fetched or decoded."""


def _is_url(source) -> bool:
    return isinstance(source, str) and source.lower().startswith(("http://", "https://"))


def fetch_bytes(url: str) -> bytes:
    try:
        r = requests.get(url, timeout=FETCH_TIMEOUT)
    except requests.RequestException as e:
        raise RasterLoadError(f"Failed to fetch GeoTIFF: {e}") from e
    if r.status_code != 200:
        raise RasterLoadError(f"Failed to fetch GeoTIFF ({r.status_code} {r.reason})")
    return r.content


def metadata_from_dataset(ds) -> GeoMetadata:
    geo_keys = {}
    crs = ds.crs
    epsg = crs.to_epsg() if crs else None
    if crs:
        if crs.is_geographic:
            geo_keys["GTModelTypeGeoKey"] = MODEL_GEOGRAPHIC
            if epsg is not None:
                geo_keys["GeographicTypeGeoKey"] = epsg
        else:
            geo_keys["GTModelTypeGeoKey"] = MODEL_PROJECTED
            if epsg is not None:
                geo_keys["ProjectedCSTypeGeoKey"] = epsg

    point = str(ds.tags().get("AREA_OR_POINT", "Area")).lower() == "point"
    geo_keys["GTRasterTypeGeoKey"] = PIXEL_IS_POINT if point else PIXEL_IS_AREA

    matrix = None
    tf = ds.transform
    if tf is not None and not tf.is_identity:
        if point:
            # GDAL shifts PixelIsPoint transforms to the pixel corner; undo that
            tf = tf * Affine.translation(0.5, 0.5)
        matrix = [tf.a, tf.b, 0.0, tf.c,
                  tf.d, tf.e, 0.0, tf.f,
                  0.0, 0.0, 0.0, 0.0,
                  0.0, 0.0, 0.0, 1.0]

    return GeoMetadata(
        geo_keys=geo_keys,
        transform=matrix,
        nodata=ds.nodata,
        ascii_params=crs.to_string() if crs else None,
    )


def read_dataset(ds) -> Tuple[RasterGrid, GeoMetadata]:
    if ds.count < 1:
        raise RasterLoadError("GeoTIFF has no bands")
    meta = metadata_from_dataset(ds)
    arr = ds.read(1).astype(np.float64)
    return RasterGrid(arr, nodata=meta.nodata), meta


def read_raster(source: Union[str, bytes]) -> Tuple[RasterGrid, GeoMetadata]:
    """
    Decode band 1 of a GeoTIFF from a path, an http(s) URL or raw bytes.
    Any failure is raised as RasterLoadError.
    """
    try:
        if _is_url(source):
            source = fetch_bytes(source)
        if isinstance(source, (bytes, bytearray)):
            with MemoryFile(bytes(source)) as mem:
                with mem.open() as ds:
                    return read_dataset(ds)
        with rasterio.open(source) as ds:
            return read_dataset(ds)
    except RasterLoadError:
        raise
    except (RasterioError, OSError, ValueError) as e:
        logger.error("Failed to decode raster %s: %s", source if isinstance(source, str) else "<bytes>", e)
        raise RasterLoadError(f"Failed to decode GeoTIFF: {e}") from e
