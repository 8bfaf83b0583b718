# georef.py
# ---------
# GeoReference resolution for decoded rasters.
#
# Exposes:
#   - resolve_crs_code(geo_keys, override)
#   - resolve_source_bbox(width, height, meta)      -> (source tag, bbox)
#   - pixel_models(width, height, meta, bbox)       -> ranked pixel<->world models
#   - resolve_georeference(width, height, meta, projections, override)
#
# Nothing in here raises on missing or odd metadata; every step has a
# deterministic fallback.

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple
import numpy as np
from rasterio.transform import Affine

from raster_overlay.config import (
    DEFAULT_BBOX, GEOGRAPHIC_EPSG, MODEL_GEOGRAPHIC, MODEL_PROJECTED, PIXEL_IS_POINT,
)
from raster_overlay.models import GeoBounds, GeoMetadata, GeoReference, TiePoint
from raster_overlay.projections import ProjectionRegistry, as_epsg

logger = logging.getLogger(__name__)

BBox = Tuple[float, float, float, float]


# -----------------------------
# Small helpers
# -----------------------------

def _finite_or(v, default: float) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return default
    return f if np.isfinite(f) else default


def _nonzero_or(v, default: float) -> float:
    """0, NaN and non-numbers all give the default."""
    f = _finite_or(v, 0.0)
    return f if f != 0.0 else default


def _half(meta: GeoMetadata) -> float:
    return 0.5 if meta.raster_type == PIXEL_IS_POINT else 0.0


def pixel_corners(width: int, height: int, half: float) -> np.ndarray:
    return np.array([
        [-half, -half],
        [width - half, -half],
        [width - half, height - half],
        [-half, height - half],
    ], dtype=np.float64)


def _envelope(xs, ys) -> BBox:
    xs = np.asarray(xs, float)
    ys = np.asarray(ys, float)
    return float(xs.min()), float(ys.min()), float(xs.max()), float(ys.max())


def _first_tie(meta: GeoMetadata) -> Optional[TiePoint]:
    return meta.tie_points[0] if meta.tie_points else None


def _has_scale(meta: GeoMetadata) -> bool:
    try:
        return len(meta.pixel_scale) >= 2
    except TypeError:
        return False


def _finite_values(values, n: int) -> Optional[Tuple[float, ...]]:
    """values as n finite floats, or None if any entry is missing or unusable."""
    try:
        if len(values) != n:
            return None
    except TypeError:
        return None
    out = tuple(_finite_or(v, np.nan) for v in values)
    return out if all(np.isfinite(out)) else None


def _matrix(meta: GeoMetadata) -> Optional[Tuple[float, ...]]:
    return _finite_values(meta.transform, 16)


def _has_matrix(meta: GeoMetadata) -> bool:
    return _matrix(meta) is not None


# -----------------------------
# CRS selection
# -----------------------------

def resolve_crs_code(geo_keys: dict, override=None) -> Optional[int]:
    """override > geographic key (model 2) > projected key (model 1) > either key."""
    forced = as_epsg(override)
    if forced is not None:
        return forced
    model = geo_keys.get("GTModelTypeGeoKey")
    geographic = as_epsg(geo_keys.get("GeographicTypeGeoKey"))
    projected = as_epsg(geo_keys.get("ProjectedCSTypeGeoKey"))
    if model == MODEL_GEOGRAPHIC and geographic is not None:
        return geographic
    if model == MODEL_PROJECTED and projected is not None:
        return projected
    return geographic if geographic is not None else projected


# -----------------------------
# Pixel <-> world models
# -----------------------------

@dataclass(frozen=True)
class MatrixModel:
    """4x4 ModelTransformation with homogeneous divide."""
    m: Tuple[float, ...]
    kind: str = "affine"

    def pixel_to_world(self, i, j):
        m = self.m
        i = np.asarray(i, float)
        j = np.asarray(j, float)
        x = m[0] * i + m[1] * j + m[3]
        y = m[4] * i + m[5] * j + m[7]
        w = m[12] * i + m[13] * j + m[15]
        w = np.where(w == 0, 1.0, w)
        return x / w, y / w

    def affine(self) -> Optional[Affine]:
        """The 2D affine part, or None with perspective terms or a singular matrix."""
        m = self.m
        if abs(m[12]) >= 1e-12 or abs(m[13]) >= 1e-12:
            return None
        aff = Affine(m[0], m[1], m[3], m[4], m[5], m[7])
        if abs(aff.determinant) <= 1e-12:
            return None
        return aff

    @property
    def invertible(self) -> bool:
        return self.affine() is not None

    def world_to_pixel(self, x, y):
        inv = ~self.affine()
        x = np.asarray(x, float)
        y = np.asarray(y, float)
        return inv.a * x + inv.b * y + inv.c, inv.d * x + inv.e * y + inv.f

    @property
    def has_rotation(self) -> bool:
        return abs(self.m[1]) > 1e-12 or abs(self.m[4]) > 1e-12


@dataclass(frozen=True)
class TiePointModel:
    i0: float
    j0: float
    x0: float
    y0: float
    sx: float
    sy: float
    kind: str = "tiepoint"
    invertible: bool = True

    def pixel_to_world(self, i, j):
        i = np.asarray(i, float)
        j = np.asarray(j, float)
        return self.x0 + (i - self.i0) * self.sx, self.y0 - (j - self.j0) * self.sy

    def world_to_pixel(self, x, y):
        x = np.asarray(x, float)
        y = np.asarray(y, float)
        return (x - self.x0) / self.sx + self.i0, (self.y0 - y) / self.sy + self.j0


@dataclass(frozen=True)
class LinearBBoxModel:
    bbox: BBox
    width: int
    height: int
    kind: str = "bbox"

    @property
    def invertible(self) -> bool:
        return self.bbox[2] != self.bbox[0] and self.bbox[3] != self.bbox[1]

    def pixel_to_world(self, i, j):
        x0, y0, x1, y1 = self.bbox
        i = np.asarray(i, float)
        j = np.asarray(j, float)
        return x0 + (i / self.width) * (x1 - x0), y1 - (j / self.height) * (y1 - y0)

    def world_to_pixel(self, x, y):
        x0, y0, x1, y1 = self.bbox
        x = np.asarray(x, float)
        y = np.asarray(y, float)
        return (x - x0) / (x1 - x0) * self.width, (y1 - y) / (y1 - y0) * self.height


def _tie_model(meta: GeoMetadata, bbox: Optional[BBox], width: int, height: int) -> TiePointModel:
    t = _first_tie(meta)
    sc = meta.pixel_scale
    if bbox is None:
        # used while the bbox is still being resolved
        x0_def, y0_def, sx_def, sy_def = 0.0, 0.0, 1.0, 1.0
    else:
        x0_def, y0_def = bbox[0], bbox[3]
        sx_def = _nonzero_or((bbox[2] - bbox[0]) / width, 1.0)
        sy_def = _nonzero_or((bbox[3] - bbox[1]) / height, 1.0)
    return TiePointModel(
        i0=_finite_or(t.i, 0.0), j0=_finite_or(t.j, 0.0),
        x0=_finite_or(t.x, x0_def), y0=_finite_or(t.y, y0_def),
        sx=_nonzero_or(sc[0], sx_def), sy=_nonzero_or(sc[1], sy_def),
    )


def pixel_models(width: int, height: int, meta: GeoMetadata, bbox: BBox) -> List:
    """Applicable pixel<->world models, best first; the linear bbox model always closes the list."""
    models = []
    if _has_matrix(meta):
        models.append(MatrixModel(_matrix(meta)))
    if _first_tie(meta) is not None and _has_scale(meta):
        models.append(_tie_model(meta, bbox, width, height))
    models.append(LinearBBoxModel(tuple(bbox), width, height))
    return models


def inverse_model(models: Sequence):
    """First model that can map world -> pixel, or None."""
    for m in models:
        if m.invertible:
            return m
    return None


# -----------------------------
# Source bbox (ranked sources)
# -----------------------------

def _bbox_from_library(width, height, meta: GeoMetadata) -> Optional[BBox]:
    bb = _finite_values(meta.bounding_box, 4)
    if bb is None:
        return None
    if meta.raster_type == PIXEL_IS_POINT and _has_scale(meta):
        sx = abs(_finite_or(meta.pixel_scale[0], 0.0))
        sy = abs(_finite_or(meta.pixel_scale[1], 0.0))
        if sx > 0 and sy > 0:
            return bb[0] - sx / 2, bb[1] - sy / 2, bb[2] + sx / 2, bb[3] + sy / 2
    return bb


def _bbox_from_matrix(width, height, meta: GeoMetadata) -> Optional[BBox]:
    if not _has_matrix(meta):
        return None
    model = MatrixModel(_matrix(meta))
    c = pixel_corners(width, height, _half(meta))
    return _envelope(*model.pixel_to_world(c[:, 0], c[:, 1]))


def _bbox_from_tiepoint(width, height, meta: GeoMetadata) -> Optional[BBox]:
    if _first_tie(meta) is None or not _has_scale(meta):
        return None
    model = _tie_model(meta, None, width, height)
    c = pixel_corners(width, height, _half(meta))
    return _envelope(*model.pixel_to_world(c[:, 0], c[:, 1]))


def _bbox_default(width, height, meta: GeoMetadata) -> Optional[BBox]:
    return DEFAULT_BBOX


BBOX_SOURCES: Tuple[Tuple[str, Callable[..., Optional[BBox]]], ...] = (
    ("library", _bbox_from_library),
    ("affine", _bbox_from_matrix),
    ("tiepoint", _bbox_from_tiepoint),
    ("default", _bbox_default),
)


def resolve_source_bbox(width: int, height: int, meta: GeoMetadata) -> Tuple[str, BBox]:
    for name, source in BBOX_SOURCES:
        bbox = source(width, height, meta)
        if bbox is not None:
            return name, bbox
    return "default", DEFAULT_BBOX


# -----------------------------
# GeoReference
# -----------------------------

def _log_diagnostics(meta: GeoMetadata, code: Optional[int], label: str):
    logger.debug("GeoTIFF info: %s", label)
    logger.debug("  GeoKeys: %s", meta.geo_keys)
    logger.debug("  RasterType (1=Area,2=Point): %s", meta.raster_type)
    logger.debug("  Proj code: %s", code)
    if meta.ascii_params:
        logger.debug("  GeoAsciiParams: %s", meta.ascii_params)
    if _has_matrix(meta):
        rot = MatrixModel(_matrix(meta)).has_rotation
        logger.debug("  Has transform: True, rotation/shear: %s", rot)
        if rot:
            logger.warning("%s: raster has rotation/shear; an axis-aligned overlay may misalign.", label)
    else:
        logger.debug("  Has transform: False")
    if meta.tie_points:
        logger.debug("  First tiepoint: %s", meta.tie_points[0])
    if meta.pixel_scale is not None:
        logger.debug("  ModelPixelScale: %s", meta.pixel_scale)


def resolve_georeference(
    width: int,
    height: int,
    meta: Optional[GeoMetadata],
    projections: ProjectionRegistry,
    override=None,
    label: str = "raster",
) -> GeoReference:
    """
    Geographic footprint of a raster.

    Geographic (EPSG:4326) or unknown CRS: the source bbox is read as lon/lat.
    Any other code: the four pixel corners are mapped to world coordinates and
    then to lon/lat, and their axis-aligned envelope is kept. That envelope is
    an approximation and does not account for curvature across the extent.
    A code without a usable definition falls back to the lon/lat reading and
    reports projection_defined=False.
    """
    meta = meta or GeoMetadata()
    code = resolve_crs_code(meta.geo_keys, override)
    _log_diagnostics(meta, code, label)

    source, bbox = resolve_source_bbox(width, height, meta)
    projection_defined = False
    bounds = None

    if code is not None and code != GEOGRAPHIC_EPSG:
        projection_defined = projections.ensure_definition(code)
        if projection_defined:
            model = pixel_models(width, height, meta, bbox)[0]
            c = pixel_corners(width, height, _half(meta))
            xs, ys = model.pixel_to_world(c[:, 0], c[:, 1])
            lons, lats = projections.to_geographic(code, xs, ys)
            w, s, e, n = _envelope(lons, lats)
            bounds = GeoBounds(west=w, south=s, east=e, north=n)
        else:
            logger.warning("%s: EPSG:%s has no projection definition; displaying without reprojection.",
                           label, code)

    if bounds is None:
        bounds = GeoBounds(west=min(bbox[0], bbox[2]), south=min(bbox[1], bbox[3]),
                           east=max(bbox[0], bbox[2]), north=max(bbox[1], bbox[3]))

    return GeoReference(
        width=int(width),
        height=int(height),
        crs_code=code,
        projection_defined=projection_defined,
        raster_type=meta.raster_type,
        bbox=tuple(float(v) for v in bbox),
        bounds=bounds,
        source=source,
    )
