# region Imports
import logging
from typing import Optional
import numpy as np

from raster_overlay.areas import iter_rings, ring_vertices
from raster_overlay.config import NO_MASK_KEY
from raster_overlay.models import AreaDefinition, GeoBounds, OverlayEntry
from raster_overlay.projections import Projector, map_projector
# endregion

logger = logging.getLogger(__name__)

_default_projector: Optional[Projector] = None


def _projector(project: Optional[Projector]) -> Projector:
    global _default_projector
    if project is not None:
        return project
    if _default_projector is None:
        _default_projector = map_projector()
    return _default_projector


def mask_key(area: Optional[AreaDefinition]) -> str:
    return area.id if area is not None else NO_MASK_KEY


# region Polygon Coverage
def ring_coverage(xs: np.ndarray, ys: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    (H,W) bool even-odd crossing test of one ring, sampled at pixel centres
    (c + 0.5, r + 0.5). xs/ys are the ring vertices in pixel space.
    """
    px = np.arange(width, dtype=np.float64) + 0.5
    py = np.arange(height, dtype=np.float64)[:, None] + 0.5
    inside = np.zeros((height, width), dtype=bool)
    x0, y0 = np.asarray(xs, float), np.asarray(ys, float)
    x1, y1 = np.roll(x0, -1), np.roll(y0, -1)
    for ax, ay, bx, by in zip(x0, y0, x1, y1):
        if ay == by:
            continue
        spans = (ay > py) != (by > py)          # (H,1): rows this edge crosses
        x_cross = ax + (py - ay) * (bx - ax) / (by - ay)
        inside ^= spans & (px < x_cross)
    return inside


def area_coverage(
    width: int,
    height: int,
    bounds: GeoBounds,
    area: AreaDefinition,
    project: Optional[Projector] = None,
) -> Optional[np.ndarray]:
    """
    (H,W) bool, True inside the area under even-odd fill across every ring.
    Vertices are placed in pixel space through the map's planar projection
    and coverage is sampled at pixel centres.
    Returns None when nothing usable could be drawn.
    """
    if not bounds.is_valid():
        return None
    project = _projector(project)
    (nw_x, se_x), (nw_y, se_y) = project([bounds.west, bounds.east], [bounds.north, bounds.south])
    width_world = float(se_x - nw_x)
    height_world = float(nw_y - se_y)
    if (not np.isfinite(width_world) or not np.isfinite(height_world)
            or abs(width_world) < 1e-6 or abs(height_world) < 1e-6):
        return None

    cover = np.zeros((height, width), dtype=bool)
    has_path = False
    for ring in iter_rings(area.features):
        pts = ring_vertices(ring)
        if not len(pts):
            continue
        has_path = True
        if len(pts) < 3:
            continue
        px, py = project(pts[:, 0], pts[:, 1])
        xs = (np.asarray(px) - nw_x) / width_world * width
        ys = (nw_y - np.asarray(py)) / height_world * height
        cover ^= ring_coverage(xs, ys, width, height)

    if not has_path:
        return None
    return cover
# endregion


# region Compositing
def composite_area_mask(
    rgba: np.ndarray,
    bounds: Optional[GeoBounds],
    area: Optional[AreaDefinition],
    project: Optional[Projector] = None,
) -> np.ndarray:
    """
    Copy of rgba with everything outside the area made transparent.
    No area, bad bounds, zero projected extent or an empty geometry all
    return the input image unchanged.
    """
    if area is None or bounds is None:
        return rgba
    height, width = rgba.shape[:2]
    cover = area_coverage(width, height, bounds, area, project)
    if cover is None:
        logger.debug("Area %s gave no usable mask; leaving image unmasked", area.id)
        return rgba
    out = rgba.copy()
    out[..., 3] = np.where(cover, rgba[..., 3], 0)
    return out


def apply_area_mask(
    entry: OverlayEntry,
    area: Optional[AreaDefinition],
    project: Optional[Projector] = None,
    force: bool = False,
) -> bool:
    """Recompute entry.masked for the area unless the mask key is unchanged. Returns True if recomputed."""
    key = mask_key(area)
    if not force and entry.last_mask_key == key:
        return False
    entry.masked = composite_area_mask(entry.image, entry.bounds, area, project)
    entry.last_mask_key = key
    return True
# endregion
