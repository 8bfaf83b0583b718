"""Overlay context: the session object that owns every cache of the pipeline.

One OverlayContext holds the GeoReference cache, the overlay registry and the
projection registry, plus the UI signals (ramp, smoothing, selected area).
Nothing recomputes on its own; every re-render is an explicit call.
"""
from __future__ import annotations
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from raster_overlay.areas import AreaRegistry
from raster_overlay.catalog import format_display_date, normalize_date
from raster_overlay.chunking import YieldFn
from raster_overlay.config import (
    CHUNK_SIZE, DEFAULT_RAMP, FORCE_EPSG, GEOGRAPHIC_EPSG, MAX_OUTPUT_WIDTH, VALUE_DOMAIN,
)
from raster_overlay.decode import RasterLoadError
from raster_overlay.georef import resolve_georeference
from raster_overlay.mask import apply_area_mask
from raster_overlay.models import (
    AreaDefinition, GeoMetadata, GeoReference, OverlayEntry, RasterGrid,
)
from raster_overlay.projections import ProjectionRegistry, Projector
from raster_overlay.ramps import RAMPS
from raster_overlay.render import render_grid
from raster_overlay.reproject import reproject_grid
from raster_overlay.value_range import estimate_value_range

logger = logging.getLogger(__name__)

Loader = Callable[[], Tuple[RasterGrid, GeoMetadata]]


def status_text(
    geo: GeoReference,
    obs_range: Tuple[float, float],
    reprojected: Optional[Tuple[int, int, int, int]] = None,
    display_date: Optional[str] = None,
) -> str:
    """e.g. '01-06-2024 • EPSG:32633→4326 • PixelIsArea • reproj:100x50→100x50 • obs:[0.000, 1.000] domain:[0,1]'"""
    crs = f"EPSG:{geo.crs_code}" if geo.crs_code is not None else "EPSG:unknown"
    if reprojected is not None:
        crs += f"→{GEOGRAPHIC_EPSG}"
    parts = [display_date] if display_date else []
    parts += [crs, geo.raster_type_label]
    if reprojected is not None:
        w, h, wo, ho = reprojected
        parts.append(f"reproj:{w}x{h}→{wo}x{ho}")
    lo, hi = obs_range
    d0, d1 = VALUE_DOMAIN
    parts.append(f"obs:[{lo:.3f}, {hi:.3f}] domain:[{d0:g},{d1:g}]")
    return " • ".join(parts)


class OverlayContext:
    def __init__(
        self,
        projections: Optional[ProjectionRegistry] = None,
        areas: Optional[AreaRegistry] = None,
        ramp: str = DEFAULT_RAMP,
        smoothing: bool = True,
        project: Optional[Projector] = None,
        chunk_size: int = CHUNK_SIZE,
        yield_fn: YieldFn = None,
        force_epsg: Optional[int] = FORCE_EPSG,
        max_width: int = MAX_OUTPUT_WIDTH,
    ):
        self.projections = projections if projections is not None else ProjectionRegistry()
        self.areas = areas if areas is not None else AreaRegistry()
        self.ramp = ramp
        self.smoothing = smoothing
        self.project = project
        self.chunk_size = chunk_size
        self.yield_fn = yield_fn
        self.force_epsg = force_epsg
        self.max_width = max_width
        self._georefs: Dict[str, GeoReference] = {}
        self._entries: Dict[str, OverlayEntry] = {}

    # region Lookups
    def __contains__(self, raster_id) -> bool:
        return raster_id in self._entries

    def entries(self) -> List[OverlayEntry]:
        return list(self._entries.values())

    def cached_georeference(self, raster_id: str) -> Optional[GeoReference]:
        return self._georefs.get(raster_id)
    # endregion

    # region GeoReference cache
    def georeference(self, raster_id: str, width: int, height: int,
                     meta: Optional[GeoMetadata]) -> GeoReference:
        """Resolved once per raster id; later calls return the cached record."""
        geo = self._georefs.get(raster_id)
        if geo is None:
            geo = resolve_georeference(width, height, meta, self.projections,
                                       override=self.force_epsg, label=raster_id)
            self._georefs[raster_id] = geo
        return geo
    # endregion

    # region Activation
    def activate(self, raster_id: str, loader: Loader, iso_date: Optional[str] = None) -> OverlayEntry:
        """
        Entry for raster_id, loading it on first use: decode, observed range,
        GeoReference, optional warp to lon/lat, colorize, mask. The entry is
        registered only once all of that succeeded.
        """
        existing = self._entries.get(raster_id)
        if existing is not None:
            return existing

        try:
            grid, meta = loader()
        except RasterLoadError:
            raise
        except (OSError, ValueError) as e:
            raise RasterLoadError(f"Failed to load {raster_id}: {e}") from e
        meta = meta or GeoMetadata()
        if grid.nodata is None and meta.nodata is not None:
            grid = RasterGrid(grid.data, nodata=meta.nodata)

        obs = estimate_value_range(grid, self.chunk_size, self.yield_fn)
        geo = self.georeference(raster_id, grid.width, grid.height, meta)

        reprojected = None
        if geo.needs_reprojection:
            warped = reproject_grid(grid, geo, meta, self.projections, self.max_width,
                                    self.chunk_size, self.yield_fn)
            reprojected = (grid.width, grid.height, warped.width, warped.height)
            grid = warped

        image = render_grid(grid, self.ramp, self.chunk_size, self.yield_fn)
        display_date = format_display_date(iso_date)
        entry = OverlayEntry(
            raster_id=raster_id,
            grid=grid,
            bounds=geo.bounds,
            image=image,
            status_text=status_text(geo, obs, reprojected, display_date),
            obs_range=obs,
            iso_date=iso_date,
            display_date=display_date,
            reprojected_from=reprojected[:2] if reprojected else None,
        )
        apply_area_mask(entry, self.areas.active, self.project, force=True)
        self._entries[raster_id] = entry
        logger.info("%s: %s", raster_id, entry.status_text)
        return entry
    # endregion

    # region UI Signals
    def set_ramp(self, name: str) -> str:
        """Switch ramps and re-colorize every loaded overlay from its retained grid."""
        name = (name or DEFAULT_RAMP).lower()
        self.ramp = name if name in RAMPS else DEFAULT_RAMP
        for entry in self._entries.values():
            entry.image = render_grid(entry.grid, self.ramp, self.chunk_size, self.yield_fn)
            apply_area_mask(entry, self.areas.active, self.project, force=True)
        return self.ramp

    def set_active_area(self, area_id: Optional[str]) -> Optional[AreaDefinition]:
        self.areas.select(area_id)
        self.apply_masks()
        return self.areas.active

    def apply_masks(self, force: bool = False) -> int:
        """Re-mask every overlay whose mask key changed. Returns how many were recomputed."""
        area = self.areas.active
        return sum(apply_area_mask(e, area, self.project, force=force) for e in self._entries.values())

    def set_smoothing(self, smoothing: bool) -> str:
        self.smoothing = bool(smoothing)
        return self.image_rendering

    @property
    def image_rendering(self) -> str:
        return "smooth" if self.smoothing else "pixelated"

    def add_custom_area(self, vertices: Sequence[Tuple[float, float]],
                        label: Optional[str] = None) -> AreaDefinition:
        area = self.areas.add_custom(vertices, label, select=True)
        self.apply_masks()
        return area

    def delete_area(self, area_id: str) -> bool:
        removed = self.areas.delete_custom(area_id)
        if removed:
            self.apply_masks()
        return removed
    # endregion

    # region Visibility
    def show(self, raster_id: str, opacity: Optional[float] = None) -> OverlayEntry:
        entry = self._entries[raster_id]
        entry.visible = True
        if opacity is not None:
            entry.opacity = min(1.0, max(0.0, float(opacity)))
        return entry

    def hide(self, raster_id: str) -> Optional[OverlayEntry]:
        """Hidden overlays stay cached for an instant re-show."""
        entry = self._entries.get(raster_id)
        if entry is not None:
            entry.visible = False
        return entry

    def basemap_date(self, fallback: Optional[str] = None) -> Optional[str]:
        """Latest date among visible overlays, else the fallback."""
        dates = sorted(d for d in (normalize_date(e.iso_date) for e in self._entries.values()
                                   if e.visible) if d)
        return dates[-1] if dates else normalize_date(fallback)
    # endregion
