"""Projection registry: EPSG code -> usable transforms to/from lon/lat.

Lookups go to the PROJ database first; WGS84 UTM codes unknown to it are
synthesized from the zone number and hemisphere encoded in the code.
"""
from __future__ import annotations
import logging
from typing import Callable, Dict, Optional, Tuple
import numpy as np
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from raster_overlay.config import GEOGRAPHIC_EPSG, MAP_EPSG, UTM_NORTH, UTM_SOUTH

logger = logging.getLogger(__name__)

Projector = Callable[[np.ndarray, np.ndarray], Tuple[np.ndarray, np.ndarray]]
MAX_MERCATOR_LAT = 85.0511287798


# region UTM Helpers
def utm_zone(code) -> Optional[Tuple[int, bool]]:
    """(zone, south) for a WGS84 UTM code, else None."""
    code = as_epsg(code)
    if code is None:
        return None
    if UTM_NORTH[0] <= code <= UTM_NORTH[1]:
        return code - (UTM_NORTH[0] - 1), False
    if UTM_SOUTH[0] <= code <= UTM_SOUTH[1]:
        return code - (UTM_SOUTH[0] - 1), True
    return None


def utm_proj_string(zone: int, south: bool) -> str:
    return (f"+proj=utm +zone={zone} +datum=WGS84 {'+south ' if south else ''}"
            "+units=m +no_defs +type=crs")


def as_epsg(code) -> Optional[int]:
    if code is None or isinstance(code, bool):
        return None
    try:
        f = float(code)
    except (TypeError, ValueError):
        return None
    if not np.isfinite(f) or f != int(f):
        return None
    return int(f)
# endregion


# region Registry
class ProjectionRegistry:
    """
    Owns every CRS definition and transformer handed out during a session.
    Registration is idempotent; failed lookups leave no trace.
    """

    def __init__(self, use_database: bool = True):
        self.use_database = use_database
        self._defs: Dict[int, CRS] = {}
        self._to_geo: Dict[int, Transformer] = {}
        self._from_geo: Dict[int, Transformer] = {}
        self._geographic = CRS.from_epsg(GEOGRAPHIC_EPSG)

    def __contains__(self, code) -> bool:
        return as_epsg(code) in self._defs

    def define(self, code: int, definition: str) -> bool:
        """Register a PROJ string / WKT for code. Returns False if unusable."""
        code = as_epsg(code)
        if code is None:
            return False
        try:
            crs = CRS.from_user_input(definition)
        except CRSError as e:
            logger.warning("EPSG:%s definition rejected: %s", code, e)
            return False
        return self._register(code, crs)

    def ensure_definition(self, code) -> bool:
        code = as_epsg(code)
        if code is None:
            return False
        if code in self._defs:
            return True

        if self.use_database:
            try:
                crs = CRS.from_epsg(code)
            except CRSError:
                crs = None
            if crs is not None and self._register(code, crs):
                return True

        zone = utm_zone(code)
        if zone is None:
            logger.debug("EPSG:%s is not a known or synthesizable projection", code)
            return False
        number, south = zone
        logger.info("Synthesizing UTM zone %d%s for EPSG:%s", number, "S" if south else "N", code)
        return self._register(code, CRS.from_proj4(utm_proj_string(number, south)))

    def crs(self, code) -> Optional[CRS]:
        return self._defs.get(as_epsg(code))

    def _register(self, code: int, crs: CRS) -> bool:
        try:
            to_geo = Transformer.from_crs(crs, self._geographic, always_xy=True)
            from_geo = Transformer.from_crs(self._geographic, crs, always_xy=True)
        except (CRSError, ProjError) as e:
            logger.warning("EPSG:%s has no usable transform to EPSG:%d: %s", code, GEOGRAPHIC_EPSG, e)
            return False
        self._defs[code] = crs
        self._to_geo[code] = to_geo
        self._from_geo[code] = from_geo
        return True

    # region Transforms
    def to_geographic(self, code, xs, ys) -> Tuple[np.ndarray, np.ndarray]:
        if not self.ensure_definition(code):
            raise KeyError(f"EPSG:{code} is not defined")
        lon, lat = self._to_geo[as_epsg(code)].transform(np.asarray(xs, float), np.asarray(ys, float))
        return np.asarray(lon, float), np.asarray(lat, float)

    def from_geographic(self, code, lons, lats) -> Tuple[np.ndarray, np.ndarray]:
        if not self.ensure_definition(code):
            raise KeyError(f"EPSG:{code} is not defined")
        x, y = self._from_geo[as_epsg(code)].transform(np.asarray(lons, float), np.asarray(lats, float))
        return np.asarray(x, float), np.asarray(y, float)
    # endregion
# endregion


# region Map Projection
def map_projector(epsg: int = MAP_EPSG) -> Projector:
    """lon/lat -> planar x/y of the map widget (Web Mercator by default)."""
    tf = Transformer.from_crs(GEOGRAPHIC_EPSG, epsg, always_xy=True)

    def project(lons, lats):
        lats = np.clip(np.asarray(lats, float), -MAX_MERCATOR_LAT, MAX_MERCATOR_LAT)
        x, y = tf.transform(np.asarray(lons, float), lats)
        return np.asarray(x, float), np.asarray(y, float)

    return project
# endregion
