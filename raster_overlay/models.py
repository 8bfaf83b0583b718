# models.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import numpy as np

from raster_overlay.config import GEOGRAPHIC_EPSG, NO_MASK_KEY, PIXEL_IS_POINT


@dataclass
class RasterGrid:
    data: np.ndarray            # (H,W) float, NaN allowed
    nodata: Optional[float] = None

    def __post_init__(self):
        self.data = np.asarray(self.data, dtype=np.float64)
        if self.data.ndim != 2 or self.data.shape[0] < 1 or self.data.shape[1] < 1:
            raise ValueError(f"RasterGrid needs a non-empty 2D array, got shape {self.data.shape}")

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])


@dataclass
class TiePoint:
    i: float = 0.0
    j: float = 0.0
    k: float = 0.0
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass
class GeoMetadata:
    """
    Raw georeferencing fields as a GeoTIFF decoder reports them.

    geo_keys:      GTModelTypeGeoKey, GeographicTypeGeoKey, ProjectedCSTypeGeoKey,
                   GTRasterTypeGeoKey (1=PixelIsArea, 2=PixelIsPoint)
    transform:     16-element row-major ModelTransformation or None
    tie_points:    ModelTiepoint entries (only the first one is used)
    pixel_scale:   ModelPixelScale (sx, sy[, sz]) or None
    bounding_box:  (minx, miny, maxx, maxy) in source CRS units, or None
    """
    geo_keys: Dict[str, Any] = field(default_factory=dict)
    transform: Optional[List[float]] = None
    tie_points: List[TiePoint] = field(default_factory=list)
    pixel_scale: Optional[List[float]] = None
    bounding_box: Optional[Tuple[float, float, float, float]] = None
    nodata: Optional[float] = None
    ascii_params: Optional[str] = None

    @property
    def raster_type(self) -> Optional[int]:
        return self.geo_keys.get("GTRasterTypeGeoKey") or self.geo_keys.get("RasterTypeGeoKey")


@dataclass(frozen=True)
class GeoBounds:
    west: float
    south: float
    east: float
    north: float

    def is_valid(self) -> bool:
        vals = (self.west, self.south, self.east, self.north)
        return all(np.isfinite(v) for v in vals) and self.south <= self.north


@dataclass(frozen=True)
class GeoReference:
    width: int
    height: int
    crs_code: Optional[int]
    projection_defined: bool
    raster_type: Optional[int]
    bbox: Tuple[float, float, float, float]   # source CRS units
    bounds: GeoBounds                         # lon/lat envelope
    source: str                               # which transform source produced bbox

    @property
    def is_point(self) -> bool:
        return self.raster_type == PIXEL_IS_POINT

    @property
    def raster_type_label(self) -> str:
        return "PixelIsPoint" if self.is_point else "PixelIsArea"

    @property
    def needs_reprojection(self) -> bool:
        return (self.crs_code is not None and self.crs_code != GEOGRAPHIC_EPSG
                and self.projection_defined)


@dataclass
class OverlayEntry:
    raster_id: str
    grid: RasterGrid
    bounds: GeoBounds
    image: np.ndarray                        # (H,W,4) uint8, unmasked
    status_text: str = ""
    obs_range: Tuple[float, float] = (0.0, 1.0)
    masked: Optional[np.ndarray] = None      # last composited image
    last_mask_key: Optional[str] = None
    visible: bool = False
    opacity: float = 0.8
    iso_date: Optional[str] = None
    display_date: Optional[str] = None
    reprojected_from: Optional[Tuple[int, int]] = None

    @property
    def display_image(self) -> np.ndarray:
        return self.masked if self.masked is not None else self.image

    @property
    def mask_applied(self) -> bool:
        return self.last_mask_key not in (None, NO_MASK_KEY)


@dataclass
class AreaDefinition:
    id: str
    label: str
    data: Dict[str, Any]      # GeoJSON FeatureCollection, lon/lat
    is_custom: bool = False

    @property
    def features(self) -> List[Dict[str, Any]]:
        feats = self.data.get("features") if isinstance(self.data, dict) else None
        return feats if isinstance(feats, list) else []
