# areas.py
# ---------
# Area definitions: predefined GeoJSON files plus user-drawn polygons.
#
# Exposes:
#   - AreaRegistry              (load / add custom / delete / select)
#   - iter_rings(features)      every ring of every Polygon / MultiPolygon
#   - ring_vertices(ring)       finite (lon, lat) pairs of one ring
#   - slugify(label)

from __future__ import annotations
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import numpy as np

from raster_overlay.models import AreaDefinition, GeoBounds

logger = logging.getLogger(__name__)


# -----------------------------
# Geometry walking
# -----------------------------

def iter_rings(features: Iterable[dict]) -> Iterator[list]:
    for feature in features:
        geom = feature.get("geometry") if isinstance(feature, dict) else None
        if not isinstance(geom, dict):
            continue
        coords = geom.get("coordinates")
        if not isinstance(coords, list):
            continue
        if geom.get("type") == "Polygon":
            for ring in coords:
                yield ring
        elif geom.get("type") == "MultiPolygon":
            for poly in coords:
                if isinstance(poly, list):
                    for ring in poly:
                        yield ring


def ring_vertices(ring) -> np.ndarray:
    """(N,2) float array of the finite lon/lat pairs in a ring."""
    pts = []
    if isinstance(ring, list):
        for coord in ring:
            if not isinstance(coord, (list, tuple)) or len(coord) < 2:
                continue
            try:
                lon, lat = float(coord[0]), float(coord[1])
            except (TypeError, ValueError):
                continue
            if np.isfinite(lon) and np.isfinite(lat):
                pts.append((lon, lat))
    return np.array(pts, dtype=np.float64).reshape(-1, 2)


def area_bounds(area: AreaDefinition) -> Optional[GeoBounds]:
    rings = [ring_vertices(r) for r in iter_rings(area.features)]
    rings = [r for r in rings if len(r)]
    if not rings:
        return None
    pts = np.vstack(rings)
    return GeoBounds(west=float(pts[:, 0].min()), south=float(pts[:, 1].min()),
                     east=float(pts[:, 0].max()), north=float(pts[:, 1].max()))


def slugify(label: str) -> str:
    base = re.sub(r"[^a-z0-9]+", "-", (label or "area").lower())
    return base.strip("-") or "area"


# -----------------------------
# Registry
# -----------------------------

class AreaRegistry:
    """
    Every known area keyed by id, plus the current selection.
    Storage of custom areas is left to the caller.
    """

    def __init__(self, areas: Sequence[AreaDefinition] = ()):
        self._areas: Dict[str, AreaDefinition] = {}
        self.active_id: Optional[str] = None
        self.custom_sequence = 1
        for area in areas:
            self.register(area)

    @classmethod
    def from_directory(cls, directory) -> "AreaRegistry":
        return cls(load_area_directory(directory))

    def __contains__(self, area_id) -> bool:
        return area_id in self._areas

    def __len__(self) -> int:
        return len(self._areas)

    def get(self, area_id: Optional[str]) -> Optional[AreaDefinition]:
        return self._areas.get(area_id) if area_id else None

    def sorted_areas(self) -> List[AreaDefinition]:
        return sorted(self._areas.values(), key=lambda a: a.label)

    def register(self, area: AreaDefinition) -> bool:
        if not area.id or area.id in self._areas:
            return False
        self._areas[area.id] = area
        return True

    @property
    def active(self) -> Optional[AreaDefinition]:
        return self.get(self.active_id)

    def select(self, area_id: Optional[str]) -> Optional[str]:
        """Select an area by id; unknown ids (and None) clear the selection."""
        self.active_id = area_id if area_id in self._areas else None
        return self.active_id

    def unique_id(self, label: str) -> str:
        base = slugify(label)
        candidate, suffix = base, 1
        while candidate in self._areas:
            suffix += 1
            candidate = f"{base}-{suffix}"
        return candidate

    def add_custom(self, vertices: Sequence[Tuple[float, float]], label: Optional[str] = None,
                   select: bool = True) -> AreaDefinition:
        """Build a one-polygon area from >= 3 (lon, lat) vertices."""
        coords = [[float(lon), float(lat)] for lon, lat in vertices]
        if len(coords) < 3:
            raise ValueError("Add at least three points to complete the area.")
        if coords[0] != coords[-1]:
            coords.append(list(coords[0]))

        default_label = f"Custom area {self.custom_sequence}"
        label = label.strip() if label and label.strip() else default_label
        self.custom_sequence += 1
        area = AreaDefinition(
            id=self.unique_id(label),
            label=label,
            data={
                "type": "FeatureCollection",
                "features": [{
                    "type": "Feature",
                    "properties": {
                        "name": label,
                        "source": "custom",
                        "createdAt": datetime.now(timezone.utc).isoformat(),
                    },
                    "geometry": {"type": "Polygon", "coordinates": [coords]},
                }],
            },
            is_custom=True,
        )
        self.register(area)
        logger.info("Area %r added as %s", label, area.id)
        if select:
            self.select(area.id)
        return area

    def delete_custom(self, area_id: str) -> bool:
        area = self._areas.get(area_id)
        if area is None or not area.is_custom:
            return False
        del self._areas[area_id]
        if self.active_id == area_id:
            self.active_id = None
        logger.info("Area %r deleted", area.label)
        return True


# -----------------------------
# Loading
# -----------------------------

def load_area_file(path) -> Optional[AreaDefinition]:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Failed to parse area GeoJSON %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        return None
    return AreaDefinition(id=slugify(path.stem), label=path.stem, data=data, is_custom=False)


def load_area_directory(directory) -> List[AreaDefinition]:
    directory = Path(directory)
    if not directory.is_dir():
        return []
    areas = [load_area_file(p) for p in sorted(directory.glob("*.geojson"))]
    return sorted((a for a in areas if a is not None), key=lambda a: a.label)
