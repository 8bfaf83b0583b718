# region Imports
from __future__ import annotations
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
# endregion

RASTER_EXTS = (".tif", ".tiff")
_DATE_RE = re.compile(r"20\d{6}")
_EXT_RE = re.compile(r"\.(tif|tiff)$", re.IGNORECASE)


# region Date Helpers
def extract_iso_date(file_name: str) -> Optional[str]:
    """First 20YYMMDD run in the file name as YYYY-MM-DD."""
    m = _DATE_RE.search(_EXT_RE.sub("", Path(file_name).name))
    if not m:
        return None
    s = m.group(0)
    return f"{s[0:4]}-{s[4:6]}-{s[6:8]}"


def format_display_date(iso: Optional[str]) -> Optional[str]:
    if not iso:
        return None
    parts = iso.split("-")
    if len(parts) != 3 or not all(parts):
        return iso
    y, m, d = parts
    return f"{d}-{m}-{y}"


def normalize_date(date: Optional[str]) -> Optional[str]:
    if not date:
        return None
    return re.sub(r"[^0-9-]", "", date[:10]) or None
# endregion


# region Listing
@dataclass
class RasterItem:
    file: str                    # relative to the catalog root
    label: str
    iso_date: Optional[str] = None

    @property
    def display_date(self) -> Optional[str]:
        return format_display_date(self.iso_date)

    @property
    def display_label(self) -> str:
        return self.display_date or self.label


def raster_label(file_name: str) -> str:
    return _EXT_RE.sub("", Path(file_name).name).replace("_", "-")


def list_rasters(base_dir) -> List[RasterItem]:
    base = Path(base_dir)
    if not base.is_dir():
        return []
    files = sorted(
        p.relative_to(base).as_posix()
        for p in base.rglob("*")
        if p.is_file() and p.suffix.lower() in RASTER_EXTS
    )
    return [RasterItem(file=f, label=raster_label(f), iso_date=extract_iso_date(f)) for f in files]


def latest_date(items: List[RasterItem]) -> Optional[str]:
    dates = sorted(i.iso_date for i in items if i.iso_date)
    return normalize_date(dates[-1]) if dates else None


def resolve_raster_path(base_dir, rel: str) -> Path:
    """Path of rel inside base_dir; anything escaping base_dir is rejected."""
    base = Path(base_dir).resolve()
    path = (base / (rel or "")).resolve()
    if path != base and base not in path.parents:
        raise ValueError("Invalid path")
    return path
# endregion
