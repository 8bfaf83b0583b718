"""Georeferenced raster overlays: GeoReference resolution, warping to lon/lat,
colorization and area masking for a web map."""

__version__ = "0.1.0"
