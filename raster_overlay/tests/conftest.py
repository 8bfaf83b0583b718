import numpy as np
import pytest

from raster_overlay.models import GeoMetadata, RasterGrid, TiePoint
from raster_overlay.projections import ProjectionRegistry


def identity_projector(lons, lats):
    return np.asarray(lons, float), np.asarray(lats, float)


def utm_metadata(scale=10.0, easting=500000.0, northing=4649776.0, code=32633):
    return GeoMetadata(
        geo_keys={"GTModelTypeGeoKey": 1, "ProjectedCSTypeGeoKey": code, "GTRasterTypeGeoKey": 1},
        tie_points=[TiePoint(i=0, j=0, x=easting, y=northing)],
        pixel_scale=[scale, scale, 0.0],
    )


def lonlat_metadata(west=10.0, north=45.0, step=0.1):
    return GeoMetadata(
        geo_keys={"GTModelTypeGeoKey": 2, "GeographicTypeGeoKey": 4326, "GTRasterTypeGeoKey": 1},
        transform=[step, 0.0, 0.0, west,
                   0.0, -step, 0.0, north,
                   0.0, 0.0, 0.0, 0.0,
                   0.0, 0.0, 0.0, 1.0],
    )


@pytest.fixture
def projections():
    return ProjectionRegistry()


@pytest.fixture
def ramp_grid():
    # values 0..1 left to right
    return RasterGrid(np.tile(np.linspace(0.0, 1.0, 10), (5, 1)), nodata=-9999.0)


@pytest.fixture
def identity():
    return identity_projector


@pytest.fixture
def make_utm_meta():
    return utm_metadata


@pytest.fixture
def make_lonlat_meta():
    return lonlat_metadata
