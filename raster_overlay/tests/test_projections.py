import numpy as np
import pytest

from raster_overlay.projections import ProjectionRegistry, as_epsg, map_projector, utm_zone


def test_utm_zone_from_code():
    assert utm_zone(32633) == (33, False)
    assert utm_zone(32733) == (33, True)
    assert utm_zone(32601) == (1, False)
    assert utm_zone(32760) == (60, True)
    assert utm_zone(4326) is None
    assert utm_zone(99999) is None


def test_as_epsg_rejects_non_integers():
    assert as_epsg("32633") == 32633
    assert as_epsg(4326.0) == 4326
    assert as_epsg(None) is None
    assert as_epsg(float("nan")) is None
    assert as_epsg(12.5) is None
    assert as_epsg("EPSG:4326") is None


@pytest.mark.parametrize("use_database", [True, False])
def test_utm_north_definition(use_database):
    reg = ProjectionRegistry(use_database=use_database)
    assert reg.ensure_definition(32633)
    lon, lat = reg.to_geographic(32633, [500000.0], [0.0])
    assert lon[0] == pytest.approx(15.0, abs=1e-6)
    assert lat[0] == pytest.approx(0.0, abs=1e-6)


@pytest.mark.parametrize("use_database", [True, False])
def test_utm_south_definition(use_database):
    reg = ProjectionRegistry(use_database=use_database)
    assert reg.ensure_definition(32733)
    lon, lat = reg.to_geographic(32733, [500000.0], [10_000_000.0])
    assert lon[0] == pytest.approx(15.0, abs=1e-6)
    assert lat[0] == pytest.approx(0.0, abs=1e-6)
    lon, lat = reg.to_geographic(32733, [500000.0], [5_000_000.0])
    assert lat[0] < 0


def test_synthesized_definition_is_registered_once():
    reg = ProjectionRegistry(use_database=False)
    assert 32633 not in reg
    assert reg.ensure_definition(32633)
    crs = reg.crs(32633)
    assert 32633 in reg
    assert reg.ensure_definition(32633)
    assert reg.crs(32633) is crs


@pytest.mark.parametrize("use_database", [True, False])
def test_unknown_code_has_no_side_effect(use_database):
    reg = ProjectionRegistry(use_database=use_database)
    assert not reg.ensure_definition(99999)
    assert 99999 not in reg
    assert reg.crs(99999) is None
    with pytest.raises(KeyError):
        reg.to_geographic(99999, [0.0], [0.0])


def test_custom_definition():
    reg = ProjectionRegistry(use_database=False)
    assert not reg.ensure_definition(3035)
    assert reg.define(3035, "+proj=laea +lat_0=52 +lon_0=10 +x_0=4321000 +y_0=3210000 +ellps=GRS80 +units=m +no_defs")
    assert reg.ensure_definition(3035)
    lon, lat = reg.to_geographic(3035, [4321000.0], [3210000.0])
    assert lon[0] == pytest.approx(10.0, abs=1e-6)
    assert lat[0] == pytest.approx(52.0, abs=1e-6)


def test_round_trip_through_registry(projections):
    x, y = projections.from_geographic(32633, [14.0, 16.0], [41.0, 43.0])
    lon, lat = projections.to_geographic(32633, x, y)
    assert np.allclose(lon, [14.0, 16.0], atol=1e-7)
    assert np.allclose(lat, [41.0, 43.0], atol=1e-7)


def test_map_projector_is_web_mercator():
    project = map_projector()
    x, y = project([0.0, 180.0], [0.0, 0.0])
    assert x[0] == pytest.approx(0.0, abs=1e-6)
    assert y[0] == pytest.approx(0.0, abs=1e-6)
    assert x[1] == pytest.approx(20037508.342789244, rel=1e-9)
    # poles are clamped like the map widget does
    _, y_pole = project([0.0], [90.0])
    assert np.isfinite(y_pole[0])
