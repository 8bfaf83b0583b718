import numpy as np
import pytest
import rasterio
import requests
from rasterio.transform import from_origin

from raster_overlay import decode
from raster_overlay.decode import RasterLoadError, read_raster
from raster_overlay.georef import resolve_georeference


def _write_tif(path, data, crs="EPSG:32633", transform=None, nodata=-9999.0, point=False):
    transform = transform or from_origin(500000.0, 4649776.0, 10.0, 10.0)
    with rasterio.open(
        path, "w", driver="GTiff", height=data.shape[0], width=data.shape[1], count=1,
        dtype="float32", crs=crs, transform=transform, nodata=nodata,
    ) as dst:
        dst.write(data.astype("float32"), 1)
        if point:
            dst.update_tags(AREA_OR_POINT="Point")
    return path


@pytest.fixture
def utm_tif(tmp_path):
    data = np.linspace(0.0, 1.0, 200).reshape(10, 20)
    data[0, 0] = -9999.0
    return _write_tif(tmp_path / "richness_20240601.tif", data)


def test_read_projected_tif(utm_tif):
    grid, meta = read_raster(str(utm_tif))
    assert (grid.width, grid.height) == (20, 10)
    assert grid.nodata == -9999.0
    assert grid.data[0, 0] == -9999.0
    assert meta.geo_keys["GTModelTypeGeoKey"] == 1
    assert meta.geo_keys["ProjectedCSTypeGeoKey"] == 32633
    assert meta.raster_type == 1
    assert meta.transform[:4] == [10.0, 0.0, 0.0, 500000.0]
    assert meta.transform[4:8] == [0.0, -10.0, 0.0, 4649776.0]
    assert meta.bounding_box is None


def test_read_from_bytes(utm_tif):
    grid, meta = read_raster(utm_tif.read_bytes())
    assert (grid.width, grid.height) == (20, 10)
    assert meta.geo_keys["ProjectedCSTypeGeoKey"] == 32633


def test_decoded_metadata_georeferences(utm_tif, projections):
    grid, meta = read_raster(str(utm_tif))
    geo = resolve_georeference(grid.width, grid.height, meta, projections)
    assert geo.source == "affine"
    assert geo.bbox == (500000.0, 4649676.0, 500200.0, 4649776.0)
    assert geo.bounds.north == pytest.approx(42.0, abs=0.01)


def test_geographic_tif(tmp_path):
    path = _write_tif(tmp_path / "g.tif", np.zeros((4, 4)), crs="EPSG:4326",
                      transform=from_origin(10.0, 45.0, 0.5, 0.5))
    _, meta = read_raster(str(path))
    assert meta.geo_keys["GTModelTypeGeoKey"] == 2
    assert meta.geo_keys["GeographicTypeGeoKey"] == 4326


def test_point_raster_transform_is_cell_centred(tmp_path):
    path = _write_tif(tmp_path / "p.tif", np.zeros((4, 4)), point=True,
                      transform=from_origin(99.5, 50.5, 1.0, 1.0))
    _, meta = read_raster(str(path))
    assert meta.raster_type == 2
    assert meta.transform[3] == pytest.approx(100.0)
    assert meta.transform[7] == pytest.approx(50.0)


def test_bad_bytes_raise(tmp_path):
    with pytest.raises(RasterLoadError):
        read_raster(b"definitely not a tiff")


def test_missing_file_raises(tmp_path):
    with pytest.raises(RasterLoadError):
        read_raster(str(tmp_path / "missing.tif"))


def test_url_fetch_failure_raises(monkeypatch):
    def boom(url, timeout):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(decode.requests, "get", boom)
    with pytest.raises(RasterLoadError, match="offline"):
        read_raster("https://example.org/r.tif")


def test_url_http_error_raises(monkeypatch):
    class Resp:
        status_code = 404
        reason = "Not Found"
        content = b""

    monkeypatch.setattr(decode.requests, "get", lambda url, timeout: Resp())
    with pytest.raises(RasterLoadError, match="404"):
        read_raster("http://example.org/r.tif")


def test_url_fetch_decodes_bytes(monkeypatch, utm_tif):
    class Resp:
        status_code = 200
        reason = "OK"
        content = utm_tif.read_bytes()

    monkeypatch.setattr(decode.requests, "get", lambda url, timeout: Resp())
    grid, _ = read_raster("https://example.org/r.tif")
    assert (grid.width, grid.height) == (20, 10)
