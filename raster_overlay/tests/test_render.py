import io

import numpy as np
import pytest
from PIL import Image

from raster_overlay.chunking import rows_per_chunk, run_chunked
from raster_overlay.models import RasterGrid
from raster_overlay.ramps import RAMPS, get_ramp, ramp_legend, ramp_names
from raster_overlay.render import encode_png, render_grid
from raster_overlay.value_range import estimate_value_range, valid_mask


# region Chunking
def test_run_chunked_covers_range_and_yields_between_blocks():
    spans, yields = [], []
    blocks = run_chunked(10, 4, lambda: yields.append(len(spans)), lambda s, e: spans.append((s, e)))
    assert blocks == 3
    assert spans == [(0, 4), (4, 8), (8, 10)]
    assert yields == [1, 2]


def test_run_chunked_empty_and_invalid():
    assert run_chunked(0, 4, None, lambda s, e: pytest.fail("no blocks expected")) == 0
    with pytest.raises(ValueError):
        run_chunked(10, 0, None, lambda s, e: None)


def test_rows_per_chunk():
    assert rows_per_chunk(100, 1000) == 10
    assert rows_per_chunk(5000, 1000) == 1
# endregion


# region Observed Range
def test_value_range_skips_nodata_and_nan():
    data = np.array([[-9999.0, 0.25, np.nan], [3.5, np.inf, -9999.0]])
    assert estimate_value_range(RasterGrid(data, nodata=-9999.0)) == (0.25, 3.5)


def test_value_range_defaults_when_nothing_is_valid():
    grid = RasterGrid(np.full((3, 3), np.nan))
    assert estimate_value_range(grid) == (0.0, 1.0)


def test_value_range_is_chunk_size_independent(ramp_grid):
    calls = []
    small = estimate_value_range(ramp_grid, chunk_size=7, yield_fn=lambda: calls.append(1))
    assert small == estimate_value_range(ramp_grid)
    assert len(calls) == 7   # 50 cells, 8 blocks


def test_valid_mask_ignores_nan_nodata():
    vals = np.array([np.nan, 1.0, 2.0])
    assert valid_mask(vals, np.nan).tolist() == [False, True, True]
    assert valid_mask(vals, 2.0).tolist() == [False, True, False]
# endregion


# region Ramps
@pytest.mark.parametrize("name, t, rgba", [
    ("grayscale", 0.0, (0, 0, 0, 255)),
    ("grayscale", 1.0, (255, 255, 255, 255)),
    ("grayscale", 0.5, (128, 128, 128, 255)),
    ("heat", 0.0, (0, 0, 255, 255)),
    ("heat", 1.0, (255, 255, 0, 255)),
    ("viridis", 0.0, (68, 1, 84, 255)),
    ("magma", 0.0, (0, 0, 51, 255)),
    ("magma", 1.0, (255, 204, 255, 255)),
])
def test_ramp_values(name, t, rgba):
    assert tuple(RAMPS[name](np.array([t]))[0]) == rgba


def test_grayscale_is_monotonic():
    out = RAMPS["grayscale"](np.linspace(0.0, 1.0, 101)).astype(int)
    assert np.all(np.diff(out[:, 0]) >= 0)
    assert out[0, 0] == 0 and out[-1, 0] == 255


def test_ramps_clamp_input():
    for fn in RAMPS.values():
        out = fn(np.array([-1.0, 2.0]))
        assert np.array_equal(out[0], fn(np.array([0.0]))[0])
        assert np.array_equal(out[1], fn(np.array([1.0]))[0])


def test_unknown_ramp_falls_back_to_grayscale():
    assert get_ramp("rainbow") is RAMPS["grayscale"]
    assert get_ramp("HEAT") is RAMPS["heat"]
    assert ramp_names() == ["grayscale", "viridis", "magma", "heat"]


def test_ramp_legend():
    strip = ramp_legend(16, 3, "heat")
    assert strip.shape == (3, 16, 4)
    assert tuple(strip[0, 0]) == (0, 0, 255, 255)
    assert tuple(strip[2, -1]) == (255, 255, 0, 255)
    with pytest.raises(ValueError):
        ramp_legend(0, 3)
# endregion


# region Render
def test_render_grid_colors_and_transparency():
    data = np.array([[0.0, 1.0], [np.nan, -9999.0], [2.0, -3.0]])
    rgba = render_grid(RasterGrid(data, nodata=-9999.0), "grayscale")
    assert rgba.shape == (3, 2, 4)
    assert rgba.dtype == np.uint8
    assert tuple(rgba[0, 0]) == (0, 0, 0, 255)
    assert tuple(rgba[0, 1]) == (255, 255, 255, 255)
    assert tuple(rgba[1, 0]) == (0, 0, 0, 0)
    assert tuple(rgba[1, 1]) == (0, 0, 0, 0)
    # out-of-domain values clamp
    assert tuple(rgba[2, 0]) == (255, 255, 255, 255)
    assert tuple(rgba[2, 1]) == (0, 0, 0, 255)


def test_all_nodata_grid_is_fully_transparent():
    rgba = render_grid(RasterGrid(np.full((4, 6), -9999.0), nodata=-9999.0), "heat")
    assert np.all(rgba[..., 3] == 0)


def test_render_grid_leaves_grid_untouched(ramp_grid):
    before = ramp_grid.data.copy()
    render_grid(ramp_grid, "viridis")
    assert np.array_equal(ramp_grid.data, before)


def test_render_is_chunk_size_independent(ramp_grid):
    whole = render_grid(ramp_grid, "magma")
    calls = []
    chunked = render_grid(ramp_grid, "magma", chunk_size=3, yield_fn=lambda: calls.append(1))
    assert np.array_equal(whole, chunked)
    assert len(calls) == 16   # 50 cells, 17 blocks


def test_encode_png(ramp_grid):
    rgba = render_grid(ramp_grid, "heat")
    img = Image.open(io.BytesIO(encode_png(rgba)))
    assert img.mode == "RGBA"
    assert img.size == (10, 5)
    assert np.array_equal(np.asarray(img), rgba)
# endregion
