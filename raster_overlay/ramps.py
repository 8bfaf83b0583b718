# ramps.py
# ---------
# Color ramps: pure functions mapping t in [0,1] to RGBA uint8.
# Every ramp takes an array of t and returns an (N,4) uint8 array.

from __future__ import annotations
from typing import Callable, Dict, List
import numpy as np

from raster_overlay.config import DEFAULT_RAMP

Ramp = Callable[[np.ndarray], np.ndarray]


def _to_u8(x: np.ndarray) -> np.ndarray:
    # half-up rounding, then clamp into the byte range
    return np.clip(np.floor(255.0 * x + 0.5), 0, 255).astype(np.uint8)


def _pack(r, g, b) -> np.ndarray:
    out = np.empty((r.shape[0], 4), dtype=np.uint8)
    out[:, 0] = _to_u8(r)
    out[:, 1] = _to_u8(g)
    out[:, 2] = _to_u8(b)
    out[:, 3] = 255
    return out


# -----------------------------
# Ramps
# -----------------------------

def grayscale(t: np.ndarray) -> np.ndarray:
    t = np.clip(np.asarray(t, dtype=np.float64).ravel(), 0.0, 1.0)
    return _pack(t, t, t)


def viridis(t: np.ndarray) -> np.ndarray:
    """Cubic/quadratic fit of matplotlib's viridis."""
    t = np.clip(np.asarray(t, dtype=np.float64).ravel(), 0.0, 1.0)
    r = 0.267 + 2.39 * t - 2.64 * t * t + 0.95 * t * t * t
    g = 0.004 + 1.73 * t - 0.89 * t * t
    b = 0.329 + 0.71 * t + 0.28 * t * t
    return _pack(r, g, b)


def magma(t: np.ndarray) -> np.ndarray:
    """Power-law approximation of matplotlib's magma."""
    t = np.clip(np.asarray(t, dtype=np.float64).ravel(), 0.0, 1.0)
    r = np.power(t, 0.4)
    g = np.power(t, 2.0) * 0.8
    b = 0.2 + 0.8 * (1.0 - np.power(1.0 - t, 3))
    return _pack(r, g, b)


def heat(t: np.ndarray) -> np.ndarray:
    t = np.clip(np.asarray(t, dtype=np.float64).ravel(), 0.0, 1.0)
    four_t = 4.0 * t
    r = np.clip(four_t - 1.5, 0.0, 1.0)
    g = np.clip(four_t - 0.5, 0.0, 1.0)
    b = np.clip(1.5 - four_t, 0.0, 1.0)
    return _pack(r, g, b)


RAMPS: Dict[str, Ramp] = {
    "grayscale": grayscale,
    "viridis": viridis,
    "magma": magma,
    "heat": heat,
}


def ramp_names() -> List[str]:
    return list(RAMPS)


def get_ramp(name: str) -> Ramp:
    """Unknown names fall back to grayscale."""
    return RAMPS.get((name or "").lower(), RAMPS[DEFAULT_RAMP])


def ramp_legend(width: int = 256, height: int = 12, name: str = DEFAULT_RAMP) -> np.ndarray:
    """Horizontal legend strip (H,W,4): left = 0, right = 1."""
    if width < 1 or height < 1:
        raise ValueError(f"legend size must be positive, got {width}x{height}")
    t = np.linspace(0.0, 1.0, width) if width > 1 else np.zeros(1)
    row = get_ramp(name)(t)
    return np.broadcast_to(row[None, :, :], (height, width, 4)).copy()
