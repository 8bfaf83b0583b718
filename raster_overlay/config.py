# config.py
import os

RASTER_DIR = os.environ.get("RASTER_DIR", "biodiversity_rasters")
AREAS_DIR = os.environ.get("AREAS_DIR", "areas")

# e.g. FORCE_EPSG=4326 to ignore the geo keys of every raster
_force = os.environ.get("FORCE_EPSG", "").strip()
FORCE_EPSG = int(_force) if _force.lstrip("-").isdigit() else None

GEOGRAPHIC_EPSG = 4326
MAP_EPSG = 3857  # planar projection of the map widget (Web Mercator)

# WGS84 UTM code ranges
UTM_NORTH = (32601, 32660)
UTM_SOUTH = (32701, 32760)

# GTRasterTypeGeoKey values
PIXEL_IS_AREA = 1
PIXEL_IS_POINT = 2

# GTModelTypeGeoKey values
MODEL_PROJECTED = 1
MODEL_GEOGRAPHIC = 2

DEFAULT_BBOX = (-0.5, -0.5, 0.5, 0.5)

# Cells per block before handing control back to the host
CHUNK_SIZE = 500_000
MAX_OUTPUT_WIDTH = 4096

DEFAULT_RAMP = "grayscale"
NO_MASK_KEY = "ALL"
VALUE_DOMAIN = (0.0, 1.0)
