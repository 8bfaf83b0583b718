# app.py: slim Flask API over the overlay pipeline (catalog, areas, rendered overlays)
# deps: pip install flask numpy rasterio pillow pyproj requests

from __future__ import annotations
from typing import Optional
from urllib.parse import quote
import logging
from flask import Flask, request, jsonify, make_response

from raster_overlay.areas import AreaRegistry, area_bounds
from raster_overlay.catalog import (
    extract_iso_date, latest_date, list_rasters, resolve_raster_path,
)
from raster_overlay.config import AREAS_DIR, RASTER_DIR
from raster_overlay.decode import RasterLoadError, read_raster
from raster_overlay.overlays import OverlayContext
from raster_overlay.ramps import ramp_legend, ramp_names
from raster_overlay.render import encode_png

logger = logging.getLogger(__name__)


def _bounds_json(b) -> Optional[dict]:
    if b is None:
        return None
    return {"west": b.west, "south": b.south, "east": b.east, "north": b.north}


def _png_response(rgba):
    resp = make_response(encode_png(rgba))
    resp.headers["Content-Type"] = "image/png"
    return resp


def create_app(raster_dir: str = RASTER_DIR, areas_dir: str = AREAS_DIR,
               context: Optional[OverlayContext] = None) -> Flask:
    app = Flask(__name__)
    ctx = context if context is not None else OverlayContext(areas=AreaRegistry.from_directory(areas_dir))
    app.config["OVERLAY_CONTEXT"] = ctx

    # ======= CORS =======
    @app.after_request
    def _cors(resp):
        resp.headers["Access-Control-Allow-Origin"]  = "*"
        resp.headers["Access-Control-Allow-Headers"] = "*"
        resp.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,OPTIONS"
        resp.headers["Access-Control-Expose-Headers"] = "X-Overlay-Bounds, X-Overlay-Status, X-Overlay-Masked"
        return resp

    # ======= helpers =======
    def _load(file: str):
        """Loaded (cached) overlay for a catalog file, or an error response tuple."""
        if not file:
            return None, (jsonify({"error": "file=<relative path> required"}), 400)
        try:
            path = resolve_raster_path(raster_dir, file)
        except ValueError as e:
            return None, (jsonify({"error": str(e)}), 400)
        if not path.is_file():
            return None, (jsonify({"error": f"{file} not found"}), 404)
        try:
            entry = ctx.activate(file, lambda: read_raster(str(path)), iso_date=extract_iso_date(file))
        except RasterLoadError as e:
            logger.error("Overlay %s failed: %s", file, e)
            return None, (jsonify({"error": str(e)}), 502)
        return entry, None

    # ======= catalog / settings =======
    @app.route("/", methods=["GET"])
    def root():
        return {"ok": True, "raster_dir": raster_dir, "overlay": "/overlay/image?file=...",
                "ramp": ctx.ramp, "smoothing": ctx.smoothing, "area": ctx.areas.active_id}

    @app.route("/api/rasters", methods=["GET"])
    def rasters():
        items = list_rasters(raster_dir)
        return jsonify({
            "dir": raster_dir,
            "items": [{"file": i.file, "label": i.label, "displayLabel": i.display_label,
                       "isoDate": i.iso_date, "displayDate": i.display_date} for i in items],
            "fallbackDate": latest_date(items),
            "basemapDate": ctx.basemap_date(latest_date(items)),
        })

    @app.route("/api/ramps", methods=["GET"])
    def ramps():
        return jsonify({"ramps": ramp_names(), "current": ctx.ramp})

    @app.route("/api/ramps", methods=["POST"])
    def set_ramp():
        data = request.get_json(force=True, silent=True) or {}
        return jsonify({"current": ctx.set_ramp(str(data.get("ramp", "")))})

    @app.route("/api/smoothing", methods=["POST"])
    def set_smoothing():
        data = request.get_json(force=True, silent=True) or {}
        return jsonify({"imageRendering": ctx.set_smoothing(bool(data.get("smoothing", True)))})

    @app.route("/legend.png", methods=["GET"])
    def legend():
        try:
            W = int(request.args.get("width", "256"))
            H = int(request.args.get("height", "12"))
            rgba = ramp_legend(W, H, request.args.get("ramp", ctx.ramp))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        return _png_response(rgba)

    # ======= areas =======
    @app.route("/api/areas", methods=["GET"])
    def areas():
        return jsonify({
            "active": ctx.areas.active_id,
            "areas": [{"id": a.id, "label": a.label, "isCustom": a.is_custom,
                       "bounds": _bounds_json(area_bounds(a))} for a in ctx.areas.sorted_areas()],
        })

    @app.route("/api/areas", methods=["POST"])
    def add_area():
        data = request.get_json(force=True, silent=True) or {}
        try:
            vertices = [(float(v[0]), float(v[1])) for v in data.get("vertices") or []]
            area = ctx.add_custom_area(vertices, data.get("label"))
        except (TypeError, ValueError, IndexError) as e:
            return jsonify({"error": str(e)}), 400
        return jsonify({"id": area.id, "label": area.label, "data": area.data}), 201

    @app.route("/api/areas/<area_id>", methods=["DELETE"])
    def delete_area(area_id):
        if not ctx.delete_area(area_id):
            return jsonify({"error": f"no custom area {area_id}"}), 404
        return jsonify({"deleted": area_id, "active": ctx.areas.active_id})

    @app.route("/api/areas/select", methods=["POST"])
    def select_area():
        data = request.get_json(force=True, silent=True) or {}
        area = ctx.set_active_area(data.get("id") or None)
        return jsonify({"active": area.id if area else None,
                        "bounds": _bounds_json(area_bounds(area)) if area else None})

    # ======= overlays =======
    @app.route("/overlay/georef", methods=["GET"])
    def overlay_georef():
        entry, err = _load(request.args.get("file", ""))
        if err:
            return err
        geo = ctx.cached_georeference(entry.raster_id)
        return jsonify({
            "width": geo.width, "height": geo.height, "crs": geo.crs_code,
            "projectionDefined": geo.projection_defined, "rasterType": geo.raster_type_label,
            "source": geo.source, "bbox": list(geo.bbox), "bounds": _bounds_json(geo.bounds),
            "status": entry.status_text,
        })

    @app.route("/overlay/image", methods=["GET"])
    def overlay_image():
        file = request.args.get("file", "")
        if "ramp" in request.args and request.args["ramp"].lower() != ctx.ramp:
            ctx.set_ramp(request.args["ramp"])
        if "area" in request.args and (request.args["area"] or None) != ctx.areas.active_id:
            ctx.set_active_area(request.args["area"] or None)
        entry, err = _load(file)
        if err:
            return err
        ctx.show(file, request.args.get("opacity", type=float))
        resp = _png_response(entry.display_image)
        resp.headers["X-Overlay-Bounds"] = ",".join(
            f"{v:.8f}" for v in (entry.bounds.west, entry.bounds.south, entry.bounds.east, entry.bounds.north))
        resp.headers["X-Overlay-Status"] = quote(entry.status_text)
        resp.headers["X-Image-Rendering"] = ctx.image_rendering
        resp.headers["X-Overlay-Masked"] = "1" if entry.mask_applied else "0"
        return resp

    @app.route("/api/overlays", methods=["GET"])
    def overlays():
        return jsonify({"overlays": [
            {"file": e.raster_id, "visible": e.visible, "opacity": e.opacity,
             "masked": e.mask_applied, "bounds": _bounds_json(e.bounds), "status": e.status_text}
            for e in ctx.entries()
        ]})

    @app.route("/overlay/hide", methods=["POST"])
    def overlay_hide():
        file = (request.get_json(force=True, silent=True) or {}).get("file", "")
        entry = ctx.hide(file)
        if entry is None:
            return jsonify({"error": f"{file} is not loaded"}), 404
        return jsonify({"file": file, "visible": False})

    return app


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # single-threaded: the overlay context is not locked
    create_app().run(host="0.0.0.0", port=8081, threaded=False)


if __name__ == "__main__":
    main()
