import math
from typing import Tuple, Dict, Any
from urllib.parse import parse_qs, urlencode, urlsplit

from ..core.constants import (
    DEFAULT_LAT, DEFAULT_LNG, DEFAULT_ZOOM, MAX_ZOOM, LOCATION_PARAMS, TILE_SIZE_PX,
)
from ..core.models import LatLng, Bounds

# Web Mercator stops short of the poles.
MAX_MERCATOR_LAT = 85.0511287798

# =========================
# SHAREABLE LOCATION
# =========================

def location_query(center: LatLng, zoom: int) -> str:
    """Query string that reopens the map at the same spot: lat=..&lng=..&zm=.."""
    return urlencode({"lat": center.lat, "lng": center.lng, "zm": zoom})


def start_view_from_query(query: str, cfg: Dict[str, Any] | None = None) -> Tuple[LatLng, int, bool]:
    """
    Parse a start view out of a query string (or a full URL).

    Returns (center, zoom, from_query). Missing or unparsable values fall back
    to the configured start view, then to the built-in default.
    `from_query` is True when any location parameter was present.
    """
    cfg = cfg or {}
    if "?" in query or "://" in query:
        query = urlsplit(query).query
    params = {k: v[0] for k, v in parse_qs(query.lstrip("?")).items() if k in LOCATION_PARAMS}

    lat = _float_or(params.get("lat"), cfg.get("start_lat", DEFAULT_LAT))
    lng = _float_or(params.get("lng"), cfg.get("start_lng", DEFAULT_LNG))
    zm = _float_or(params.get("zm"), cfg.get("start_zoom", DEFAULT_ZOOM))
    zoom = max(0, min(MAX_ZOOM, int(zm)))
    return LatLng(lat, lng), zoom, bool(params)


def _float_or(value: Any, default: Any) -> float:
    if value is None:
        return float(default)
    try:
        f = float(value)
    except ValueError:
        return float(default)
    return f if math.isfinite(f) else float(default)

# =========================
# WEB MERCATOR VIEWPORT
# =========================

def _world_px(zoom: int) -> float:
    return TILE_SIZE_PX * (2 ** zoom)


def project(lat: float, lng: float, zoom: int) -> Tuple[float, float]:
    """lat/lng -> global pixel coordinates at `zoom` (origin top-left)."""
    lat = max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, lat))
    size = _world_px(zoom)
    x = (lng + 180.0) / 360.0 * size
    s = math.sin(math.radians(lat))
    y = (0.5 - math.log((1 + s) / (1 - s)) / (4 * math.pi)) * size
    return x, y


def unproject(x: float, y: float, zoom: int) -> Tuple[float, float]:
    """Inverse of project()."""
    size = _world_px(zoom)
    lng = x / size * 360.0 - 180.0
    n = math.pi - 2.0 * math.pi * y / size
    lat = math.degrees(math.atan(math.sinh(n)))
    return lat, lng


def viewport_bounds(center: LatLng, zoom: int, size_px: Tuple[int, int]) -> Bounds:
    """Corners of a `size_px` (width, height) viewport centred on `center`."""
    w, h = size_px
    cx, cy = project(center.lat, center.lng, zoom)
    ne_lat, ne_lng = unproject(cx + w / 2.0, cy - h / 2.0, zoom)
    sw_lat, sw_lng = unproject(cx - w / 2.0, cy + h / 2.0, zoom)
    return Bounds(ne=LatLng(ne_lat, ne_lng), sw=LatLng(sw_lat, sw_lng))
