from pathlib import Path
from typing import Dict, Any, Union

from .constants import (
    API_TIMEOUT_S, DEFAULT_LAT, DEFAULT_LNG, DEFAULT_ZOOM, DEFAULT_VIEWPORT_PX,
)
from ..utils.files import load_json

DEFAULT_CONFIG: Dict[str, Any] = {
    "base_url": "http://localhost:8999",
    "user_agent": "PointMapClient/1.0",
    "timeout_s": API_TIMEOUT_S,
    "max_in_flight": 4,       # concurrent API calls; 0 runs them inline
    "start_lat": DEFAULT_LAT,
    "start_lng": DEFAULT_LNG,
    "start_zoom": DEFAULT_ZOOM,
    "viewport_px": list(DEFAULT_VIEWPORT_PX),
    "log_dir": "logs",
    "export_path": "visible_points.geojson",
    "verification_cookie": None,
}

_FLOAT_KEYS = ("timeout_s", "start_lat", "start_lng")
_INT_KEYS = ("max_in_flight", "start_zoom")


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    config.json merged over DEFAULT_CONFIG. Unknown keys are kept.
    Raises ValueError for values that cannot be used.
    """
    raw = load_json(Path(path), {})
    if not isinstance(raw, dict):
        raise ValueError(f"config must be a JSON object: {path}")
    return normalize_config(raw)


def normalize_config(raw: Dict[str, Any]) -> Dict[str, Any]:
    cfg = dict(DEFAULT_CONFIG)
    cfg.update({k: v for k, v in raw.items() if v is not None})

    for k in _FLOAT_KEYS:
        try:
            cfg[k] = float(cfg[k])
        except (TypeError, ValueError):
            raise ValueError(f"config {k} must be a number, got {cfg[k]!r}")
    for k in _INT_KEYS:
        try:
            cfg[k] = int(cfg[k])
        except (TypeError, ValueError):
            raise ValueError(f"config {k} must be an integer, got {cfg[k]!r}")

    vp = cfg.get("viewport_px")
    try:
        w, h = int(vp[0]), int(vp[1])
    except (TypeError, ValueError, IndexError, KeyError):
        w = h = 0
    if not (isinstance(vp, (list, tuple)) and len(vp) == 2 and w > 0 and h > 0):
        raise ValueError(f"config viewport_px must be [width, height], got {vp!r}")
    cfg["viewport_px"] = (w, h)

    cfg["base_url"] = str(cfg["base_url"]).rstrip("/")
    if not cfg["base_url"]:
        raise ValueError("config base_url is empty")
    return cfg
