import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.constants import DEFAULT_VIEWPORT_PX, MAX_ZOOM
from ..core.models import Bounds, LatLng, Popup
from ..domain.location import viewport_bounds

PopupFactory = Callable[[], Popup]

EVENTS = ("moveend", "zoomend", "click")


class MapWidget(ABC):
    """
    What the client needs from a map: viewport queries, marker placement and
    move/zoom/click notifications. Tiles, projection and drawing stay with the
    widget.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Callable[..., None]]] = {e: [] for e in EVENTS}

    def on(self, event: str, handler: Callable[..., None]) -> None:
        if event not in self._handlers:
            raise ValueError(f"unknown map event: {event}")
        self._handlers[event].append(handler)

    def fire(self, event: str, **kwargs: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            handler(**kwargs)

    @abstractmethod
    def bounds(self) -> Bounds: ...

    @abstractmethod
    def center(self) -> LatLng: ...

    @abstractmethod
    def zoom(self) -> int: ...

    @abstractmethod
    def add_marker(self, lat: float, lng: float, icon: str, opacity: float = 1.0,
                   popup: Optional[PopupFactory] = None) -> Any:
        """Place a marker and return a handle for remove_marker()."""

    @abstractmethod
    def remove_marker(self, handle: Any) -> None: ...

    @abstractmethod
    def show_verification_prompt(self, action: str) -> None: ...


@dataclass
class Marker:
    lat: float
    lng: float
    icon: str
    opacity: float
    popup: Optional[PopupFactory] = None


class GeoJsonMap(MapWidget):
    """
    In-memory map: a fixed-size Web Mercator viewport plus the markers on it.
    Used headless (CLI, tests); to_geojson() exports what is displayed.
    """

    def __init__(self, center: LatLng, zoom: int, size_px: Tuple[int, int] = DEFAULT_VIEWPORT_PX):
        super().__init__()
        self._center = center
        self._zoom = zoom
        self.size_px = tuple(size_px)
        self.markers: Dict[int, Marker] = {}
        self.prompts: List[str] = []
        self._next_handle = 1
        self._lock = threading.Lock()

    # --- viewport

    def bounds(self) -> Bounds:
        return viewport_bounds(self._center, self._zoom, self.size_px)

    def center(self) -> LatLng:
        return self._center

    def zoom(self) -> int:
        return self._zoom

    def move_to(self, center: LatLng, zoom: Optional[int] = None) -> None:
        """Pan (and optionally zoom); fires moveend, then zoomend if the zoom changed."""
        old_zoom = self._zoom
        self._center = center
        if zoom is not None:
            self._zoom = max(0, min(MAX_ZOOM, int(zoom)))
        self.fire("moveend")
        if self._zoom != old_zoom:
            self.fire("zoomend")

    def click(self, lat: float, lng: float) -> None:
        self.fire("click", latlng=LatLng(lat, lng))

    # --- markers

    def add_marker(self, lat: float, lng: float, icon: str, opacity: float = 1.0,
                   popup: Optional[PopupFactory] = None) -> int:
        with self._lock:
            handle = self._next_handle
            self._next_handle += 1
            self.markers[handle] = Marker(lat, lng, icon, opacity, popup)
        return handle

    def remove_marker(self, handle: Any) -> None:
        with self._lock:
            self.markers.pop(handle, None)

    def open_popup(self, handle: int) -> Optional[Popup]:
        m = self.markers.get(handle)
        if m is None or m.popup is None:
            return None
        return m.popup()

    def show_verification_prompt(self, action: str) -> None:
        self.prompts.append(action)

    def to_geojson(self) -> Dict[str, Any]:
        with self._lock:
            markers = list(self.markers.values())
        feats = []
        for m in markers:
            props: Dict[str, Any] = {"icon": m.icon, "opacity": round(m.opacity, 4)}
            if m.popup is not None:
                p = m.popup()
                props.update({"message": p.message, "time": p.timestamp, "controls": p.control_names})
            feats.append({
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [m.lng, m.lat]},
                "properties": props,
            })
        return {"type": "FeatureCollection", "features": feats}
