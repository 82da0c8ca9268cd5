from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any

from ..utils.time import parse_created_at, format_created_at


class FlowState(str, Enum):
    IDLE = "idle"
    PLACING = "placing"
    ICON_SELECTED = "icon_selected"
    SUBMITTING = "submitting"


class VoteDirection(str, Enum):
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float

    def to_json(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class Bounds:
    ne: LatLng
    sw: LatLng


@dataclass
class Point:
    point_id: str
    lat: float
    lng: float
    message: str
    icon: str
    created_at: datetime
    can_delete: bool = False

    @classmethod
    def from_feature(cls, feat: Dict[str, Any]) -> "Point":
        """
        Build a Point from the backend's feature shape.
        GeoJSON coordinates are [lng, lat].
        """
        if not isinstance(feat, dict):
            raise ValueError(f"feature must be an object, got {type(feat).__name__}")
        geom = feat.get("geometry") or {}
        p = feat.get("properties") or {}
        if not isinstance(geom, dict) or not isinstance(p, dict):
            raise ValueError("feature geometry and properties must be objects")
        coords = geom.get("coordinates")
        if not (isinstance(coords, (list, tuple)) and len(coords) == 2):
            raise ValueError(f"feature has no point coordinates: {coords!r}")
        try:
            lat, lng = float(coords[1]), float(coords[0])
        except (TypeError, ValueError):
            raise ValueError(f"feature coordinates are not numbers: {coords!r}")
        point_id = p.get("point_id")
        if point_id is None or str(point_id) == "":
            raise ValueError("feature has no point_id")
        return cls(
            point_id=str(point_id),
            lat=lat,
            lng=lng,
            message=str(p.get("message") or ""),
            icon=str(p.get("icon") or ""),
            created_at=parse_created_at(p.get("created_at")),
            can_delete=bool(feat.get("can_delete", False)),
        )

    def to_feature(self) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "can_delete": self.can_delete,
            "geometry": {"type": "Point", "coordinates": [self.lng, self.lat]},
            "properties": {
                "point_id": self.point_id,
                "message": self.message,
                "icon": self.icon,
                "created_at": format_created_at(self.created_at),
            },
        }


@dataclass
class ApiResult:
    ok: bool
    status: Optional[int] = None
    payload: Any = None
    reason: str = ""

    @classmethod
    def success(cls, status: int = 200, payload: Any = None) -> "ApiResult":
        return cls(ok=True, status=status, payload=payload)

    @classmethod
    def failure(cls, reason: str, status: Optional[int] = None) -> "ApiResult":
        return cls(ok=False, status=status, reason=reason)


@dataclass
class Control:
    name: str  # "delete" | "upvote" | "downvote"
    label: str
    enabled: bool = True


@dataclass
class Popup:
    message: str
    timestamp: str
    controls: List[Control] = field(default_factory=list)
    note: Optional[str] = None

    def control(self, name: str) -> Optional[Control]:
        for c in self.controls:
            if c.name == name:
                return c
        return None

    @property
    def control_names(self) -> List[str]:
        return [c.name for c in self.controls]
