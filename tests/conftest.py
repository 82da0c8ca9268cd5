from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from pm.adapters.map_widget import GeoJsonMap
from pm.adapters.points_api import PointsApi
from pm.core.config import normalize_config
from pm.core.models import ApiResult, LatLng
from pm.core.session import MapSession
from pm.utils.dispatch import ImmediateExecutor

NOW = datetime(2024, 5, 1, 18, 0, 0, tzinfo=timezone.utc)


def _feature(point_id, hours_old=0.0, can_delete=False, lat=44.95, lng=-93.25,
             icon="🚧", message="road closed"):
    created = NOW - timedelta(hours=hours_old)
    return {
        "type": "Feature",
        "can_delete": can_delete,
        "geometry": {"type": "Point", "coordinates": [lng, lat]},
        "properties": {
            "point_id": str(point_id),
            "message": message,
            "icon": icon,
            "created_at": created.isoformat(timespec="seconds"),
        },
    }


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_feature():
    """Backend-shaped point feature, `hours_old` before NOW."""
    return _feature


@pytest.fixture
def api():
    """PointsApi double: every call succeeds with an empty answer."""
    api = Mock(spec=PointsApi)
    api.fetch_points.return_value = ApiResult.success(200, [])
    api.is_verified.return_value = ApiResult.success(200, {"verified": False})
    api.create_point.return_value = ApiResult.success(200, [])
    api.delete_point.return_value = ApiResult.success(200)
    api.vote.return_value = ApiResult.success(200)
    api.send_verification.return_value = ApiResult.success(200)
    return api


@pytest.fixture
def widget():
    return GeoJsonMap(LatLng(44.9343, -93.2624), 11)


@pytest.fixture
def session(api, widget):
    return MapSession(
        normalize_config({}),
        widget,
        api=api,
        executor=ImmediateExecutor(),
        session_id="sess-1",
        clock=lambda: NOW,
    )


@pytest.fixture
def verified_session(session, api):
    api.is_verified.return_value = ApiResult.success(200, {"verified": True})
    session.start()
    assert session.verified
    return session
