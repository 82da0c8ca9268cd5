import requests
from typing import Dict, Any, Optional, List

from ..core.constants import (
    API_POINTS, API_POINT, API_DELETE, API_SEND_VERIFICATION, API_IS_VERIFIED,
    API_TIMEOUT_S, VERIFICATION_COOKIE,
)
from ..core.models import ApiResult, Bounds, LatLng, VoteDirection
from ..utils.log import log_line
from ..utils.rate import rate_inc


def _wire_point_id(point_id: str) -> Any:
    # The server keys points by integer id; keep anything else as given.
    try:
        return int(point_id)
    except (TypeError, ValueError):
        return point_id


class PointsApi:
    """
    Thin client for the points backend. Every call returns an ApiResult and
    never raises: transport errors, non-200 statuses and bad JSON all come
    back as failures and are logged once here.
    """

    def __init__(self, cfg: Dict[str, Any], http: Optional[requests.Session] = None):
        self.base_url = str(cfg.get("base_url", "") or "").rstrip("/")
        self.timeout = float(cfg.get("timeout_s", API_TIMEOUT_S) or API_TIMEOUT_S)
        self.http = http if http is not None else requests.Session()
        self.http.headers.update({"User-Agent": str(cfg.get("user_agent") or "PointMapClient/1.0")})
        cookie = cfg.get("verification_cookie")
        if cookie:
            self.http.cookies.set(VERIFICATION_COOKIE, str(cookie))

    # --- transport

    def _call(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
              want_json: bool = False) -> ApiResult:
        url = f"{self.base_url}{path}"
        try:
            if method == "GET":
                r = self.http.get(url, timeout=self.timeout)
            else:
                r = self.http.post(url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            log_line(f"{method} {path} failed | err={e!r}", "WARN")
            rate_inc(path, False)
            return ApiResult.failure(f"transport: {e}")

        if r.status_code != 200:
            log_line(f"{method} {path} | status={r.status_code}", "WARN")
            rate_inc(path, False)
            return ApiResult.failure(f"status {r.status_code}", status=r.status_code)

        payload = None
        if want_json:
            try:
                payload = r.json()
            except ValueError as e:
                log_line(f"{method} {path} | bad json | err={e!r}", "WARN")
                rate_inc(path, False)
                return ApiResult.failure("invalid json", status=r.status_code)

        rate_inc(path, True)
        return ApiResult.success(r.status_code, payload)

    # --- endpoints

    def fetch_points(self, bounds: Bounds, requested_by: str) -> ApiResult:
        body = {"NE": bounds.ne.to_json(), "SW": bounds.sw.to_json(), "requested_by": requested_by}
        res = self._call("POST", API_POINTS, body, want_json=True)
        if res.ok and not isinstance(res.payload, list):
            log_line(f"POST {API_POINTS} | expected a list, got {type(res.payload).__name__}", "WARN")
            return ApiResult.failure("unexpected payload", status=res.status)
        return res

    def create_point(self, coords: LatLng, message: str, icon: str, created_by: str) -> ApiResult:
        body = {"coords": coords.to_json(), "message": message, "icon": icon, "created_by": created_by}
        return self._call("POST", API_POINT, body, want_json=True)

    def delete_point(self, point_id: str, created_by: str) -> ApiResult:
        body = {"point_id": _wire_point_id(point_id), "created_by": created_by}
        return self._call("POST", API_DELETE, body)

    def vote(self, point_id: str, direction: VoteDirection, voter: str) -> ApiResult:
        body = {"point_id": _wire_point_id(point_id), "voter": voter}
        return self._call("POST", f"/api/v1/{VoteDirection(direction).value}", body)

    def send_verification(self, email: str, current_url: str) -> ApiResult:
        body = {"email": email, "current_url": current_url}
        return self._call("POST", API_SEND_VERIFICATION, body)

    def is_verified(self) -> ApiResult:
        return self._call("GET", API_IS_VERIFIED, want_json=True)


def features_from_payload(payload: Any) -> List[Dict[str, Any]]:
    """The create endpoint echoes a list of features; anything else yields none."""
    if isinstance(payload, list):
        return [f for f in payload if isinstance(f, dict)]
    return []
