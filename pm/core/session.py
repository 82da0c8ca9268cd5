import threading
from concurrent.futures import Executor, Future
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .identity import new_session_id
from .models import ApiResult, LatLng, Point, Popup, VoteDirection
from .submission import InvalidTransition, SubmissionFlow
from ..adapters.map_widget import MapWidget
from ..adapters.points_api import PointsApi, features_from_payload
from ..domain.dedup import PointStore
from ..domain.location import location_query
from ..domain.opacity import opacity_for_age
from ..domain.popup import build_popup
from ..utils.dispatch import make_executor
from ..utils.log import log_line
from ..utils.rate import rate_maybe_log
from ..utils.time import now_utc


class MapSession:
    """
    Client state of one open map: session id, verification flag, the points
    already rendered and the submission flow. Every instance is independent.

    Network calls go through `executor`; their results are applied by the
    worker that ran them, so anything touched from a result handler is
    guarded (the store has its own lock, markers use `_lock`).
    """

    def __init__(
        self,
        cfg: Dict[str, Any],
        widget: MapWidget,
        api: Optional[PointsApi] = None,
        executor: Optional[Executor] = None,
        session_id: Optional[str] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.cfg = cfg
        self.widget = widget
        self.api = api if api is not None else PointsApi(cfg)
        self._owns_executor = executor is None
        self.executor = executor if executor is not None else make_executor(int(cfg.get("max_in_flight", 4)))
        self.session_id = session_id or new_session_id()
        self.clock = clock

        self.store = PointStore()
        self.points: Dict[str, Point] = {}
        self.markers: Dict[str, Any] = {}
        self.verified = False
        self.current_url = ""
        self.flow = SubmissionFlow(self)

        self._lock = threading.Lock()
        self._started = False

    # =========================
    # LIFECYCLE
    # =========================

    def start(self) -> Future:
        """Wire the widget events, check verification and run the first query."""
        if not self._started:
            self.widget.on("moveend", self._after_move_zoom_end)
            self.widget.on("zoomend", self._after_move_zoom_end)
            self.widget.on("click", self._on_map_click)
            self._started = True
        self.update_location()
        self.check_verified()
        return self.refresh_points()

    def close(self, wait: bool = True) -> None:
        """Release the worker threads if this session created them."""
        if self._owns_executor:
            self.executor.shutdown(wait=wait)

    def _after_move_zoom_end(self, **_: Any) -> None:
        # Every settle event queries; overlapping answers are absorbed by the store.
        self.update_location()
        self.refresh_points()

    def _on_map_click(self, latlng: LatLng, **_: Any) -> None:
        try:
            self.flow.place(latlng.lat, latlng.lng)
        except InvalidTransition as e:
            log_line(f"click ignored | {e}", "WARN")

    def update_location(self) -> str:
        query = location_query(self.widget.center(), self.widget.zoom())
        self.current_url = f"{self.cfg.get('base_url', '')}/?{query}"
        return self.current_url

    # =========================
    # DISPATCH
    # =========================

    def dispatch(self, call: Callable[[], ApiResult],
                 on_done: Optional[Callable[[ApiResult], None]] = None) -> Future:
        """
        Run `call` on the executor and apply `on_done` to its result on the
        same worker. The returned future resolves once the result is applied.
        """
        def run() -> ApiResult:
            res = call()
            if on_done is not None:
                on_done(res)
            rate_maybe_log()
            return res

        fut = self.executor.submit(run)
        fut.add_done_callback(_log_unexpected)
        return fut

    # =========================
    # VIEWPORT QUERY + RECONCILE
    # =========================

    def refresh_points(self) -> Future:
        bounds = self.widget.bounds()
        return self.dispatch(
            lambda: self.api.fetch_points(bounds, self.session_id),
            self._on_points,
        )

    def _on_points(self, res: ApiResult) -> None:
        if not res.ok:
            return
        self.add_points(features_from_payload(res.payload))

    def add_points(self, features: List[Dict[str, Any]]) -> List[Point]:
        """Parse, drop already shown points, render the rest. Returns the rendered ones."""
        batch: List[Point] = []
        for feat in features:
            try:
                batch.append(Point.from_feature(feat))
            except ValueError as e:
                log_line(f"skipping malformed point | err={e}", "WARN")
        new = self.store.reconcile(batch)
        for pt in new:
            self._render(pt)
        if batch:
            log_line(f"POINTS | received={len(batch)} new={len(new)} shown={len(self.markers)} known={len(self.store)}")
        return new

    def _render(self, pt: Point) -> None:
        opacity = opacity_for_age(pt.created_at, self.clock())
        point_id = pt.point_id
        handle = self.widget.add_marker(
            pt.lat, pt.lng, pt.icon, opacity,
            popup=lambda: self.popup_for(point_id),
        )
        with self._lock:
            self.points[point_id] = pt
            self.markers[point_id] = handle

    def popup_for(self, point_id: str) -> Popup:
        # Built on open so it reflects the verification state at that moment.
        with self._lock:
            pt = self.points[point_id]
        return build_popup(pt, self.verified)

    # =========================
    # VERIFICATION
    # =========================

    def mark_verified(self) -> None:
        if not self.verified:
            log_line("VERIFIED | session can add and rate points")
        self.verified = True

    def check_verified(self) -> Future:
        return self.dispatch(self.api.is_verified, self._on_verified_check)

    def _on_verified_check(self, res: ApiResult) -> None:
        if res.ok and isinstance(res.payload, dict) and res.payload.get("verified") is True:
            self.mark_verified()

    def request_verification(self, email: str) -> Future:
        url = self.current_url or self.update_location()
        return self.dispatch(
            lambda: self.api.send_verification(email, url),
            self._on_verification_sent,
        )

    def _on_verification_sent(self, res: ApiResult) -> None:
        if res.ok:
            log_line("VERIFY | email sent, follow the link in it to start adding points")

    # =========================
    # VOTE / DELETE
    # =========================

    def vote(self, point_id: str, direction: VoteDirection) -> Optional[Future]:
        """Rate someone else's point. Needs a verified session."""
        direction = VoteDirection(direction)
        if not self.verified:
            log_line(f"{direction.value} blocked | point={point_id} | session not verified", "WARN")
            self.widget.show_verification_prompt("rating points")
            return None
        pt = self.points.get(point_id)
        if pt is not None and pt.can_delete:
            log_line(f"{direction.value} blocked | point={point_id} | own point", "WARN")
            return None
        return self.dispatch(
            lambda: self.api.vote(point_id, direction, self.session_id),
            self._on_action_done,
        )

    def delete(self, point_id: str) -> Optional[Future]:
        """Remove one of this session's own points; the marker goes on success."""
        pt = self.points.get(point_id)
        if pt is not None and not pt.can_delete:
            log_line(f"delete blocked | point={point_id} | not created by this session", "WARN")
            return None

        def on_done(res: ApiResult) -> None:
            if not res.ok:
                return
            with self._lock:
                handle = self.markers.pop(point_id, None)
                self.points.pop(point_id, None)
            if handle is not None:
                self.widget.remove_marker(handle)
            log_line(f"DELETED | point={point_id}")
            self.mark_verified()

        return self.dispatch(lambda: self.api.delete_point(point_id, self.session_id), on_done)

    def _on_action_done(self, res: ApiResult) -> None:
        # The backend only accepts these from verified users.
        if res.ok:
            self.mark_verified()


def _log_unexpected(fut: Future) -> None:
    if fut.cancelled():
        return
    e = fut.exception()
    if e is not None:
        log_line(f"api task crashed | err={e!r}", "ERROR")
