import threading
from concurrent.futures import Future
from typing import Any, Optional, Tuple

from .constants import DEFAULT_ICON, ICON_GROUP_A, ICON_GROUP_B
from .models import ApiResult, FlowState, LatLng
from ..adapters.points_api import features_from_payload
from ..domain.popup import verification_note
from ..utils.log import log_line

# Where the active icon came from: ("a" | "b", index) or ("custom", 0)
Selection = Tuple[str, int]


class InvalidTransition(Exception):
    pass


class SubmissionFlow:
    """
    Dropping a new point on the map:

        idle -> placing -> icon_selected -> submitting -> idle
                                  ^              |
                                  +-- failure ---+

    A provisional marker follows the chosen icon until the point is created
    or the flow is cancelled.
    """

    def __init__(self, session: Any):
        self.session = session
        self.state = FlowState.IDLE
        self.coords: Optional[LatLng] = None
        self.icon = DEFAULT_ICON
        self.active: Optional[Selection] = None
        self.submit_enabled = False
        self.note: Optional[str] = None
        self._marker: Any = None
        self._lock = threading.RLock()

    # --- transitions

    def place(self, lat: float, lng: float) -> None:
        with self._lock:
            if self.state is FlowState.SUBMITTING:
                raise InvalidTransition("a point is being submitted")
            if self.state is not FlowState.IDLE:
                # A new click replaces the unsent point.
                self._teardown()
            self.coords = LatLng(lat, lng)
            self.icon = DEFAULT_ICON
            self.active = None
            self._marker = self.session.widget.add_marker(lat, lng, self.icon)
            self.state = FlowState.PLACING
            self.submit_enabled = self.session.verified
            self.note = None if self.session.verified else verification_note("adding points")

    def select_icon(self, icon: str) -> None:
        """Pick one of the palette icons."""
        with self._lock:
            self._require(FlowState.PLACING, FlowState.ICON_SELECTED)
            self._choose(icon, _palette_slot(icon))

    def type_icon(self, text: str) -> None:
        """Use a single typed character as the icon. Empty input keeps the current one."""
        with self._lock:
            self._require(FlowState.PLACING, FlowState.ICON_SELECTED)
            if text == "":
                return
            if len(text) != 1:
                raise ValueError(f"icon must be a single character, got {text!r}")
            self._choose(text, ("custom", 0))

    def submit(self, message: str) -> Optional[Future]:
        """
        Send the point. Without verification nothing is sent and the
        verification prompt is shown instead.
        """
        with self._lock:
            self._require(FlowState.PLACING, FlowState.ICON_SELECTED)
            session = self.session
            if not session.verified:
                log_line("submit blocked | session not verified", "WARN")
                self.submit_enabled = False
                self.note = verification_note("adding points")
                session.widget.show_verification_prompt("adding points")
                return None

            self.state = FlowState.SUBMITTING
            self.submit_enabled = False
            coords, icon = self.coords, self.icon

        return session.dispatch(
            lambda: session.api.create_point(coords, message, icon, session.session_id),
            self._on_submitted,
        )

    def cancel(self) -> None:
        """Close the input without sending; the provisional marker goes away."""
        with self._lock:
            if self.state is FlowState.IDLE:
                return
            if self.state is FlowState.SUBMITTING:
                raise InvalidTransition("a point is being submitted")
            self._teardown()

    # --- internals

    def _on_submitted(self, res: ApiResult) -> None:
        with self._lock:
            if self.state is not FlowState.SUBMITTING:
                return
            if not res.ok:
                # Allow another try with the same input.
                self.state = FlowState.ICON_SELECTED
                self.submit_enabled = True
                return
            self._teardown()
        self.session.mark_verified()
        self.session.add_points(features_from_payload(res.payload))

    def _choose(self, icon: str, slot: Selection) -> None:
        self.icon = icon
        self.active = slot
        widget = self.session.widget
        if self._marker is not None:
            widget.remove_marker(self._marker)
        self._marker = widget.add_marker(self.coords.lat, self.coords.lng, icon)
        self.state = FlowState.ICON_SELECTED

    def _teardown(self) -> None:
        if self._marker is not None:
            self.session.widget.remove_marker(self._marker)
        self._marker = None
        self.coords = None
        self.icon = DEFAULT_ICON
        self.active = None
        self.submit_enabled = False
        self.note = None
        self.state = FlowState.IDLE

    def _require(self, *states: FlowState) -> None:
        if self.state not in states:
            raise InvalidTransition(f"not allowed while {self.state.value}")


def _palette_slot(icon: str) -> Selection:
    if icon in ICON_GROUP_A:
        return ("a", ICON_GROUP_A.index(icon))
    if icon in ICON_GROUP_B:
        return ("b", ICON_GROUP_B.index(icon))
    raise ValueError(f"{icon!r} is not in the icon palette")
