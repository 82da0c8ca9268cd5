import html
from urllib.parse import urlsplit

from ..core.constants import LINK_HOSTS
from ..core.models import Point, Popup, Control
from ..utils.time import popup_time_text


def verification_note(action: str) -> str:
    return f"Verify your email before {action}"


def render_message(msg: str) -> str:
    """
    Escape the message for display. A message that is just an http(s) link
    to a known host becomes a clickable link.
    """
    s = (msg or "").strip()
    try:
        parts = urlsplit(s)
        host = parts.hostname or ""
    except ValueError:
        return html.escape(msg or "")
    if parts.scheme in ("http", "https") and host in LINK_HOSTS and " " not in s:
        href = html.escape(s, quote=True)
        return f'<a href="{href}" target="_blank">{html.escape(msg)}</a>'
    return html.escape(msg or "")


def build_popup(pt: Point, verified: bool) -> Popup:
    """
    Popup body for a rendered point.
    The creator gets a delete control; everyone else gets vote controls,
    disabled with a note until the session is verified.
    """
    popup = Popup(
        message=render_message(pt.message),
        timestamp=popup_time_text(pt.created_at),
    )
    if pt.can_delete:
        popup.controls.append(Control("delete", "Remove"))
        return popup

    popup.controls.append(Control("upvote", "👍 Helpful", enabled=verified))
    popup.controls.append(Control("downvote", "👎 Not helpful", enabled=verified))
    if not verified:
        popup.note = verification_note("rating points")
    return popup
