import threading
import time

from .log import log_line

RATE_WINDOW_S = 3600.0

RATE_STATE = {
    "t0": None,
    "next_log": None,
    "counts": {},  # endpoint -> [ok, fail]
}

_RATE_LOCK = threading.Lock()


def rate_inc(endpoint: str, ok: bool) -> None:
    with _RATE_LOCK:
        counts = RATE_STATE["counts"].setdefault(endpoint, [0, 0])
        counts[0 if ok else 1] += 1


def rate_snapshot() -> dict:
    with _RATE_LOCK:
        return {k: tuple(v) for k, v in RATE_STATE["counts"].items()}


def rate_reset() -> None:
    with _RATE_LOCK:
        RATE_STATE["t0"] = None
        RATE_STATE["next_log"] = None
        RATE_STATE["counts"] = {}


def rate_maybe_log(now: float | None = None) -> bool:
    """Log one RATE line per window and start a new window. Returns True if logged."""
    now = time.time() if now is None else now
    with _RATE_LOCK:
        if RATE_STATE["t0"] is None:
            RATE_STATE["t0"] = now
            RATE_STATE["next_log"] = now + RATE_WINDOW_S
        if now < float(RATE_STATE["next_log"]):
            return False
        parts = [f"{ep}={c[0]} ok/{c[1]} fail" for ep, c in sorted(RATE_STATE["counts"].items())]
        RATE_STATE["t0"] = now
        RATE_STATE["next_log"] = now + RATE_WINDOW_S
        RATE_STATE["counts"] = {}
    w = int(RATE_WINDOW_S // 60)
    log_line(f"RATE | window={w}m | " + (" | ".join(parts) if parts else "no calls"))
    return True
