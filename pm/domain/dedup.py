import threading
from typing import Iterable, List, Set

from ..core.models import Point


class PointStore:
    """
    Ids of every point already put on the map.
    Grows for the lifetime of the session and never forgets an id, even when
    the marker is later removed; re-sync needs a fresh session.
    """

    def __init__(self) -> None:
        self._seen: Set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def reconcile(self, batch: Iterable[Point]) -> List[Point]:
        """
        Return the points of `batch` not seen before, in input order, and mark
        them seen. First seen wins: a re-sent point with a changed payload is
        dropped like any other duplicate.
        """
        out: List[Point] = []
        with self._lock:
            for pt in batch:
                if pt.point_id in self._seen:
                    continue
                self._seen.add(pt.point_id)
                out.append(pt)
        return out
