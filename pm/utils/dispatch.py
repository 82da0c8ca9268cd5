from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable


class ImmediateExecutor(Executor):
    """Runs every call inline; the returned Future is already done."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        fut: Future = Future()
        try:
            fut.set_result(fn(*args, **kwargs))
        except BaseException as e:
            fut.set_exception(e)
        return fut


def make_executor(max_in_flight: int) -> Executor:
    if max_in_flight <= 0:
        return ImmediateExecutor()
    return ThreadPoolExecutor(max_workers=max_in_flight, thread_name_prefix="pm-api")
