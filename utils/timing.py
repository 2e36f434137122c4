import time
import asyncio
import functools
import logging

logger = logging.getLogger("fanlist.timing")

# Calls slower than this are logged at WARNING instead of DEBUG
SLOW_CALL_MS = 500.0


def _report(name: str, elapsed_ms: float) -> None:
    if elapsed_ms >= SLOW_CALL_MS:
        logger.warning(f"[timing] {name} took {elapsed_ms:.2f} ms (slow)")
    else:
        logger.debug(f"[timing] {name} took {elapsed_ms:.2f} ms")


def timeit(label: str = None):
    """
    Decorator that logs the execution time of a function (sync or async).

    Usage:
        @timeit()
        async def vote_for_idea(...):
            ...

        @timeit("redeem")
        async def redeem_store_item(...):
            ...
    """

    def _decorate(func):
        name = label or getattr(func, "__qualname__", getattr(func, "__name__", "function"))

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def _aw(*args, **kwargs):
                start = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _report(name, (time.perf_counter() - start) * 1000.0)

            return _aw

        @functools.wraps(func)
        def _w(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _report(name, (time.perf_counter() - start) * 1000.0)

        return _w

    return _decorate
