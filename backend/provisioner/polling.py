import time
import uuid
from typing import Callable, Optional, TypeVar

from .errors import PollTimeoutError

T = TypeVar("T")


def poll(
    check: Callable[[int], Optional[T]],
    *,
    delay: float,
    attempts: int,
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``check`` until it returns something other than ``None``.

    ``check`` receives the 1-based attempt number. Exceptions raised by
    ``check`` end the loop; callers that want to tolerate a failed read
    catch it inside ``check`` and return ``None``.
    """
    for attempt in range(1, attempts + 1):
        result = check(attempt)
        if result is not None:
            return result
        if attempt < attempts:
            sleep(delay)
    raise PollTimeoutError(
        f"{description} timed out after {attempts} attempts",
        attempts=attempts,
    )


def unique_suffix() -> str:
    # Nanosecond clock plus a random tail; two calls inside the same clock
    # tick still differ.
    return f"{time.time_ns()}-{uuid.uuid4().hex[:4]}"
