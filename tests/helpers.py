import time
from typing import Callable


def wait_for(
        condition: Callable[[], bool],
        timeout: float = 5.0,
        interval: float = 0.02,
):
    """
    Poll condition() until it is true.

    Raises AssertionError on timeout.
    """
    deadline = time.time() + timeout

    while time.time() < deadline:
        if condition():
            return
        time.sleep(interval)

    raise AssertionError("Condition not met before timeout")
