"""
Clock - Time source used by the polling loop.
"""

import time


class SystemClock:
    """Wall clock backed by the time module."""

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)
