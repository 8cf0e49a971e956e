from __future__ import annotations

import time


def wall_clock_ms() -> float:
    return time.time() * 1000
