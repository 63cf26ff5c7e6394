# utils/countdown.py
import math
from datetime import datetime


def elapsed_seconds(start_time: datetime, now: datetime) -> int:
    """Whole seconds elapsed since start_time (0 if the clock reads earlier)."""
    diff = (now - start_time).total_seconds()
    return max(0, math.floor(diff))


def compute_remaining(total_secs: int, start_time: datetime, now: datetime) -> int:
    return max(0, int(total_secs) - elapsed_seconds(start_time, now))


def format_hms(seconds: int) -> str:
    """3725 -> '01:02:05'. Hours are not wrapped at 24."""
    seconds = max(0, int(seconds or 0))
    hrs = seconds // 3600
    mins = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hrs:02d}:{mins:02d}:{secs:02d}"


def format_step_label(total_secs: int) -> str:
    """Duration label shown per step: 3600 -> '1h', 9000 -> '2.5h'."""
    label = f"{total_secs / 3600:.1f}h"
    if label.endswith(".0h"):
        label = label[:-3] + "h"
    return label
