# constants/timer_config.py
"""
Timer configuration - instruments, stability test modes and their countdown sequences
"""

from enum import Enum
from typing import Dict, List


class Instrument(str, Enum):
    DXU = "DxU"
    IQ200 = "iQ200"
    MISSION_120 = "Mission 120"


class StabilityMode(str, Enum):
    ROOM_TEMPERATURE = "Room Temperature"
    REFRIGERATED = "Refrigerated"


class TimerStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"


HOUR = 3600

# Order matters: step N of a batch gets the Nth duration
DURATIONS_BY_MODE: Dict[StabilityMode, List[int]] = {
    StabilityMode.ROOM_TEMPERATURE: [1 * HOUR, 2 * HOUR, int(2.5 * HOUR)],
    StabilityMode.REFRIGERATED: [8 * HOUR, 24 * HOUR, 48 * HOUR, 52 * HOUR],
}

INSTRUMENTS: List[str] = [i.value for i in Instrument]
MODES: List[str] = [m.value for m in StabilityMode]


def duration_sequence(mode: str) -> List[int]:
    """Durations in seconds for a mode, in step order.

    Raises ValueError for an unknown mode.
    """
    return list(DURATIONS_BY_MODE[StabilityMode(mode)])
