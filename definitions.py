""" Constants and enums shared by the Grbl state tracker and its transport.
Reference: https://github.com/gnea/grbl/wiki/Grbl-v1.1-Commands """

from typing import Dict, Tuple
from enum import Enum


class ConnectionState(Enum):
    UNKNOWN = 0
    NOT_CONNECTED = 1
    MISSING_RESOURCE = 2
    CONNECTING = 3
    CONNECTED = 4
    DISCONNECTING = 5
    FAIL = 6
    CLEANUP = 7
    BLOCKED = 8


# https://github.com/gnea/grbl/blob/bfb67f0c7963fe3ce4aaf8a97f9009ea5a8db36e/grbl/system.h#L76
class RunState(Enum):
    IDLE = 0
    ALARM = 1
    CHECK_MODE = 2
    HOMING = 3
    CYCLE = 4
    HOLD = 5
    JOG = 6
    SAFETY_DOOR = 7
    SLEEP = 8


class DistanceMode(Enum):
    ABSOLUTE = 0
    INCREMENTAL = 1


class UnitMode(Enum):
    INCH = 0
    MILLIMETER = 1


class MotionMode(Enum):
    RAPID = 0
    LINEAR = 1
    ARC_CW = 2
    ARC_CCW = 3


# Grbl's serial receive buffer.
RX_BUFFER_SIZE = 128

# Realtime commands are intercepted by Grbl and never placed in the RX buffer.
STATUS_REPORT_QUERY_COMMAND = 0x3F   # "?"
CANCEL_JOG_COMMAND = 0x85
REALTIME_COMMANDS = frozenset((STATUS_REPORT_QUERY_COMMAND, CANCEL_JOG_COMMAND))

SYSTEM_COMMAND_PREFIX = b"$"
JOG_COMMAND_PREFIX = b"$J="

OK_MESSAGE = b"ok"
ERROR_MESSAGE = b"error"

# Status report mask setting. Bit 0 set reports machine position (MPos).
STATUS_REPORT_MASK_SETTING = b"$10"

# Status report state token to RunState.
# https://github.com/gnea/grbl/blob/bfb67f0c7963fe3ce4aaf8a97f9009ea5a8db36e/grbl/report.c#L476
MACHINE_STATES: Dict[bytes, RunState] = {
    b"Idle": RunState.IDLE,
    b"Run": RunState.CYCLE,
    b"Hold": RunState.HOLD,
    b"Jog": RunState.JOG,
    b"Home": RunState.HOMING,
    b"Alarm": RunState.ALARM,
    b"Check": RunState.CHECK_MODE,
    b"Door": RunState.SAFETY_DOOR,
    b"Sleep": RunState.SLEEP,
    }

# Mapping of "G" word values to the modal group they belong to and the mode
# they select.
MODAL_COMMANDS: Dict[float, Tuple[str, Enum]] = {
    0: ("motion_mode", MotionMode.RAPID),
    1: ("motion_mode", MotionMode.LINEAR),
    2: ("motion_mode", MotionMode.ARC_CW),
    3: ("motion_mode", MotionMode.ARC_CCW),
    20: ("unit_mode", UnitMode.INCH),
    21: ("unit_mode", UnitMode.MILLIMETER),
    90: ("distance_mode", DistanceMode.ABSOLUTE),
    91: ("distance_mode", DistanceMode.INCREMENTAL),
    90.1: ("arc_distance_mode", DistanceMode.ABSOLUTE),
    91.1: ("arc_distance_mode", DistanceMode.INCREMENTAL),
    }

# Modal groups a jog line may override for the duration of that jog only.
JOG_MODAL_GROUPS = ("distance_mode", "unit_mode")
