""" Simulate tool motion between Grbl status reports.
Grbl only reports position a few times a second. Between reports the position
is interpolated locally one tick at a time so the tool can be drawn moving
smoothly. Each status report overwrites whatever the simulation calculated.

Ticks do not happen by themselves. The owner calls MotionSimulator.update()
periodically and any tick that has come due is processed. """

from typing import Any, Callable, Dict, Optional, Tuple
from math import atan2, cos, sin, sqrt, hypot, pi
import logging
import time

import numpy as np

from definitions import DistanceMode, MotionMode
from core.arc_geometry import arc_length, circumference
from controllers.state_machine import StateMachineBase, ModalState, AXES

logger = logging.getLogger(__name__)

TICK_INTERVAL_MS = 25
MS_PER_MINUTE = 60000


def step_length(feed_rate: float, tick_interval_ms: float = TICK_INTERVAL_MS) -> float:
    """ Distance travelled in one tick at feed_rate (units per minute). """
    return feed_rate / MS_PER_MINUTE * tick_interval_ms


class LinearMotion:
    """ Straight line travel at a constant step per tick. """

    def __init__(self, start: np.ndarray, step_vec: np.ndarray, total_distance: float) -> None:
        self.start = start
        self.step_vec = step_vec
        self.step_distance: float = float(np.linalg.norm(step_vec))
        self.total_distance = total_distance

    def __repr__(self) -> str:
        return "LinearMotion(start=%s, step=%s, distance=%s)" % (
            self.start.tolist(), self.step_vec.tolist(), self.total_distance)

    def step(self, state: StateMachineBase) -> bool:
        """ Advance state.machine_pos by one tick.
        Returns:
            True if further ticks are needed. """
        pos = np.array([state.machine_pos[axis] for axis in AXES]) + self.step_vec
        state.machine_pos = dict(zip(AXES, pos.tolist()))

        distance_travelled = np.linalg.norm(pos - self.start)
        return distance_travelled < (self.total_distance - self.step_distance)


class ArcMotion:
    """ Travel around a center point in the XY plane. Z moves linearly so a
    Z target produces a helix. """

    def __init__(self,
                 center: Tuple[float, float],
                 radius: float,
                 clockwise: bool,
                 step_distance: float,
                 total_distance: float,
                 z_step: float = 0.0) -> None:
        self.center = center
        self.radius = radius
        self.clockwise = clockwise
        self.step_distance = step_distance
        self.total_distance = total_distance
        self.z_step = z_step
        self.distance_travelled: float = 0.0

        angle_step = 2 * pi * step_distance / circumference(radius)
        self.angle_step: float = -angle_step if clockwise else angle_step

    def __repr__(self) -> str:
        return "ArcMotion(center=%s, radius=%s, clockwise=%s, distance=%s)" % (
            self.center, self.radius, self.clockwise, self.total_distance)

    def step(self, state: StateMachineBase) -> bool:
        """ Advance state.machine_pos by one tick.
        Returns:
            True if further ticks are needed. """
        pos = state.machine_pos
        angle = atan2(pos["y"] - self.center[1], pos["x"] - self.center[0])
        angle += self.angle_step
        state.machine_pos = {
            "x": self.center[0] + self.radius * cos(angle),
            "y": self.center[1] + self.radius * sin(angle),
            "z": pos["z"] + self.z_step,
            }

        self.distance_travelled += self.step_distance
        return self.distance_travelled < (self.total_distance - self.step_distance)


class SimulationHandle:
    """ Cancellation token for one in-flight simulated motion. """

    def __init__(self, motion: Any, due_at: float) -> None:
        self.motion = motion
        self.due_at = due_at
        self.cancelled: bool = False

    def cancel(self) -> None:
        """ Stop any further ticks of this motion. """
        self.cancelled = True


class MotionSimulator:
    """ Plans simulated motions and steps them as ticks come due.
    Only one motion is in flight at a time. """

    def __init__(self,
                 state: StateMachineBase,
                 on_motion_complete: Optional[Callable[[], None]] = None,
                 _time: Any = time,
                 tick_interval_ms: float = TICK_INTERVAL_MS) -> None:
        self.state = state
        self.on_motion_complete = on_motion_complete or (lambda: None)

        # Allow replacing with a mock version when testing.
        self._time: Any = _time

        self.tick_interval_ms = tick_interval_ms
        self.enabled: bool = False
        self.in_motion: bool = False

        # Jog motions have their own handle so they can be cancelled on their own.
        self._simulation_handle: Optional[SimulationHandle] = None
        self._jog_simulation_handle: Optional[SimulationHandle] = None

    @property
    def tick_interval(self) -> float:
        """ Seconds between ticks. """
        return self.tick_interval_ms / 1000

    def _position(self) -> np.ndarray:
        return np.array([self.state.machine_pos[axis] for axis in AXES])

    def dispatch(self,
                 target: Dict[str, float],
                 modal: ModalState,
                 feed_rate: float,
                 radius: Optional[float] = None,
                 center_offset: Optional[Dict[str, float]] = None) -> bool:
        """ Start simulating a move according to the current motion mode.
        Args:
            target: Axis words from the gcode line. eg: {"x": 10.0}
            modal: Modal state to interpret the words with.
            feed_rate: Units per minute.
            radius: "R" word for radius form arcs.
            center_offset: "I" and "J" words for center form arcs.
        Returns:
            True if a simulated motion was started. """
        if modal.motion_mode is MotionMode.RAPID:
            # TODO: Rapid moves need Grbl's max rate settings ($110-$112) to simulate.
            # Until then position is only updated by the next status report.
            return False
        if modal.motion_mode is MotionMode.LINEAR:
            motion = self.plan_linear(target, modal.distance_mode, feed_rate)
        else:
            motion = self.plan_arc(target, modal, feed_rate, radius, center_offset)

        if motion is None:
            return False
        self.begin(motion)
        return True

    def plan_linear(self,
                    target: Dict[str, float],
                    distance_mode: DistanceMode,
                    feed_rate: float) -> Optional[LinearMotion]:
        """ Work out the per tick step for a straight move.
        Returns:
            None if there is nothing to simulate. """
        start = self._position()
        if distance_mode is DistanceMode.ABSOLUTE:
            delta = np.array([
                target[axis] - start[index] if axis in target else 0.0
                for index, axis in enumerate(AXES)])
        else:
            delta = np.array([target.get(axis, 0.0) for axis in AXES])

        total_distance = float(np.linalg.norm(delta))
        if total_distance == 0:
            return None
        if feed_rate <= 0:
            logger.warning("Feed rate %s too low to simulate motion.", feed_rate)
            return None

        step_vec = delta / total_distance * step_length(feed_rate, self.tick_interval_ms)
        return LinearMotion(start, step_vec, total_distance)

    def plan_arc(self,
                 target: Dict[str, float],
                 modal: ModalState,
                 feed_rate: float,
                 radius: Optional[float] = None,
                 center_offset: Optional[Dict[str, float]] = None) -> Optional[ArcMotion]:
        """ Work out the center and per tick step for an arc move.
        Returns:
            None if the arc is impossible or there is nothing to simulate. """
        clockwise = modal.motion_mode is MotionMode.ARC_CW
        start = self._position()
        if modal.distance_mode is DistanceMode.ABSOLUTE:
            end = np.array([target.get(axis, start[index]) for index, axis in enumerate(AXES)])
        else:
            end = start + np.array([target.get(axis, 0.0) for axis in AXES])

        if radius is not None:
            center = self.arc_center_from_radius(start, end, radius, clockwise)
        elif center_offset:
            center = self.arc_center_from_offset(start, center_offset, modal.arc_distance_mode)
        else:
            logger.warning("Arc has neither radius nor center offset.")
            return None
        if center is None:
            return None

        arc_radius = hypot(end[0] - center[0], end[1] - center[1])
        if arc_radius == 0:
            logger.warning("Arc ends on its center point.")
            return None
        if feed_rate <= 0:
            logger.warning("Feed rate %s too low to simulate motion.", feed_rate)
            return None

        total_distance = arc_length(start[:2], end[:2], center, clockwise, arc_radius)
        step_distance = step_length(feed_rate, self.tick_interval_ms)
        ticks = max(total_distance / step_distance, 1.0)
        z_step = (end[2] - start[2]) / ticks

        return ArcMotion(center, arc_radius, clockwise, step_distance, total_distance, z_step)

    @staticmethod
    def arc_center_from_radius(start: np.ndarray,
                               end: np.ndarray,
                               radius: float,
                               clockwise: bool) -> Optional[Tuple[float, float]]:
        """ Center of an arc given in radius form.
        A negative radius selects the arc sweeping more than 180 degrees.
        https://github.com/gnea/grbl/blob/master/grbl/gcode.c (radius mode)
        Returns:
            None if no arc of this radius joins start and end. """
        chord_x = end[0] - start[0]
        chord_y = end[1] - start[1]
        chord = hypot(chord_x, chord_y)
        if chord == 0:
            # A full circle has no unique center in radius form.
            logger.warning("Radius form arc with identical start and end points.")
            return None

        center_disp_squared = 4 * radius * radius - chord * chord
        if center_disp_squared < 0:
            logger.warning("Arc radius %s too small to join points %s apart.", radius, chord)
            return None

        direction = 1 if clockwise else -1
        scale = -direction * sqrt(center_disp_squared) / chord
        if radius < 0:
            scale = -scale

        return (float(start[0] + 0.5 * (chord_x - chord_y * scale)),
                float(start[1] + 0.5 * (chord_y + chord_x * scale)))

    @staticmethod
    def arc_center_from_offset(start: np.ndarray,
                               center_offset: Dict[str, float],
                               arc_distance_mode: DistanceMode) -> Tuple[float, float]:
        """ Center of an arc given by "I" and "J" words. """
        if arc_distance_mode is DistanceMode.INCREMENTAL:
            return (float(start[0] + center_offset.get("i", 0.0)),
                    float(start[1] + center_offset.get("j", 0.0)))
        return (float(center_offset.get("i", start[0])),
                float(center_offset.get("j", start[1])))

    def begin(self, motion: Any, is_jog: bool = False) -> SimulationHandle:
        """ Start stepping a planned motion. The first tick happens immediately. """
        self.in_motion = True
        handle = SimulationHandle(motion, self._time.time())
        if is_jog:
            self._jog_simulation_handle = handle
        else:
            self._simulation_handle = handle
        logger.debug("Simulating %s", motion)
        self._tick(handle)
        return handle

    def update(self) -> None:
        """ Process every tick that has come due. """
        now = self._time.time()
        for slot in ("_simulation_handle", "_jog_simulation_handle"):
            while True:
                handle = getattr(self, slot)
                if handle is None or handle.cancelled or handle.due_at > now:
                    break
                self._tick(handle)

    def _tick(self, handle: SimulationHandle) -> None:
        if not self.enabled:
            handle.cancel()
            return
        if handle.motion.step(self.state):
            handle.due_at += self.tick_interval
        else:
            self._end_motion()

    def _end_motion(self) -> None:
        self.in_motion = False
        self._clear_handles()
        self.on_motion_complete()

    def _clear_handles(self) -> None:
        for handle in (self._simulation_handle, self._jog_simulation_handle):
            if handle is not None:
                handle.cancel()
        self._simulation_handle = None
        self._jog_simulation_handle = None

    @property
    def jog_active(self) -> bool:
        """ Is a jog currently being simulated? """
        return self._jog_simulation_handle is not None

    def cancel_jog(self) -> bool:
        """ Stop simulating the current jog.
        Returns:
            True if a jog was being simulated. """
        handle = self._jog_simulation_handle
        if handle is None:
            return False
        self.in_motion = False
        handle.cancel()
        self._jog_simulation_handle = None
        return True

    def stop(self) -> None:
        """ Abandon any motion in flight without completing it. """
        self.in_motion = False
        self._clear_handles()
