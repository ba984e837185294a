""" State machines reflecting the state of a Grbl hardware controller.
StateMachineBase holds the values a consumer (eg: a visualiser) is interested
in and announces changes through on_update_callback.
StateMachineGrbl populates them from messages received from Grbl. """

from typing import Dict, Callable, Optional, Any, Iterable
from enum import Enum
import logging
import re

from definitions import (DistanceMode, UnitMode, MotionMode, RunState,
                         MODAL_COMMANDS, MACHINE_STATES)

logger = logging.getLogger(__name__)

AXES = ("x", "y", "z")


def keys_to_lower(dict_: Dict[str, Any]) -> Dict[str, Any]:
    """ Translate a dict's keys to lower case. """
    return {k.lower(): v for k, v in dict_.items()}


class ModalState:
    """ Gcode parser modes that persist between lines until changed. """

    groups = ("distance_mode", "arc_distance_mode", "unit_mode", "motion_mode")

    def __init__(self) -> None:
        self.distance_mode: DistanceMode = DistanceMode.ABSOLUTE
        self.arc_distance_mode: DistanceMode = DistanceMode.INCREMENTAL
        self.unit_mode: UnitMode = UnitMode.MILLIMETER
        self.motion_mode: MotionMode = MotionMode.LINEAR

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModalState):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __repr__(self) -> str:
        return "ModalState(%s)" % ", ".join(
            "%s=%s" % (group, mode.name) for group, mode in self.as_dict().items())

    def as_dict(self) -> Dict[str, Enum]:
        """ Current mode of every modal group. """
        return {group: getattr(self, group) for group in self.groups}

    def copy(self) -> "ModalState":
        """ Independent copy. Changes to the copy do not affect this instance. """
        modal = ModalState()
        for group, mode in self.as_dict().items():
            setattr(modal, group, mode)
        return modal

    def apply_gcode(self, value: float, groups: Optional[Iterable[str]] = None) -> bool:
        """ Apply a "G" word.
        Args:
            value: Numeric part of the word. eg: 91 for "G91".
            groups: Restrict which modal groups may change. None for all.
        Returns:
            True if the word selected a mode. """
        modal = MODAL_COMMANDS.get(value)
        if modal is None:
            return False
        group, mode = modal
        if groups is not None and group not in groups:
            return False
        setattr(self, group, mode)
        return True


class StateMachineBase:
    """ Base class for State Machines reflecting the state of hardware controllers. """

    machine_properties = [
        "machine_pos",
        "feed_rate",
        "run_state",
        "gcode_modal",
        ]

    def __init__(self, on_update_callback: Optional[Callable[[str, Any], None]] = None) -> None:
        self.on_update_callback = on_update_callback or (lambda name, value: None)

        self.__machine_pos: Dict[str, float] = {"x": 0.0, "y": 0.0, "z": 0.0}
        self.__feed_rate: float = 0
        self.__run_state: RunState = RunState.IDLE

        self.modal: ModalState = ModalState()

        self.changes_made: bool = True

    def __str__(self) -> str:
        output = ("machine_pos x: {self.machine_pos[x]} y: {self.machine_pos[y]} "
                  "z: {self.machine_pos[z]}\r\n")
        output += "feed_rate: {self.feed_rate}\r\n"
        output += "run_state: {self.run_state.name}\r\n"
        output += "gcode_modal: {self.modal}\r\n"
        return output.format(self=self)

    def sync(self) -> None:
        """ Publish all machine properties. """
        for prop in self.machine_properties:
            value = getattr(self, prop)

            # Publish whole property.
            self.on_update_callback(prop, value)

            # Also publish component parts if property is a dict.
            if isinstance(value, dict):
                for sub_prop, sub_value in value.items():
                    self.on_update_callback("%s:%s" % (prop, sub_prop), sub_value)

    @property
    def gcode_modal(self) -> Dict[str, Enum]:
        """ Getter. """
        return self.modal.as_dict()

    def modal_changed(self) -> None:
        """ Announce the modal state after it has been modified in place. """
        self.on_update_callback("gcode_modal", self.gcode_modal)

    @property
    def machine_pos(self) -> Dict[str, float]:
        """ Getter. """
        return self.__machine_pos

    @machine_pos.setter
    def machine_pos(self, pos: Dict[str, float]) -> None:
        """ Setter. Axes missing from pos are left unchanged. """
        pos = keys_to_lower(pos)
        data_changed = False
        for axis in AXES:
            value = pos.get(axis)
            if value is not None and self.__machine_pos[axis] != value:
                data_changed = True
                self.__machine_pos[axis] = value

        if data_changed:
            self.changes_made = True
            for axis in AXES:
                self.on_update_callback("machine_pos:%s" % axis, self.__machine_pos[axis])
            self.on_update_callback("machine_pos", self.machine_pos)

    @property
    def feed_rate(self) -> float:
        """ Getter. """
        return self.__feed_rate

    @feed_rate.setter
    def feed_rate(self, feed_rate: float) -> None:
        """ Setter. """
        if self.__feed_rate != feed_rate:
            self.on_update_callback("feed_rate", feed_rate)
        self.__feed_rate = feed_rate

    @property
    def run_state(self) -> RunState:
        """ Getter. """
        return self.__run_state

    @run_state.setter
    def run_state(self, run_state: RunState) -> None:
        """ Setter. """
        if self.__run_state != run_state:
            self.__run_state = run_state
            self.changes_made = True
            self.on_update_callback("run_state", run_state)


class StateMachineGrbl(StateMachineBase):
    """ State Machine reflecting the state of a Grbl hardware controller. """

    STATUS_REPORT_REGEX = re.compile(rb"<[A-Z][a-z]+.*>")
    STATUS_REPORT_POS_REGEX = re.compile(
        rb"-?[0-9]+\.[0-9]+,-?[0-9]+\.[0-9]+,-?[0-9]+\.[0-9]+")

    MACHINE_STATES = MACHINE_STATES

    @classmethod
    def is_status_report(cls, incoming: bytes) -> bool:
        """ Does this message look like a "<...>" status report? """
        return cls.STATUS_REPORT_REGEX.search(incoming) is not None

    def parse_incoming(self, incoming: bytes) -> None:
        """ Parse incoming string from Grbl controller.
        "ok" and "error:" are buffer accounting and are not handled here. """
        if incoming.startswith(b"<"):
            self._parse_incoming_status(incoming)
        elif incoming.startswith(b"ALARM:"):
            logger.warning("Grbl alarm: %s", incoming.decode("utf-8", "replace"))
        elif incoming.startswith(b"["):
            logger.debug("Grbl feedback: %s", incoming.decode("utf-8", "replace"))
        elif incoming.startswith(b"Grbl "):
            logger.info("Grbl startup: %s", incoming.decode("utf-8", "replace"))
        else:
            logger.debug("Input not parsed: %s", incoming.decode("utf-8", "replace"))

    def _parse_incoming_status(self, incoming: bytes) -> None:
        """ "parse_incoming" determined a "status" message was received from the
        Grbl controller. Parse the status message here.
        https://github.com/gnea/grbl/wiki/Grbl-v1.1-Interface#status-reporting """
        if not self.is_status_report(incoming):
            logger.debug("Malformed status report: %s", incoming.decode("utf-8", "replace"))
            return

        coordinates = self.STATUS_REPORT_POS_REGEX.search(incoming)
        if coordinates:
            self.machine_pos = self._parse_coordinates(coordinates.group(0))

        fields = incoming.strip(b"<>").split(b"|")
        self._set_state(fields[0])

    @staticmethod
    def _parse_coordinates(string: bytes) -> Dict[str, float]:
        """ Parse bytes for coordinate information. """
        parts = string.split(b",")
        assert len(parts) >= 3, "Malformed coordinates: %s" % string.decode("utf-8")
        coordinates = {}
        coordinates["x"] = float(parts[0])
        coordinates["y"] = float(parts[1])
        coordinates["z"] = float(parts[2])
        return coordinates

    def _set_state(self, state: bytes) -> None:
        """ Apply State. State has been reported by Grbl controller.
        Sub-states (eg: "Hold:0") are ignored. """
        state = state.split(b":")[0]
        run_state = self.MACHINE_STATES.get(state)
        if run_state is None:
            logger.debug("Unrecognised state: %s", state.decode("utf-8", "replace"))
            return
        self.run_state = run_state
