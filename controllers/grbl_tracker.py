""" Track the state of a Grbl controller from the commands sent to it and the
messages received from it.

One GrblTracker exists per connected machine. It performs no IO itself:
The transport asks would_overflow() before writing a command, calls
register_command() once the command has been written and passes every line
received from Grbl to register_message(). """

from typing import Any, Callable, Deque, Dict, List, NamedTuple, Optional, Tuple
from collections import deque
import logging
import time

from definitions import (CANCEL_JOG_COMMAND, STATUS_REPORT_QUERY_COMMAND,
                         SYSTEM_COMMAND_PREFIX, JOG_COMMAND_PREFIX,
                         OK_MESSAGE, ERROR_MESSAGE, JOG_MODAL_GROUPS,
                         RunState)
from core.gcode_words import parse_words, ParseError, Word, WordLetter, AXIS_LETTERS
from controllers.command_buffer import CommandBuffer, is_realtime_command
from controllers.motion_simulator import MotionSimulator
from controllers.state_machine import StateMachineGrbl, ModalState

logger = logging.getLogger(__name__)


def is_jog_command(command: bytes) -> bool:
    """ "$J=..." is a Grbl jog command. """
    return command.startswith(JOG_COMMAND_PREFIX)


def has_axis_words(words: List[Word]) -> bool:
    """ Does the line move the machine? """
    return any(word.letter in AXIS_LETTERS for word in words)


def motion_words(words: List[Word]
                 ) -> Tuple[Dict[str, float], Optional[float], Dict[str, float]]:
    """ Collect the words describing a move.
    Returns:
        (target, radius, center_offset) eg: ({"x": 10.0}, None, {"i": 5.0}) """
    target: Dict[str, float] = {}
    center_offset: Dict[str, float] = {}
    radius: Optional[float] = None
    for word in words:
        if word.letter in AXIS_LETTERS:
            target[word.letter.value.lower()] = word.value
        elif word.letter is WordLetter.R:
            radius = word.value
        elif word.letter in (WordLetter.I, WordLetter.J):
            center_offset[word.letter.value.lower()] = word.value
    return target, radius, center_offset


class QueuedMotion(NamedTuple):
    """ A motion command with the modes that were in force when it was sent. """
    command: bytes
    words: List[Word]
    modal: ModalState
    feed_rate: float

    @property
    def is_jog(self) -> bool:
        """ Jogs are purged from the queue by a jog cancel. """
        return is_jog_command(self.command)


class GrblTracker:
    """ Machine state tracker for one Grbl controller. """

    def __init__(self,
                 on_update_callback: Optional[Callable[[str, Any], None]] = None,
                 motion_simulation: bool = False,
                 _time: Any = time) -> None:
        # State machine to track current GRBL state.
        self.state: StateMachineGrbl = StateMachineGrbl(on_update_callback)

        self.buffer: CommandBuffer = CommandBuffer()

        self.simulator: MotionSimulator = MotionSimulator(
            self.state, self._on_motion_complete, _time)
        self.simulator.enabled = motion_simulation

        # Motions waiting for the simulated motion in flight to finish.
        self._motion_queue: Deque[QueuedMotion] = deque()
        # Set while _drain_motion_queue() is starting queued motions.
        self._draining: bool = False

        self._error_count: int = 0
        self._ok_count: int = 0

    # Convenience accessors.
    @property
    def position(self) -> Dict[str, float]:
        """ Current machine position. """
        return self.state.machine_pos

    @property
    def run_state(self) -> RunState:
        """ Last state reported by Grbl. """
        return self.state.run_state

    @property
    def modal(self) -> ModalState:
        """ Persistent gcode modes. """
        return self.state.modal

    @property
    def feed_rate(self) -> float:
        """ Modal feed rate, units per minute. """
        return self.state.feed_rate

    @property
    def in_motion(self) -> bool:
        """ Is a simulated motion in flight? """
        return self.simulator.in_motion

    @property
    def motion_simulation_enabled(self) -> bool:
        """ Is motion between status reports being simulated? """
        return self.simulator.enabled

    @property
    def queued_commands(self) -> List[bytes]:
        """ Copy of the commands waiting for the current motion to finish. """
        return [queued.command for queued in self._motion_queue]

    def toggle_motion_simulation(self) -> bool:
        """ Turn motion simulation on or off.
        Turning it off abandons the motion in flight and anything queued.
        Returns:
            The new setting. """
        if self.simulator.enabled:
            self.simulator.stop()
            self._motion_queue.clear()
        self.simulator.enabled = not self.simulator.enabled
        logger.info("Motion simulation %s",
                    "enabled" if self.simulator.enabled else "disabled")
        return self.simulator.enabled

    def update(self) -> None:
        """ To be called periodically. Advances any simulated motion. """
        self.simulator.update()

    # Buffer accounting.
    def would_overflow(self, command: bytes) -> bool:
        """ Would writing this command overflow Grbl's receive buffer?
        Callers should hold the command back until an "ok" frees space. """
        return self.buffer.would_overflow(command)

    def register_message(self, incoming: bytes) -> None:
        """ Process one line received from Grbl. """
        if isinstance(incoming, str):
            incoming = incoming.encode("utf-8")
        incoming = incoming.strip()

        if incoming.startswith(OK_MESSAGE):
            self._ok_count += 1
            self.buffer.register_ack()
        elif incoming.startswith(ERROR_MESSAGE):
            self._error_count += 1
            logger.warning("Grbl reported %s", incoming.decode("utf-8", "replace"))
            self.buffer.register_error()
        elif incoming:
            # Status reports, alarms, feedback, etc.
            self.state.parse_incoming(incoming)

    # Outgoing commands.
    def register_command(self, command: bytes) -> Optional[ParseError]:
        """ Process a command that has just been written to Grbl.
        Args:
            command: A single realtime byte or one line of text.
        Returns:
            The ParseError if the line could not be parsed. The line is then
            ignored but the tracker stays usable. """
        if isinstance(command, str):
            command = command.encode("utf-8")

        if command.startswith(SYSTEM_COMMAND_PREFIX):
            self.buffer.register_sent(command)
            return self._register_system_command(command)

        if is_realtime_command(command):
            # "Realtime commands are intercepted when they are received and
            # never placed in a buffer to be parsed by Grbl"
            self._register_realtime_command(command[0])
            return None

        self.buffer.register_sent(command)
        return self._register_standard_command(command)

    def _register_standard_command(self, command: bytes) -> Optional[ParseError]:
        try:
            words = parse_words(command)
        except ParseError as error:
            logger.error("Command %r not registered: %s", command, error)
            return error

        modal_changed = False
        for word in words:
            if word.letter is WordLetter.G:
                modal_changed |= self.state.modal.apply_gcode(word.value)
            elif word.letter is WordLetter.F:
                self.state.feed_rate = word.value
            # Other letters do not affect the persistent state.

        if modal_changed:
            self.state.modal_changed()

        if has_axis_words(words) and self.simulator.enabled:
            self._start_or_queue(QueuedMotion(
                command, words, self.state.modal.copy(), self.state.feed_rate))
        return None

    def _register_system_command(self, command: bytes) -> Optional[ParseError]:
        """ https://github.com/gnea/grbl/wiki/Grbl-v1.1-Commands """
        if is_jog_command(command):
            return self._register_jog_command(command)
        return None

    def _register_jog_command(self, command: bytes) -> Optional[ParseError]:
        """ A jog's modes and feed rate apply to that jog only.
        https://github.com/gnea/grbl/wiki/Grbl-v1.1-Jogging """
        jog_modal = self.state.modal.copy()
        jog_feed_rate = self.state.feed_rate
        try:
            words = parse_words(command[len(JOG_COMMAND_PREFIX):])
        except ParseError as error:
            logger.error("Invalid jog command %r: %s", command, error)
            return error

        for word in words:
            if word.letter is WordLetter.G:
                jog_modal.apply_gcode(word.value, JOG_MODAL_GROUPS)
            elif word.letter is WordLetter.F:
                jog_feed_rate = word.value

        if self.simulator.enabled:
            self._start_or_queue(
                QueuedMotion(command, words, jog_modal, jog_feed_rate))
        return None

    def _register_realtime_command(self, command: int) -> None:
        if command == CANCEL_JOG_COMMAND:
            self._clear_queued_jog_commands()
            if self.simulator.cancel_jog():
                logger.debug("Jog simulation cancelled.")
                self._drain_motion_queue()
        elif command == STATUS_REPORT_QUERY_COMMAND:
            # Answered by a status report which arrives through register_message().
            pass

    def _clear_queued_jog_commands(self) -> None:
        """ Remove queued jog commands, keeping everything else in order. """
        self._motion_queue = deque(
            queued for queued in self._motion_queue if not queued.is_jog)

    # Simulated motion.
    def _start_or_queue(self, queued: QueuedMotion) -> None:
        """ Start the motion now or, if one is in flight, once those before it finish. """
        self._motion_queue.append(queued)
        self._drain_motion_queue()

    def _start_motion(self, queued: QueuedMotion) -> None:
        """ Simulate a motion using the modes in force when it was sent. """
        target, radius, center_offset = motion_words(queued.words)

        if queued.is_jog:
            motion = self.simulator.plan_linear(
                target, queued.modal.distance_mode, queued.feed_rate)
            if motion is not None:
                self.simulator.begin(motion, is_jog=True)
        else:
            self.simulator.dispatch(
                target, queued.modal, queued.feed_rate, radius, center_offset)

    def _drain_motion_queue(self) -> None:
        """ Start queued motions in order until one is left in flight.
        Motions that are not simulated (rapids, zero length moves, impossible
        arcs) finish at once and the next one is started. """
        if self._draining:
            # A motion started below finished on its first tick.
            # The loop below carries on with the next one.
            return
        self._draining = True
        try:
            while self._motion_queue and not self.simulator.in_motion:
                self._start_motion(self._motion_queue.popleft())
        finally:
            self._draining = False

    def _on_motion_complete(self) -> None:
        self._drain_motion_queue()
