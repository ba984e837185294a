""" Serial transport for Grbl 1.1 controller hardware.
Streams commands to Grbl without overflowing its receive buffer and keeps a
GrblTracker informed of everything written and received. """

from typing import Any, Callable, Deque, Optional
import logging
import threading
import time
from queue import Queue, Empty
from collections import deque

from definitions import (ConnectionState, CANCEL_JOG_COMMAND,
                         STATUS_REPORT_QUERY_COMMAND, OK_MESSAGE, ERROR_MESSAGE,
                         JOG_COMMAND_PREFIX, STATUS_REPORT_MASK_SETTING)
from controllers._controller_serial_base import _SerialControllerBase, SERIAL_INTERVAL
from controllers.command_buffer import is_realtime_command
from controllers.grbl_tracker import GrblTracker

logger = logging.getLogger(__name__)

REPORT_INTERVAL = 0.25 # seconds

# Report machine position (MPos) rather than work position in status reports.
STATUS_REPORT_MACHINE_POS = STATUS_REPORT_MASK_SETTING + b"=1"

SOFT_RESET_COMMAND = b"\x18"


def format_jog(distance_mode: bytes,
               # pylint: disable=C0103  # invalid-name
               x: Optional[float] = None,
               y: Optional[float] = None,
               z: Optional[float] = None,
               f: Optional[float] = None) -> bytes:
    """ Build a "$J=" jog command. """
    jog_command_string = JOG_COMMAND_PREFIX + distance_mode

    if x is not None:
        jog_command_string += b" X%s" % str(x).encode("utf-8")
    if y is not None:
        jog_command_string += b" Y%s" % str(y).encode("utf-8")
    if z is not None:
        jog_command_string += b" Z%s" % str(z).encode("utf-8")
    if f is not None:
        jog_command_string += b" F%s" % str(f).encode("utf-8")

    return jog_command_string


class Grbl1p1Controller(_SerialControllerBase):
    """ Grbl 1.1 controller hardware connected over a serial port. """

    def __init__(self,
                 label: str = "grbl1.1",
                 on_update_callback: Optional[Callable[[str, Any], None]] = None,
                 motion_simulation: bool = False,
                 _time: Any = time) -> None:
        super().__init__(label, on_update_callback)

        # Allow replacing with a mock version when testing.
        self._time: Any = _time

        # Tracks GRBL state from what is sent and received.
        self.tracker: GrblTracker = GrblTracker(
            self.publish_from_here, motion_simulation, _time)
        # The serial thread and the event loop both use the tracker.
        self._tracker_lock = threading.Lock()

        # Populate with GRBL commands that are processed immediately and don't need queued.
        self._command_immediate: Queue = Queue()
        # Populate with GRBL commands that are processed sequentially.
        self._command_streaming: Queue = Queue()
        # Command taken from _command_streaming that would not fit in Grbl's buffer.
        self._held_back: Deque[bytes] = deque()

        # Data received from GRBL that does not need processed immediately.
        self._received_data: Queue = Queue()

        self._partial_read: bytes = b""
        self._last_write: float = 0

        self.jog_feed_rate: float = 300

    @property
    def tracker_lock(self) -> threading.Lock:
        """ Hold while reading tracker state from another thread. """
        return self._tracker_lock

    def send(self, command: bytes) -> None:
        """ Queue a command to be written to Grbl.
        Realtime commands jump the queue. Everything else is written in order
        once there is space in Grbl's receive buffer. """
        if isinstance(command, str):
            command = command.encode("utf-8")
        if is_realtime_command(command):
            self._command_immediate.put(command)
            return

        command = command.strip()
        if command:
            self._command_streaming.put(command + b"\n")

    @property
    def pending_commands(self) -> int:
        """ Commands queued but not yet written to Grbl. """
        return self._command_streaming.qsize() + len(self._held_back)

    def parse_incoming(self, incoming: Optional[bytes]) -> None:
        """ Process data received from serial port.
        Handles urgent updates here and puts the rest in _received_data buffer for
        later processing. """
        if incoming is None:
            incoming = b""
        if self._partial_read:
            incoming = self._partial_read + incoming

        if not incoming:
            return

        pos = incoming.find(b"\r\n")
        if pos < 0:
            self._partial_read = incoming
            return

        tmp_incoming = incoming[:pos + 2]
        self._partial_read = incoming[pos + 2:]
        incoming = tmp_incoming

        incoming = incoming.strip()
        if not incoming:
            return

        # Handle time critical responses here. Otherwise defer to main thread.
        if incoming.startswith(OK_MESSAGE) or incoming.startswith(ERROR_MESSAGE):
            with self._tracker_lock:
                self.tracker.register_message(incoming)
        else:
            self._received_data.put(incoming)

    def _write_immediate(self) -> bool:
        """ Write entries in the _command_immediate buffer to serial port. """
        try:
            task = self._command_immediate.get(block=False)
        except Empty:
            return False

        if not self._serial_write(task):
            return False
        if is_realtime_command(task):
            with self._tracker_lock:
                self.tracker.register_command(task)
        return True

    def _next_streaming_task(self) -> Optional[bytes]:
        if self._held_back:
            return self._held_back.popleft()
        try:
            return self._command_streaming.get(block=False)
        except Empty:
            return None

    def _write_streaming(self) -> bool:
        """ Write entries in the _command_streaming buffer to serial port. """
        with self._tracker_lock:
            task = self._next_streaming_task()
            if task is None:
                return False

            if self.tracker.would_overflow(task):
                if not self.tracker.buffer:
                    # Would never fit, even in an empty buffer.
                    logger.error("Command too long for Grbl's receive buffer. "
                                 "Dropped: %r", task)
                    return False
                # Input buffer full. Come back after the next "ok".
                self._held_back.appendleft(task)
                return False

            if not self._serial_write(task):
                return False
            self.tracker.register_command(task)
        return True

    def _periodic_io(self) -> None:
        """ Read from and write to serial port.
            Called from a separate thread.
            Blocks while serial port remains connected. """
        while self.connection_status is ConnectionState.CONNECTED:
            # Read
            read = self._serial_read()
            while read or (b"\r\n" in self._partial_read):
                self.parse_incoming(read)
                read = self._serial_read()

            # Write
            if not self._write_immediate():
                self._write_streaming()

            # Request status update periodically.
            if self._last_write < self._time.time() - REPORT_INTERVAL:
                self._command_immediate.put(bytes([STATUS_REPORT_QUERY_COMMAND]))
                self._last_write = self._time.time()

            self._time.sleep(SERIAL_INTERVAL)

            if self.testing:
                break

    def jog(self,
            # pylint: disable=C0103  # invalid-name
            x: Optional[float] = None,
            y: Optional[float] = None,
            z: Optional[float] = None,
            f: Optional[float] = None
            ) -> None:
        """ Move machine head relative to its current position. """
        if f is None:
            f = self.jog_feed_rate
        self.send(format_jog(b"G91", x, y, z, f))

    def jog_absolute(self,
                     # pylint: disable=C0103  # invalid-name
                     x: Optional[float] = None,
                     y: Optional[float] = None,
                     z: Optional[float] = None,
                     f: Optional[float] = None
                     ) -> None:
        """ Move machine head to specified coordinates. """
        if f is None:
            f = self.jog_feed_rate
        self.send(format_jog(b"G90", x, y, z, f))

    def cancel_jog(self) -> None:
        """ Cancel currently running Jog action. """
        logger.debug("Cancel jog")
        self._command_immediate.put(bytes([CANCEL_JOG_COMMAND]))

    def toggle_motion_simulation(self) -> bool:
        """ Turn motion simulation between status reports on or off. """
        with self._tracker_lock:
            return self.tracker.toggle_motion_simulation()

    @property
    def motion_simulation(self) -> bool:
        """ Getter. """
        with self._tracker_lock:
            return self.tracker.motion_simulation_enabled

    @motion_simulation.setter
    def motion_simulation(self, value: bool) -> None:
        """ Setter. """
        with self._tracker_lock:
            if bool(value) != self.tracker.motion_simulation_enabled:
                self.tracker.toggle_motion_simulation()

    def early_update(self) -> None:
        """ Called early in the event loop. """
        super().early_update()

        with self._tracker_lock:
            # Process data received over serial port.
            while True:
                try:
                    received_line = self._received_data.get(block=False)
                except Empty:
                    break
                self.tracker.register_message(received_line)

            # Advance simulated motion.
            self.tracker.update()

    def on_connected(self) -> None:
        """ Executed when serial port first comes up. """
        if self._serial is None or not self._serial.is_open:
            super().on_connected()
            return

        # Clear any state from before a disconnect.
        with self._tracker_lock:
            self.tracker.buffer.clear()
        self._held_back.clear()
        self._partial_read = b""

        # Perform a soft reset of Grbl then ask for machine position in reports.
        # Queued before the serial thread starts so they are the first writes.
        self._command_immediate.put(SOFT_RESET_COMMAND)
        self.send(STATUS_REPORT_MACHINE_POS)

        super().on_connected()
        if self.connection_status is ConnectionState.CONNECTED:
            self.ready_for_data = True
