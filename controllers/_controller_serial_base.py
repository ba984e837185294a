# pylint: disable=W0223
# Method 'send' is abstract in class '_ControllerBase' but is not
# overridden (abstract-method)
""" Base class for hardware controllers that use a serial port to connect.

The connection is stepped through ConnectionState by early_update():
    NOT_CONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTING -> NOT_CONNECTED
Failures pass through CLEANUP on the way back to NOT_CONNECTED.
Once CONNECTED, _periodic_io() runs in its own thread until the state changes.
"""

from typing import Any, Callable, Optional, List, Set
import logging
import os.path
import threading

import serial
import serial.tools.list_ports

from controllers._controller_base import _ControllerBase
from definitions import ConnectionState

logger = logging.getLogger(__name__)

SERIAL_INTERVAL = 0.02 # seconds

# Path to grbl-sim instance.
FAKE_SERIAL = "/tmp/ttyFAKE"

# States from which early_update() gives up and resets to NOT_CONNECTED.
FAILED_STATES = (ConnectionState.FAIL,
                 ConnectionState.MISSING_RESOURCE,
                 ConnectionState.BLOCKED)


def search_device() -> List[str]:
    """ Serial ports with a USB vendor and product id, plus grbl-sim if running. """
    ports = [port.device for port in serial.tools.list_ports.comports()
             if None not in (port.vid, port.pid, port.device)]

    if os.path.exists(FAKE_SERIAL):
        ports.append(FAKE_SERIAL)
    return ports


class _SerialControllerBase(_ControllerBase):
    """ Base class for hardware controllers that use a serial port to connect. """

    # Ports opened by any instance. Only one controller may use a port.
    _serial_port_in_use: Set[str] = set()

    def __init__(self,
                 label: str = "serialController",
                 on_update_callback: Optional[Callable[[str, Any], None]] = None) -> None:
        super().__init__(label, on_update_callback)
        self.serial_port: str = ""
        self.serial_baud: int = 115200
        self._serial: Any = None
        self.testing: bool = False  # Prevent _periodic_io() from blocking during tests.
        self._serial_thread: Optional[threading.Thread] = None

    def _fail(self, reason: str, error: Exception) -> None:
        logger.error("%s %s: %s", reason, self.serial_port, error)
        self.set_connection_status(ConnectionState.FAIL)

    def connect(self) -> ConnectionState:
        """ Open the serial port. Moves to CONNECTING on success. """
        if self.connection_status in (ConnectionState.CONNECTING,
                                      ConnectionState.CONNECTED,
                                      ConnectionState.MISSING_RESOURCE):
            return self.connection_status

        if self.serial_port in self._serial_port_in_use:
            logger.warning("%s already in use.", self.serial_port)
            self.set_connection_status(ConnectionState.BLOCKED)
            return self.connection_status

        try:
            self._serial = serial.serial_for_url(
                self.serial_port, self.serial_baud, timeout=0)
        except serial.SerialException as error:
            logger.error("Could not open %s: %s", self.serial_port, error)
            self.set_connection_status(ConnectionState.MISSING_RESOURCE)
            return self.connection_status

        self._serial_port_in_use.add(self.serial_port)
        self.set_connection_status(ConnectionState.CONNECTING)
        return self.connection_status

    def disconnect(self) -> ConnectionState:
        """ Stop the serial thread and close the port. Moves to DISCONNECTING
        until on_disconnected() confirms the port is closed. """
        self.set_desired_connection_status(ConnectionState.NOT_CONNECTED)
        if self.connection_status in (ConnectionState.DISCONNECTING,
                                      ConnectionState.NOT_CONNECTED):
            return self.connection_status

        self.ready_for_data = False
        if self._serial is None:
            self.set_connection_status(ConnectionState.NOT_CONNECTED)
            return self.connection_status

        logger.info("Disconnecting %s %s", self.label, self.serial_port)
        # _periodic_io() exits once the state is no longer CONNECTED.
        self.set_connection_status(ConnectionState.DISCONNECTING)
        if self._serial_thread is not None:
            self._serial_thread.join()
            self._serial_thread = None
        self._serial.close()

        return self.connection_status

    def on_connected(self) -> None:
        """ Port is open. Discard anything already received then start the
        serial thread. """
        if self._serial is None:
            self.set_connection_status(ConnectionState.FAIL)
            return
        if not self._serial.is_open:
            # Try again next early_update().
            return

        logger.info("Connected %s %s", self.label, self.serial_port)
        self.set_connection_status(ConnectionState.CONNECTED)

        self._serial.flush()
        while self._serial.readline():
            pass

        if self.testing:
            # Tests call _periodic_io() directly.
            return

        self._serial_thread = threading.Thread(target=self._periodic_io, daemon=True)
        self._serial_thread.start()

    def on_disconnected(self) -> None:
        """ Port has been closed. Release it for other controllers. """
        if self._serial is None:
            self.set_connection_status(ConnectionState.FAIL)
            return
        if self._serial.is_open:
            return

        logger.info("Serial disconnected.")
        self._serial_port_in_use.discard(self.serial_port)
        self._serial = None
        self.set_connection_status(ConnectionState.NOT_CONNECTED)

    def _serial_write(self, data: bytes) -> bool:
        """ Write to the port. Returns False and moves to FAIL on error. """
        if self._serial is None:
            self.set_connection_status(ConnectionState.FAIL)
            return False

        try:
            self._serial.write(data)
        except serial.SerialException as error:
            self._fail("Write failed on", error)
            return False
        return True

    def _serial_read(self) -> bytes:
        """ Read one line if anything is waiting. Never blocks. """
        if self._serial is None:
            self.set_connection_status(ConnectionState.FAIL)
            return b""

        try:
            if not self._serial.in_waiting:
                return b""
            return self._serial.readline()
        except (OSError, serial.SerialException) as error:
            self._fail("Read failed on", error)
        return b""

    def early_update(self) -> None:
        """ Called early in the event loop. Steps towards desired_connection_status. """
        status = self.connection_status
        if status is self.desired_connection_status:
            return

        if status is ConnectionState.CONNECTING:
            self.on_connected()
        elif status is ConnectionState.DISCONNECTING:
            self.on_disconnected()
        elif status in FAILED_STATES:
            logger.warning("%s connection state: %s", self.label, status.name)
            self.set_desired_connection_status(ConnectionState.NOT_CONNECTED)
            self.set_connection_status(ConnectionState.CLEANUP)
        elif self.desired_connection_status is ConnectionState.CONNECTED:
            self.connect()
        else:
            self.disconnect()

    def _periodic_io(self) -> None:
        """ Read from and write to serial port.
            Called from a separate thread.
            Blocks while serial port remains connected. """
        raise NotImplementedError
