""" Base class for all CNC machine control hardware. """

from typing import Any, Callable, Optional
import logging

from definitions import ConnectionState

logger = logging.getLogger(__name__)


class _ControllerBase:
    """ Base class for all CNC machine control hardware. """

    data_to_sync = (
        "connection_status",
        "desired_connection_status",
        "label"
        )

    def __init__(self,
                 label: str,
                 on_update_callback: Optional[Callable[[str, Any], None]] = None) -> None:
        self.label: str = label
        self.on_update_callback = on_update_callback or (lambda name, value: None)

        self.ready_for_data: bool = False
        self.connection_status: ConnectionState = ConnectionState.UNKNOWN
        self.desired_connection_status: ConnectionState = ConnectionState.NOT_CONNECTED

        self.set_connection_status(ConnectionState.UNKNOWN)
        self.set_desired_connection_status(ConnectionState.NOT_CONNECTED)

        self.sync()

    def key_gen(self, tag: str) -> str:
        """ Generate a unique name for an update published from this controller. """
        return "%s:%s" % (self.label, tag)

    def sync(self) -> None:
        """ Publish all paramiters listed in self.data_to_sync. """
        for parameter in self.data_to_sync:
            assert hasattr(self, parameter), \
                   "Parameter: %s does not exist in: %s" % (parameter, self)
            self.on_update_callback(self.key_gen(parameter), getattr(self, parameter))

    def publish_from_here(self, variable_name: str, variable_value: Any) -> None:
        """ A method wrapper to pass on to the state machine so it can
        publish updates tagged with this controller's label. """
        self.on_update_callback(self.key_gen(variable_name), variable_value)

    def set_desired_connection_status(self, connection_status: ConnectionState) -> None:
        """ Set connection status we would like controller to be in.
        The controller should then attempt to transition to this state. """
        self.desired_connection_status = connection_status
        self.on_update_callback(self.key_gen("desired_connection_status"), connection_status)

    def set_connection_status(self, connection_status: ConnectionState) -> None:
        """ Set connection status of controller. """
        if connection_status is not self.connection_status:
            logger.debug("%s connection status: %s", self.label, connection_status.name)
        self.connection_status = connection_status
        self.on_update_callback(self.key_gen("connection_status"), connection_status)

    def connect(self) -> ConnectionState:
        """ Make connection to controller. """
        raise NotImplementedError

    def disconnect(self) -> ConnectionState:
        """ Disconnect from controller. """
        raise NotImplementedError

    def send(self, command: bytes) -> None:
        """ Queue a command for the controller. """
        raise NotImplementedError

    def early_update(self) -> None:
        """ Called early in the event loop. """

    def jog(self,
            # pylint: disable=C0103  # invalid-name
            x: Optional[float] = None,
            y: Optional[float] = None,
            z: Optional[float] = None,
            f: Optional[float] = None
            ) -> None:
        """ Move machine head relative to its current position. """
        raise NotImplementedError

    def cancel_jog(self) -> None:
        """ Cancel currently running Jog action. """
        raise NotImplementedError
