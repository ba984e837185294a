#!/usr/bin/env python3
""" Stream G-Code to a Grbl controller while tracking the machine's state.
https://en.wikipedia.org/wiki/G-code

Position and run state are printed whenever they change. With motion
simulation enabled the position is interpolated between Grbl's status reports.
"""

from typing import Any, Dict, Iterable, Optional
import argparse
import logging
import sys
import time

from definitions import ConnectionState
from core.config import load_config, setup_controllers, ConfigError, DEFAULT_CONFIG
from controllers._controller_serial_base import search_device, SERIAL_INTERVAL
from controllers.grbl_1_1 import Grbl1p1Controller

CONTROLLER_CLASSES = {"Grbl1p1Controller": Grbl1p1Controller}

# Give up if the serial port has not come up after this long.
CONNECT_TIMEOUT = 5.0 # seconds


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    """ Command line arguments. """
    parser = argparse.ArgumentParser(description="Stream G-Code to a Grbl controller.")

    parser.add_argument("file",
                        nargs="?",
                        default="-",
                        help="G-Code file to stream. Reads stdin if omitted.")
    parser.add_argument("-config",
                        default=DEFAULT_CONFIG,
                        help="Configuration file.")
    parser.add_argument("-controller",
                        help="Label of the controller to use from the config file.")
    parser.add_argument("-port",
                        help="Serial port. Overrides the config file.")
    parser.add_argument("-baud",
                        type=int,
                        help="Serial baud rate. Overrides the config file.")
    parser.add_argument("-simulate",
                        action="store_true",
                        help="Simulate motion between status reports.")
    parser.add_argument("-list_ports",
                        action="store_true",
                        help="List serial ports and exit.")
    parser.add_argument("-debug",
                        action="store_true",
                        help="Verbose logging.")

    return parser.parse_args(argv)


def pick_controller(args: argparse.Namespace,
                    controllers: Dict[str, Any]) -> Grbl1p1Controller:
    """ Choose the controller named on the command line, else the first one
    configured, else a new one. """
    if args.controller:
        if args.controller not in controllers:
            raise ConfigError("No controller labelled '%s' in config." % args.controller)
        controller = controllers[args.controller]
    elif controllers:
        controller = next(iter(controllers.values()))
    else:
        controller = Grbl1p1Controller()

    if args.port:
        controller.serial_port = args.port
    if args.baud:
        controller.serial_baud = args.baud
    if args.simulate:
        controller.motion_simulation = True
    return controller


def read_lines(filename: str) -> Iterable[str]:
    """ Lines of G-Code from a file or stdin. """
    if filename == "-":
        yield from sys.stdin
        return
    with open(filename) as gcode_file:
        yield from gcode_file


def print_state(controller: Grbl1p1Controller) -> None:
    """ Display machine position and state if either changed. """
    with controller.tracker_lock:
        state = controller.tracker.state
        if not state.changes_made:
            return
        state.changes_made = False
        pos = dict(state.machine_pos)
        run_state = state.run_state
    print("X: %.3f  Y: %.3f  Z: %.3f  %s" % (pos["x"], pos["y"], pos["z"], run_state.name))


def wait_for_connection(controller: Grbl1p1Controller) -> bool:
    """ Step the controller until connected or the attempt fails. """
    controller.set_desired_connection_status(ConnectionState.CONNECTED)
    started = time.time()
    while controller.connection_status is not ConnectionState.CONNECTED:
        controller.early_update()
        if controller.desired_connection_status is not ConnectionState.CONNECTED:
            # Connection attempt failed and has been abandoned.
            return False
        if time.time() - started > CONNECT_TIMEOUT:
            return False
        time.sleep(SERIAL_INTERVAL)
    return True


def stream(controller: Grbl1p1Controller, lines: Iterable[str]) -> None:
    """ Queue every line then run until Grbl has acknowledged them all. """
    for line in lines:
        controller.send(line)

    while controller.connection_status is ConnectionState.CONNECTED:
        controller.early_update()
        print_state(controller)

        with controller.tracker_lock:
            finished = (not controller.pending_commands and
                        not controller.tracker.buffer and
                        not controller.tracker.in_motion)
        if finished:
            break
        time.sleep(SERIAL_INTERVAL)


def main(argv: Optional[Iterable[str]] = None) -> int:
    """ Main program loop. """
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.list_ports:
        for port in search_device():
            print(port)
        return 0

    try:
        config = load_config(args.config)
        controllers = setup_controllers(config, CONTROLLER_CLASSES)
        controller = pick_controller(args, controllers)
    except ConfigError as error:
        print("--------")
        print(error)
        print("--------")
        return 1

    if not controller.serial_port:
        print("No serial port configured. Try -list_ports.")
        return 1

    if not wait_for_connection(controller):
        print("Could not connect to %s" % controller.serial_port)
        return 1

    try:
        stream(controller, read_lines(args.file))
    except KeyboardInterrupt:
        print("Interrupted.")
    finally:
        controller.disconnect()
        while controller.connection_status is ConnectionState.DISCONNECTING:
            controller.early_update()

    print_state(controller)
    print("done")
    return 0

if __name__ == "__main__":
    sys.exit(main())
