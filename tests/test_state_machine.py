#!/usr/bin/env python3

""" Testing the state machine tracking modes, position and Grbl status. """

#pylint: disable=protected-access

import unittest
import loader  # pylint: disable=E0401,W0611
from definitions import DistanceMode, UnitMode, MotionMode, RunState
from controllers.state_machine import ModalState, StateMachineGrbl


class TestModalState(unittest.TestCase):
    """ "G" words select persistent modes. """

    def setUp(self):
        self.modal = ModalState()

    def test_defaults(self):
        self.assertIs(self.modal.distance_mode, DistanceMode.ABSOLUTE)
        self.assertIs(self.modal.arc_distance_mode, DistanceMode.INCREMENTAL)
        self.assertIs(self.modal.unit_mode, UnitMode.MILLIMETER)
        self.assertIs(self.modal.motion_mode, MotionMode.LINEAR)

    def test_apply(self):
        self.assertTrue(self.modal.apply_gcode(91))
        self.assertIs(self.modal.distance_mode, DistanceMode.INCREMENTAL)
        self.assertTrue(self.modal.apply_gcode(90.1))
        self.assertIs(self.modal.arc_distance_mode, DistanceMode.ABSOLUTE)
        self.assertTrue(self.modal.apply_gcode(20))
        self.assertIs(self.modal.unit_mode, UnitMode.INCH)
        self.assertTrue(self.modal.apply_gcode(3))
        self.assertIs(self.modal.motion_mode, MotionMode.ARC_CCW)
        self.assertTrue(self.modal.apply_gcode(0))
        self.assertIs(self.modal.motion_mode, MotionMode.RAPID)

    def test_idempotent(self):
        """ Applying the same mode twice is the same as applying it once. """
        self.modal.apply_gcode(91)
        once = self.modal.copy()
        self.modal.apply_gcode(90)
        self.modal.apply_gcode(90)
        twice = self.modal.copy()

        once.apply_gcode(90)
        self.assertEqual(once, twice)
        self.assertIs(twice.distance_mode, DistanceMode.ABSOLUTE)

    def test_unknown_gcode(self):
        """ Non modal and unsupported "G" words change nothing. """
        before = self.modal.copy()
        self.assertFalse(self.modal.apply_gcode(4))
        self.assertFalse(self.modal.apply_gcode(17))
        self.assertFalse(self.modal.apply_gcode(38.2))
        self.assertEqual(self.modal, before)

    def test_restricted_groups(self):
        self.assertFalse(self.modal.apply_gcode(2, ("distance_mode", "unit_mode")))
        self.assertIs(self.modal.motion_mode, MotionMode.LINEAR)
        self.assertTrue(self.modal.apply_gcode(91, ("distance_mode", "unit_mode")))
        self.assertIs(self.modal.distance_mode, DistanceMode.INCREMENTAL)

    def test_copy_independent(self):
        copy = self.modal.copy()
        copy.apply_gcode(91)
        self.assertIs(self.modal.distance_mode, DistanceMode.ABSOLUTE)
        self.assertNotEqual(copy, self.modal)


class TestStateMachineUpdates(unittest.TestCase):
    """ Changes are announced through on_update_callback. """

    def setUp(self):
        self.updates = []
        self.state = StateMachineGrbl(lambda name, value: self.updates.append((name, value)))

    def test_machine_pos_partial(self):
        self.state.machine_pos = {"X": 1.5}
        self.assertEqual(self.state.machine_pos, {"x": 1.5, "y": 0.0, "z": 0.0})
        self.assertIn(("machine_pos:x", 1.5), self.updates)
        self.assertEqual(self.updates[-1][0], "machine_pos")

    def test_machine_pos_unchanged(self):
        self.state.machine_pos = {"x": 0.0, "y": 0.0, "z": 0.0}
        self.assertEqual(self.updates, [])

    def test_run_state(self):
        self.state.run_state = RunState.JOG
        self.assertEqual(self.updates, [("run_state", RunState.JOG)])
        self.state.run_state = RunState.JOG
        self.assertEqual(len(self.updates), 1)

    def test_sync(self):
        self.state.sync()
        names = [name for name, _ in self.updates]
        for prop in StateMachineGrbl.machine_properties:
            self.assertIn(prop, names)
        self.assertIn("machine_pos:z", names)
        self.assertIn("gcode_modal:distance_mode", names)


class TestStatusReports(unittest.TestCase):
    """ Parsing status reports received from Grbl. """

    def setUp(self):
        self.state = StateMachineGrbl()
        self.state.changes_made = False

    def test_is_status_report(self):
        self.assertTrue(StateMachineGrbl.is_status_report(b"<Idle|MPos:0.000,0.000,0.000>"))
        self.assertFalse(StateMachineGrbl.is_status_report(b"ok"))
        self.assertFalse(StateMachineGrbl.is_status_report(b"[GC:G0 G54]"))

    def test_idle(self):
        self.state.parse_incoming(b"<Idle|MPos:1.000,-2.500,3.250|FS:0,0>")
        self.assertEqual(self.state.machine_pos, {"x": 1.0, "y": -2.5, "z": 3.25})
        self.assertIs(self.state.run_state, RunState.IDLE)
        self.assertTrue(self.state.changes_made)

    def test_states(self):
        for token, run_state in ((b"Run", RunState.CYCLE),
                                 (b"Jog", RunState.JOG),
                                 (b"Home", RunState.HOMING),
                                 (b"Alarm", RunState.ALARM),
                                 (b"Check", RunState.CHECK_MODE),
                                 (b"Sleep", RunState.SLEEP),
                                 (b"Idle", RunState.IDLE)):
            self.state.parse_incoming(b"<%s|MPos:0.000,0.000,0.000>" % token)
            self.assertIs(self.state.run_state, run_state)

    def test_sub_state(self):
        self.state.parse_incoming(b"<Hold:0|MPos:0.000,0.000,0.000|FS:0,0>")
        self.assertIs(self.state.run_state, RunState.HOLD)
        self.state.parse_incoming(b"<Door:1|MPos:0.000,0.000,0.000|FS:0,0>")
        self.assertIs(self.state.run_state, RunState.SAFETY_DOOR)

    def test_unknown_state(self):
        """ Position is still taken from a report with an unknown state. """
        self.state.run_state = RunState.CYCLE
        self.state.parse_incoming(b"<Dancing|MPos:5.000,5.000,5.000>")
        self.assertIs(self.state.run_state, RunState.CYCLE)
        self.assertEqual(self.state.machine_pos, {"x": 5.0, "y": 5.0, "z": 5.0})

    def test_first_triple_used(self):
        """ Work coordinate offset that follows MPos is not the position. """
        self.state.parse_incoming(b"<Idle|MPos:1.000,2.000,3.000|FS:0,0|WCO:9.000,9.000,9.000>")
        self.assertEqual(self.state.machine_pos, {"x": 1.0, "y": 2.0, "z": 3.0})

    def test_not_a_report(self):
        for message in (b"[MSG:Caution: Unlocked]",
                        b"ALARM:1",
                        b"Grbl 1.1h ['$' for help]",
                        b"$10=1",
                        b"<>"):
            self.state.parse_incoming(message)
        self.assertEqual(self.state.machine_pos, {"x": 0.0, "y": 0.0, "z": 0.0})
        self.assertIs(self.state.run_state, RunState.IDLE)
        self.assertFalse(self.state.changes_made)


if __name__ == "__main__":
    unittest.main()
