""" Put the project root on the path so tests can import the modules under test
without installing them. """

import sys
import os

TESTDIR = os.path.dirname(__file__)
SRCDIR = '../'
sys.path.insert(0, os.path.abspath(os.path.join(TESTDIR, SRCDIR)))
