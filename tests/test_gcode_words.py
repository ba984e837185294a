#!/usr/bin/env python3

""" Testing splitting gcode lines into words. """

import math
import unittest
import loader  # pylint: disable=E0401,W0611
from core.gcode_words import parse_words, remove_comments, ParseError, WordLetter


class TestRemoveComments(unittest.TestCase):
    """ Comments are stripped before tokenizing. """

    def test_parenthesis(self):
        self.assertEqual(remove_comments("G1 (move) X1").strip(), "G1  X1")

    def test_semicolon(self):
        self.assertEqual(remove_comments("G1 X1 ; to the right").strip(), "G1 X1")

    def test_no_comment(self):
        self.assertEqual(remove_comments("G1 X1"), "G1 X1")


class TestParseWords(unittest.TestCase):
    """ Lines become (letter, value) words in the order they appear. """

    def test_motion_line(self):
        words = parse_words(b"G1 X10 Y-2.5 F300\n")
        self.assertEqual([word.letter for word in words],
                         [WordLetter.G, WordLetter.X, WordLetter.Y, WordLetter.F])
        self.assertEqual([word.value for word in words], [1, 10, -2.5, 300])

    def test_no_spaces(self):
        words = parse_words(b"G2X10Y0R5")
        self.assertEqual([word.letter for word in words],
                         [WordLetter.G, WordLetter.X, WordLetter.Y, WordLetter.R])
        self.assertEqual(words[3].value, 5)

    def test_lower_case(self):
        words = parse_words(b"g91 x1")
        self.assertEqual(words[0].letter, WordLetter.G)
        self.assertEqual(words[0].value, 91)
        self.assertEqual(words[1].letter, WordLetter.X)

    def test_decimal_gcode(self):
        words = parse_words(b"G90.1")
        self.assertEqual(words[0].letter, WordLetter.G)
        self.assertAlmostEqual(words[0].value, 90.1)

    def test_center_offsets(self):
        words = parse_words(b"G3 X1 Y1 I0.5 J-0.5")
        self.assertEqual(words[3].letter, WordLetter.I)
        self.assertEqual(words[3].value, 0.5)
        self.assertEqual(words[4].letter, WordLetter.J)
        self.assertEqual(words[4].value, -0.5)

    def test_other_letters(self):
        """ Letters the tracker does not act on are still tokenized. """
        words = parse_words(b"M3 S1000")
        self.assertEqual([word.letter for word in words],
                         [WordLetter.OTHER, WordLetter.OTHER])
        self.assertEqual([word.raw_letter for word in words], ["M", "S"])
        self.assertFalse(any(math.isnan(word.value) for word in words))

    def test_comments_ignored(self):
        words = parse_words(b"G0 X1 (rapid) ; done")
        self.assertEqual(len(words), 2)

    def test_empty(self):
        self.assertEqual(parse_words(b""), [])
        self.assertEqual(parse_words(b"   \n"), [])
        self.assertEqual(parse_words(b"; just a comment"), [])

    def test_str_accepted(self):
        words = parse_words("G0 Z5")
        self.assertEqual(words[1].letter, WordLetter.Z)
        self.assertEqual(words[1].value, 5)

    def test_missing_value(self):
        with self.assertRaises(ParseError):
            parse_words(b"G1 X")

    def test_bad_value(self):
        with self.assertRaises(ParseError):
            parse_words(b"G1 Xabc")

    def test_not_text(self):
        with self.assertRaises(ParseError):
            parse_words(b"G1 X\xff\xfe")


if __name__ == "__main__":
    unittest.main()
