""" Split a line of gcode into (letter, value) words.
Comments in either "( ... )" or "; ..." form are removed first. """

from typing import List, NamedTuple
from enum import Enum
import re

from pygcode.words import text2words
from pygcode.exceptions import GCodeWordStrError

GCODE_COMMENT_REGEX = re.compile(r"\(.*\)|;.*")


class ParseError(ValueError):
    """ A line of gcode could not be split into words. """


class WordLetter(Enum):
    """ Word letters the state tracker acts on. Everything else is OTHER. """
    G = "G"
    X = "X"
    Y = "Y"
    Z = "Z"
    F = "F"
    R = "R"
    I = "I"
    J = "J"
    OTHER = "?"

    @classmethod
    def from_letter(cls, letter: str) -> "WordLetter":
        """ Look up a letter, falling back to OTHER. """
        try:
            return cls(letter.upper())
        except ValueError:
            return cls.OTHER


class Word(NamedTuple):
    letter: WordLetter
    value: float
    raw_letter: str


AXIS_LETTERS = (WordLetter.X, WordLetter.Y, WordLetter.Z)


def remove_comments(line: str) -> str:
    """ Strip "( ... )" and "; ..." comments from a line. """
    return GCODE_COMMENT_REGEX.sub("", line)


def parse_words(line: bytes) -> List[Word]:
    """ Tokenize one line of gcode.
    Args:
        line: Raw line as sent to the controller. Trailing EOL is ignored.
    Returns:
        Words in the order they appear in the line.
    Raises:
        ParseError: A word's value is malformed or unparseable text remains.
    """
    if isinstance(line, bytes):
        try:
            text = line.decode("utf-8")
        except UnicodeDecodeError as error:
            raise ParseError("Line is not valid text: %r" % line) from error
    else:
        text = line

    text = remove_comments(text).strip()

    words = []
    try:
        for word in text2words(text):
            letter = word.letter.upper()
            kind = WordLetter.from_letter(letter)
            try:
                value = float(word.value)
            except (TypeError, ValueError):
                if kind is not WordLetter.OTHER:
                    raise
                # Not a word we act on. Keep its position in the line only.
                value = float("nan")
            words.append(Word(kind, value, letter))
    except (GCodeWordStrError, TypeError, ValueError) as error:
        raise ParseError("Invalid gcode '%s': %s" % (text, error)) from error
    return words
