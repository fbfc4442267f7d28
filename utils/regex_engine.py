"""
Regex Engine - Safe Pattern Compilation

Turns user supplied pattern strings into compiled, testable patterns. Input
may be a raw pattern (``hello``) or a wrapped pattern with flags
(``/hello/i``). Every pattern goes through shape checks before compilation
so that the two classic catastrophic-backtracking shapes are rejected up
front:

    (a+)+    nested quantifiers
    (a|b)*   quantified alternation

These checks are heuristics, not a proof of safety.

Classes:
    - CompiledPattern: compiled pattern plus its source and flag letters
    - PatternError and subclasses: validation failures

Functions:
    - compile_pattern: parse, check and compile a pattern string
    - check_complexity: run the shape checks on a bare pattern
"""

import re
from typing import Tuple, Union

MAX_PATTERN_LENGTH = 1000
MAX_NESTING_DEPTH = 10

NESTED_QUANTIFIERS = re.compile(r"(\([^)]*[*+]\)[*+])|(\([^)]*[*+]\)\{)")
DANGEROUS_ALTERNATION = re.compile(r"\([^)]*\|[^)]*\)[*+]")

# Wrapped-pattern flag letters and what they mean for a boolean test.
FLAG_MAP = {
    "d": 0,             # match indices
    "g": 0,             # global
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": re.UNICODE,
    "v": re.UNICODE,
    "y": 0,             # sticky, handled in CompiledPattern.test
}


class PatternError(ValueError):
    """Base class for pattern validation errors."""


class InvalidInputKindError(PatternError, TypeError):
    """The pattern is neither a string nor an already compiled pattern."""


class PatternTooLongError(PatternError):
    pass


class NestingTooDeepError(PatternError):
    pass


class NestedQuantifiersError(PatternError):
    pass


class DangerousAlternationError(PatternError):
    pass


class InvalidSyntaxError(PatternError):
    """The pattern or its flags could not be compiled."""


class CompiledPattern:
    """
    A compiled pattern and the string it came from.

    Attributes:
        source: Pattern text without delimiters
        flags: Flag letters as given (e.g. "gi")
        regex: The underlying re.Pattern
    """

    __slots__ = ("source", "flags", "regex")

    def __init__(self, source: str, flags: str, regex: re.Pattern):
        self.source = source
        self.flags = flags
        self.regex = regex

    @property
    def global_(self) -> bool:
        return "g" in self.flags

    @property
    def ignore_case(self) -> bool:
        return "i" in self.flags

    @property
    def multiline(self) -> bool:
        return "m" in self.flags

    @property
    def dot_all(self) -> bool:
        return "s" in self.flags

    @property
    def unicode(self) -> bool:
        return "u" in self.flags or "v" in self.flags

    @property
    def sticky(self) -> bool:
        return "y" in self.flags

    @property
    def has_indices(self) -> bool:
        return "d" in self.flags

    def test(self, text: str) -> bool:
        """Return True if the pattern matches anywhere in text (at the start when sticky)."""
        if self.sticky:
            return self.regex.match(text) is not None
        return self.regex.search(text) is not None

    def __eq__(self, other) -> bool:
        if not isinstance(other, CompiledPattern):
            return NotImplemented
        return self.source == other.source and self.flags == other.flags

    def __hash__(self) -> int:
        return hash((self.source, self.flags))

    def __repr__(self) -> str:
        return f"CompiledPattern(/{self.source}/{self.flags})"


def nesting_depth(pattern: str) -> int:
    """
    Maximum group nesting depth of a pattern.

    A parenthesis directly preceded by a backslash is treated as a literal.
    """
    max_depth = 0
    depth = 0
    for index, char in enumerate(pattern):
        escaped = index > 0 and pattern[index - 1] == "\\"
        if char == "(" and not escaped:
            depth += 1
            max_depth = max(max_depth, depth)
        elif char == ")" and not escaped:
            depth -= 1
    return max_depth


def check_complexity(pattern: str) -> None:
    """
    Reject patterns that are too large or have a known backtracking shape.

    Args:
        pattern: Bare pattern text (no delimiters or flags)

    Raises:
        PatternTooLongError, NestingTooDeepError, NestedQuantifiersError,
        DangerousAlternationError
    """
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise PatternTooLongError(
            f"Regex pattern exceeds maximum length of {MAX_PATTERN_LENGTH} characters")

    if nesting_depth(pattern) > MAX_NESTING_DEPTH:
        raise NestingTooDeepError(
            f"Regex pattern exceeds maximum nesting depth of {MAX_NESTING_DEPTH}")

    if NESTED_QUANTIFIERS.search(pattern):
        raise NestedQuantifiersError(
            "Regex pattern contains nested quantifiers which may cause catastrophic backtracking")

    if DANGEROUS_ALTERNATION.search(pattern):
        raise DangerousAlternationError(
            "Regex pattern contains alternation with quantifiers which may cause performance issues")


def split_wrapped(value: str, default_flags: str = "") -> Tuple[str, str]:
    """
    Split a pattern string into (pattern, flags).

    ``/body/flags`` is unwrapped; anything else is returned whole with the
    default flags.
    """
    last_slash = value.rfind("/")
    if value.startswith("/") and last_slash > 0:
        return value[1:last_slash], value[last_slash + 1:]
    return value, default_flags


def translate_flags(flags: str) -> int:
    """
    Convert flag letters into re module flags.

    Raises:
        InvalidSyntaxError: Unknown or repeated flag letters
    """
    re_flags = 0
    seen = set()
    for letter in flags:
        if letter not in FLAG_MAP:
            raise InvalidSyntaxError(f"Invalid flags supplied to RegExp constructor '{flags}'")
        if letter in seen:
            raise InvalidSyntaxError(f"Duplicate flag '{letter}' in '{flags}'")
        seen.add(letter)
        re_flags |= FLAG_MAP[letter]
    return re_flags


def _flags_from_regex(regex: re.Pattern) -> str:
    letters = ""
    if regex.flags & re.IGNORECASE:
        letters += "i"
    if regex.flags & re.MULTILINE:
        letters += "m"
    if regex.flags & re.DOTALL:
        letters += "s"
    return letters


def compile_pattern(
    value: Union[str, CompiledPattern, re.Pattern],
    default_flags: str = ""
) -> CompiledPattern:
    """
    Parse, check and compile a pattern string.

    Args:
        value: Raw pattern, wrapped "/pattern/flags" string, or an already
               compiled pattern (returned as-is)
        default_flags: Flags used when the value is not wrapped

    Returns:
        CompiledPattern: Ready to test against message text

    Raises:
        InvalidInputKindError: value is not a string or compiled pattern
        PatternTooLongError, NestingTooDeepError, NestedQuantifiersError,
        DangerousAlternationError: pattern failed the complexity checks
        InvalidSyntaxError: the pattern or flags don't compile

    Examples:
        >>> compile_pattern("/hello/i").test("HELLO there")
        True
        >>> compile_pattern("say hello").source
        'say hello'
    """
    if isinstance(value, CompiledPattern):
        return value

    if isinstance(value, re.Pattern):
        return CompiledPattern(value.pattern, _flags_from_regex(value), value)

    if not isinstance(value, str):
        raise InvalidInputKindError("Regex must be a string or compiled pattern")

    pattern, flags = split_wrapped(value, default_flags)

    check_complexity(pattern)

    re_flags = translate_flags(flags)
    try:
        regex = re.compile(pattern, re_flags)
    except (re.error, OverflowError, RecursionError) as e:
        raise InvalidSyntaxError(f"Invalid regular expression: /{pattern}/{flags}: {e}") from e

    return CompiledPattern(pattern, flags, regex)

