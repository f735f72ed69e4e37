"""Architecture-conditional dead code removal.

A source file may wrap code in one of two prologues, by default::

    if (Meteor.isClient) { ...client only... }
    if (Meteor.isServer) { ...server only... }

For a given target architecture the scanner keeps the bodies of the regions
meant for it (with the prologue and the matching closing brace stripped) and
drops the other regions completely.  Everything outside the regions is copied
verbatim.

The scan is a single pass, one character at a time.  Each character is pushed
onto both a SuffixMatchBuffer, which recognises tokens as their last
character arrives, and a MutableOutputBuffer, from which characters are taken
back once the scanner decides they must not be emitted.  Inside a region the
scanner tracks comments (and, when string_aware, string and regular
expression literals) so that braces in them do not disturb the brace depth.

A ``/`` starts a regular expression literal only where an operand is
expected: after an operator or opening punctuator, or after a keyword such
as ``return``.  Anywhere else it is taken as division.  This is the usual
lexer heuristic; a regex literal right after ``)`` or ``}`` is read as
division, and a quote inside it can then open a string literal.
"""

import enum
import os
from typing import Tuple

import archsplit.utils
from archsplit.architecture import DEFAULT_SERVER_ARCH, is_server_class
from archsplit.buffers import MutableOutputBuffer, SuffixMatchBuffer
from archsplit.stringzilla_utils import contains_any_sz, line_number_at

DEFAULT_CLIENT_PROLOGUE = "if (Meteor.isClient) {"
DEFAULT_SERVER_PROLOGUE = "if (Meteor.isServer) {"
DEFAULT_BYPASS_ROOTS = ("client", "server")

OPEN_BRACE = "{"
CLOSE_BRACE = "}"
LINE_COMMENT_OPEN = "//"
LINE_TERMINATORS = ("\r", "\n")
BLOCK_COMMENT_OPEN = "/*"
BLOCK_COMMENT_CLOSE = "*/"
ESCAPE = "\\"
REGEX_DELIMITER = "/"
CHARACTER_CLASS_OPEN = "["
CHARACTER_CLASS_CLOSE = "]"

# Code characters after which a "/" opens a regular expression literal
REGEX_PRECEDERS = frozenset("(,=:[!&|?{};+-*%<>~^")
REGEX_KEYWORDS = frozenset(
    (
        "return", "typeof", "instanceof", "in", "of", "new", "delete", "void",
        "throw", "case", "do", "else", "yield", "await",
    )
)


def _is_identifier_char(char):
    return char.isalnum() or char in "_$"


class ScanState(enum.Enum):
    NEUTRAL = "Neutral"
    IN_CLIENT_BLOCK = "InClientBlock"
    IN_SERVER_BLOCK = "InServerBlock"


class SubState(enum.Enum):
    """Lexical context inside a region.  Always CODE while NEUTRAL."""

    CODE = "Code"
    LINE_COMMENT = "LineComment"
    BLOCK_COMMENT = "BlockComment"
    SINGLE_QUOTE = "SingleQuote"
    DOUBLE_QUOTE = "DoubleQuote"
    TEMPLATE_LITERAL = "TemplateLiteral"
    REGEX = "Regex"


_QUOTE_SUBSTATES = {
    "'": SubState.SINGLE_QUOTE,
    '"': SubState.DOUBLE_QUOTE,
    "`": SubState.TEMPLATE_LITERAL,
}
_CLOSING_QUOTES = {substate: quote for quote, substate in _QUOTE_SUBSTATES.items()}


class UnterminatedRegionError(ValueError):
    """Input ended before a conditional region's closing brace."""

    def __init__(self, logical_path, line, state):
        self.logical_path = logical_path
        self.line = line
        self.state = state
        super().__init__(
            f"{logical_path}:{line}: {state.value} region opened here is never closed"
        )


def add_arguments(cap):
    """Add the command line arguments that the scanner requires"""
    cap.add(
        "--client-prologue",
        default=DEFAULT_CLIENT_PROLOGUE,
        help="Literal text that opens a client only region",
    )
    cap.add(
        "--server-prologue",
        default=DEFAULT_SERVER_PROLOGUE,
        help="Literal text that opens a server only region",
    )
    archsplit.utils.add_flag_argument(
        parser=cap,
        name="string-aware",
        dest="string_aware",
        default=True,
        help="Ignore braces and comment markers inside string and regular expression "
        "literals in conditional regions.",
    )


class _Scan:
    """State of one process() call."""

    def __init__(self, scanner, source, logical_path, desired_state):
        self.scanner = scanner
        self.source = source
        self.logical_path = logical_path
        self.desired_state = desired_state

        self.plume = SuffixMatchBuffer()
        self.output = MutableOutputBuffer()
        self.state = ScanState.NEUTRAL
        self.substate = SubState.CODE
        self.depth = 0
        self.escaped = False
        # Tokens may only be matched from this plume index on, so the tail of
        # one token is never reused as the head of the next ("/*/" or "*//").
        self.floor = 0
        self.region_start = 0
        # Last significant code character and identifier, for regex detection
        self.last_code_char = OPEN_BRACE
        self.word = ""
        self.in_word = False
        self.in_class = False
        self.regex_length = 0

    def _matches(self, literal):
        return (
            len(self.plume) - len(literal) >= self.floor
            and self.plume.ends_with(literal)
        )

    def _set_substate(self, substate):
        self.substate = substate
        self.escaped = False
        self.in_class = False
        self.regex_length = 0
        self.floor = len(self.plume)

    def _expects_operand(self):
        if self.last_code_char in REGEX_PRECEDERS:
            return True
        return _is_identifier_char(self.last_code_char) and self.word in REGEX_KEYWORDS

    def _note_code_char(self, char):
        if char.isspace():
            self.in_word = False
            return
        if _is_identifier_char(char):
            self.word = self.word + char if self.in_word else char
            self.in_word = True
        else:
            self.in_word = False
        self.last_code_char = char

    def _close_literal(self, char):
        # A closed literal is an operand, so a following "/" is division
        self._set_substate(SubState.CODE)
        self.last_code_char = char
        self.in_word = False

    def run(self):
        for index, char in enumerate(self.source):
            self.plume.push(char)
            self.output.push(char)

            if self.state is ScanState.NEUTRAL:
                self._check_prologues(index)
                continue

            if self._advance_region(char):
                self._leave_region()
                continue

            if self.state is not self.desired_state:
                self.output.shrink(1)

        if self.state is not ScanState.NEUTRAL:
            raise UnterminatedRegionError(
                self.logical_path,
                line_number_at(self.source, self.region_start),
                self.state,
            )
        return self.output.build_string()

    def _check_prologues(self, index):
        for state, prologue in (
            (ScanState.IN_CLIENT_BLOCK, self.scanner.client_prologue),
            (ScanState.IN_SERVER_BLOCK, self.scanner.server_prologue),
        ):
            if self._matches(prologue):
                self.state = state
                self.depth = 1
                self.region_start = index + 1 - len(prologue)
                self._set_substate(SubState.CODE)
                self.last_code_char = OPEN_BRACE
                self.in_word = False
                self.output.shrink(len(prologue))
                if self.scanner.verbose >= 6:
                    line = line_number_at(self.source, self.region_start)
                    print(f"{self.logical_path}:{line}: entering {state.value}")
                return

    def _advance_region(self, char):
        """Track comments, literals and braces.  True when the region just closed."""
        substate = self.substate

        if substate is SubState.LINE_COMMENT:
            if self.plume.ends_with_any(LINE_TERMINATORS):
                self._set_substate(SubState.CODE)
        elif substate is SubState.BLOCK_COMMENT:
            if self._matches(BLOCK_COMMENT_CLOSE):
                self._set_substate(SubState.CODE)
        elif substate in _CLOSING_QUOTES:
            self._advance_string(char)
        elif substate is SubState.REGEX:
            self._advance_regex(char)
        elif self._matches(LINE_COMMENT_OPEN):
            self._set_substate(SubState.LINE_COMMENT)
        elif self._matches(BLOCK_COMMENT_OPEN):
            self._set_substate(SubState.BLOCK_COMMENT)
        elif self.scanner.string_aware and char == REGEX_DELIMITER and self._expects_operand():
            self._set_substate(SubState.REGEX)
        elif self.scanner.string_aware and char in _QUOTE_SUBSTATES:
            self._set_substate(_QUOTE_SUBSTATES[char])
        else:
            self._note_code_char(char)
            if self._matches(OPEN_BRACE):
                self.depth += 1
            elif self._matches(CLOSE_BRACE):
                self.depth -= 1
                return self.depth <= 0
        return False

    def _advance_string(self, char):
        if self.escaped:
            self.escaped = False
        elif char == ESCAPE:
            self.escaped = True
        elif char == _CLOSING_QUOTES[self.substate]:
            self._close_literal(char)
        elif char in LINE_TERMINATORS and self.substate is not SubState.TEMPLATE_LITERAL:
            # Plain string literals cannot span lines; resynchronise
            self._set_substate(SubState.CODE)

    def _advance_regex(self, char):
        if self.regex_length == 0 and char == REGEX_DELIMITER:
            # "//" where an operand was expected
            self._set_substate(SubState.LINE_COMMENT)
            return
        if self.regex_length == 0 and char == BLOCK_COMMENT_OPEN[-1]:
            self._set_substate(SubState.BLOCK_COMMENT)
            return
        self.regex_length += 1

        if self.escaped:
            self.escaped = False
        elif char == ESCAPE:
            self.escaped = True
        elif char == CHARACTER_CLASS_OPEN:
            self.in_class = True
        elif char == CHARACTER_CLASS_CLOSE:
            self.in_class = False
        elif char == REGEX_DELIMITER and not self.in_class:
            self._close_literal(char)
        elif char in LINE_TERMINATORS:
            # Regex literals cannot span lines either
            self._set_substate(SubState.CODE)

    def _leave_region(self):
        self.output.shrink(len(CLOSE_BRACE))
        if self.scanner.verbose >= 6:
            print(f"{self.logical_path}: leaving {self.state.value}")
        self.state = ScanState.NEUTRAL
        self.depth = 0
        self._set_substate(SubState.CODE)


class LexicalElisionScanner:
    """Prune a source text down to what one architecture should compile.

    The scanner is configuration only; every call to process() starts from a
    fresh state, so one instance can serve any number of files and
    architectures.
    """

    def __init__(
        self,
        client_prologue: str = DEFAULT_CLIENT_PROLOGUE,
        server_prologue: str = DEFAULT_SERVER_PROLOGUE,
        server_arch: str = DEFAULT_SERVER_ARCH,
        bypass_roots: Tuple[str, ...] = DEFAULT_BYPASS_ROOTS,
        string_aware: bool = True,
        verbose: int = 0,
    ):
        if not client_prologue or not server_prologue:
            raise ValueError("Conditional region prologues must not be empty")
        if client_prologue == server_prologue:
            raise ValueError(f"Client and server prologues are both '{client_prologue}'")
        self.client_prologue = client_prologue
        self.server_prologue = server_prologue
        self.server_arch = server_arch
        self.bypass_roots = tuple(bypass_roots)
        self.string_aware = string_aware
        self.verbose = verbose

    @classmethod
    def from_args(cls, args):
        return cls(**archsplit.utils.extractinitargs(args, cls))

    def is_bypassed(self, logical_path: str) -> bool:
        """Files under a client/ or server/ root are already architecture specific."""
        first_segment = logical_path.replace(os.sep, "/").split("/")[0]
        return first_segment in self.bypass_roots

    def desired_state(self, architecture: str) -> ScanState:
        """Server regions are kept for server_arch exactly, client regions for any other id."""
        if is_server_class(architecture, self.server_arch):
            return ScanState.IN_SERVER_BLOCK
        return ScanState.IN_CLIENT_BLOCK

    def process(self, source: str, logical_path: str, architecture: str) -> str:
        """Return source with the regions not meant for architecture removed.

        Raises UnterminatedRegionError if the input ends inside a region.
        """
        if self.is_bypassed(logical_path):
            if self.verbose >= 5:
                print(f"{logical_path}: placed under an architecture root, not scanned")
            return source

        if not contains_any_sz(source, (self.client_prologue, self.server_prologue)):
            return source

        desired = self.desired_state(architecture)
        if self.verbose >= 4:
            print(f"Pruning {logical_path} for {architecture} (keeping {desired.value})")
        return _Scan(self, source, logical_path, desired).run()
