"""
Directive tokenizer

Turns free-form directive text such as

    orders  customers ( partition = (region, country)  orderby=(id) promote=yes )

into one self-contained substring per table, joined by a delimiter:

    orders|customers(partition=(region,country) orderby=(id) promote=yes)

Whitespace carries meaning only by position: between two tables it separates
directives, between two options inside a clause it separates options, and
around `=`, `(`, `)` and `,` it is noise. Commas themselves are kept
and later read as list separators.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Tuple

from tableprov.common.errors import DirectiveParseError

__all__ = [
    "DEFAULT_DELIMITER",
    "NormalizedDirective",
    "Scanner",
    "tokenize",
    "split_name",
    "is_identifier_char",
]

DEFAULT_DELIMITER = "|"

_PUNCTUATION = "=()"
_IDENTIFIER_EXTRA = "_.$*-'\""
_RESERVED = _PUNCTUATION + ","


def is_identifier_char(ch: str) -> bool:
    return bool(ch) and (ch.isalnum() or ch in _IDENTIFIER_EXTRA)


class Scanner:
    """
    Pull-based character scanner with parenthesis depth tracking.

    `advance()` is the only way to move forward; it keeps the open/close
    counters in step and rejects a `)` that has no matching `(`.
    """

    def __init__(self, text: str):
        self.text = text
        self.position = 0
        self._opened = 0
        self._closed = 0

    def at_end(self) -> bool:
        return self.position >= len(self.text)

    def peek(self, offset: int = 0) -> str:
        """Character at position+offset, or '' outside the text."""
        idx = self.position + offset
        if 0 <= idx < len(self.text):
            return self.text[idx]
        return ""

    def advance(self) -> str:
        ch = self.peek()
        if not ch:
            raise DirectiveParseError("unexpected end of directive", self.position)
        if ch == "(":
            self._opened += 1
        elif ch == ")":
            self._closed += 1
            if self._closed > self._opened:
                raise DirectiveParseError("unbalanced parentheses: ')' without matching '('", self.position)
        self.position += 1
        return ch

    def depth(self) -> int:
        return self._opened - self._closed

    def skip_whitespace(self) -> int:
        """Consume a whitespace run; returns its length."""
        start = self.position
        while self.peek() and self.peek().isspace():
            self.position += 1
        return self.position - start


class _Gap(Enum):
    DROP = "drop"
    SPACE = "space"
    DELIMIT = "delimit"


def _classify_gap(before: str, after: str, depth: int) -> _Gap:
    """Decide what one whitespace run between `before` and `after` means."""
    if not before or not after:
        return _Gap.DROP
    # A closed list value followed by the next option, or a closed
    # options clause followed by the next table.
    if before == ")" and after not in _RESERVED:
        return _Gap.SPACE if depth >= 1 else _Gap.DELIMIT
    if before in _PUNCTUATION or after in _PUNCTUATION:
        return _Gap.DROP
    if before == "," or after == ",":
        return _Gap.DROP
    if is_identifier_char(before) and is_identifier_char(after):
        return _Gap.SPACE if depth >= 1 else _Gap.DELIMIT
    return _Gap.SPACE


@dataclass(frozen=True)
class NormalizedDirective:
    """Tokenized directive: one balanced substring per table."""
    parts: Tuple[str, ...]
    delimiter: str = DEFAULT_DELIMITER

    @property
    def text(self) -> str:
        return self.delimiter.join(self.parts)

    @classmethod
    def split(cls, text: str, delimiter: str = DEFAULT_DELIMITER) -> "NormalizedDirective":
        """Rebuild from a previously joined `text`."""
        return cls(tuple(text.split(delimiter)) if text else (), delimiter)

    def __len__(self) -> int:
        return len(self.parts)

    def __iter__(self) -> Iterator[str]:
        return iter(self.parts)

    def __getitem__(self, index: int) -> str:
        return self.parts[index]

    def __str__(self) -> str:
        return self.text


def _check_delimiter(delimiter: str, text: str) -> None:
    if not delimiter:
        raise DirectiveParseError("delimiter must not be empty")
    if any(ch.isspace() or ch in _RESERVED for ch in delimiter):
        raise DirectiveParseError(f"delimiter {delimiter!r} collides with directive syntax")
    if delimiter in text:
        raise DirectiveParseError(f"delimiter {delimiter!r} occurs in the directive text", text.index(delimiter))


def tokenize(text: Optional[str], delimiter: str = DEFAULT_DELIMITER) -> NormalizedDirective:
    """
    Normalize directive text into one substring per table.

    Raises:
        DirectiveParseError: unbalanced parentheses or an unusable delimiter
    """
    text = text or ""
    _check_delimiter(delimiter, text)

    scanner = Scanner(text)
    parts = []
    current = []
    before = ""

    while not scanner.at_end():
        ch = scanner.peek()
        if ch.isspace():
            scanner.skip_whitespace()
            gap = _classify_gap(before, scanner.peek(), scanner.depth())
            if gap is _Gap.DELIMIT:
                parts.append("".join(current))
                current = []
            elif gap is _Gap.SPACE:
                current.append(" ")
            continue
        current.append(scanner.advance())
        before = ch

    if scanner.depth() != 0:
        raise DirectiveParseError(
            f"unbalanced parentheses: {scanner.depth()} '(' left open", len(text)
        )
    if current:
        parts.append("".join(current))
    return NormalizedDirective(tuple(parts), delimiter)


def split_name(part: str) -> Tuple[str, Optional[str]]:
    """
    Split one table directive into its name and options clause.

    'sales.orders(promote=yes)' -> ('sales.orders', '(promote=yes)')
    'orders' -> ('orders', None)
    """
    idx = part.find("(")
    if idx < 0:
        if ")" in part:
            raise DirectiveParseError(f"unbalanced parentheses in {part!r}", part.index(")"))
        return part, None

    scanner = Scanner(part)
    scanner.position = idx
    scanner.advance()
    while scanner.depth() > 0:
        if scanner.at_end():
            raise DirectiveParseError(f"unterminated options clause in {part!r}", len(part))
        scanner.advance()
    if not scanner.at_end():
        raise DirectiveParseError(
            f"unexpected text after options clause in {part!r}", scanner.position
        )
    return part[:idx], part[idx:]
