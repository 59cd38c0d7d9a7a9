"""
Option extraction and default filling over tokenized directives

Both operate on a NormalizedDirective and preserve table order, so the
i-th result always belongs to the i-th table directive.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple

from tableprov.common.errors import DirectiveParseError
from tableprov.directives.scanner import NormalizedDirective, Scanner, is_identifier_char, split_name

__all__ = [
    "OptionValue",
    "absent_marker",
    "parse_clause",
    "option_keys",
    "extract_option",
    "fill_default",
]

_LIST_SPLIT = re.compile(r"[\s,]+")
_VALUE_END = (" ", ")", "")


@dataclass(frozen=True)
class OptionValue:
    """A scalar option value or a parenthesized list of scalars."""
    scalar: Optional[str] = None
    items: Optional[Tuple[str, ...]] = None

    @classmethod
    def of(cls, value: str) -> "OptionValue":
        return cls(scalar=value)

    @classmethod
    def of_list(cls, items) -> "OptionValue":
        return cls(items=tuple(items))

    @property
    def is_list(self) -> bool:
        return self.items is not None

    def as_list(self) -> List[str]:
        if self.items is not None:
            return list(self.items)
        return [self.scalar] if self.scalar else []

    def __str__(self) -> str:
        if self.items is not None:
            return "(" + " ".join(self.items) + ")"
        return self.scalar or ""


def absent_marker(key: str) -> str:
    """Display form for a missing option, e.g. _NOPARTITION_."""
    return f"_NO{key.upper()}_"


def _scan_budget(clause: str) -> int:
    return 4 * len(clause) + 64


def parse_clause(clause: str) -> List[Tuple[str, OptionValue]]:
    """
    Parse an options clause '(k=v k2=(a b))' into ordered (key, value) pairs.

    Raises:
        DirectiveParseError: malformed clause, or the scan exceeded its step bound
    """
    budget = _scan_budget(clause)
    steps = 0

    def tick() -> None:
        nonlocal steps
        steps += 1
        if steps > budget:
            raise DirectiveParseError(
                f"internal error: option scan did not terminate for {clause!r}", scanner.position
            )

    scanner = Scanner(clause)
    if scanner.peek() != "(":
        raise DirectiveParseError(f"options clause must start with '(': {clause!r}", 0)
    scanner.advance()

    pairs: List[Tuple[str, OptionValue]] = []
    while True:
        tick()
        if scanner.at_end():
            raise DirectiveParseError(f"unterminated options clause {clause!r}", scanner.position)
        ch = scanner.peek()
        if ch == ")":
            scanner.advance()
            break
        if ch == " ":
            scanner.advance()
            continue

        start = scanner.position
        key_chars = []
        while is_identifier_char(scanner.peek()):
            tick()
            key_chars.append(scanner.advance())
        key = "".join(key_chars)
        if not key or scanner.peek() != "=":
            raise DirectiveParseError(f"expected key=value in options clause {clause!r}", start)
        scanner.advance()
        pairs.append((key, _read_value(scanner, tick, key, clause)))

    if not scanner.at_end():
        raise DirectiveParseError(f"unexpected text after options clause {clause!r}", scanner.position)
    return pairs


def _read_value(scanner: Scanner, tick, key: str, clause: str) -> OptionValue:
    start = scanner.position
    if scanner.peek() == "(":
        outer = scanner.depth()
        scanner.advance()
        chars = []
        while scanner.depth() > outer:
            tick()
            if scanner.at_end():
                raise DirectiveParseError(f"unterminated list value for {key!r} in {clause!r}", start)
            ch = scanner.advance()
            if scanner.depth() > outer:
                chars.append(ch)
        inner = "".join(chars)
        if "(" in inner or "=" in inner:
            raise DirectiveParseError(f"nested lists are not allowed in value of {key!r}", start)
        return OptionValue.of_list(item for item in _LIST_SPLIT.split(inner) if item)

    chars = []
    while scanner.peek() not in _VALUE_END:
        tick()
        ch = scanner.peek()
        if ch in "(=":
            raise DirectiveParseError(f"unexpected {ch!r} in value of {key!r}", scanner.position)
        chars.append(scanner.advance())
    if not chars:
        raise DirectiveParseError(f"missing value for option {key!r}", start)
    return OptionValue.of("".join(chars))


def option_keys(part: str) -> List[str]:
    """Lowercased option keys present in one table directive."""
    _, clause = split_name(part)
    if clause is None:
        return []
    return [k.lower() for k, _ in parse_clause(clause)]


def extract_option(directive: NormalizedDirective, key: str) -> List[Optional[OptionValue]]:
    """
    Value of `key` for each table directive, in order; None where absent.

    Keys match case-insensitively on the whole `KEY=` token, so `order`
    never matches `orderby=`. The first occurrence wins.
    """
    wanted = key.lower()
    values: List[Optional[OptionValue]] = []
    for part in directive:
        _, clause = split_name(part)
        found: Optional[OptionValue] = None
        if clause is not None:
            for k, v in parse_clause(clause):
                if k.lower() == wanted:
                    found = v
                    break
        values.append(found)
    return values


def _render_default(value: Any) -> str:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (list, tuple)):
        return "(" + " ".join(str(v) for v in value) + ")"
    text = str(value)
    if not text or not all(is_identifier_char(ch) for ch in text):
        raise DirectiveParseError(f"default value {value!r} cannot be written into a directive")
    return text


def fill_default(directive: NormalizedDirective, key: str, default: Any) -> NormalizedDirective:
    """
    Give every table directive an explicit `key=...`.

    Tables without a clause get one, clauses lacking the key get it appended
    before the closing ')', and tables that already set the key are kept.
    """
    if not key or not all(is_identifier_char(ch) for ch in key):
        raise DirectiveParseError(f"invalid option key {key!r}")
    rendered = _render_default(default)
    if directive.delimiter in rendered:
        raise DirectiveParseError(f"default value {rendered!r} contains the delimiter")

    assignment = f"{key}={rendered}"
    parts = []
    for part in directive:
        name, clause = split_name(part)
        if clause is None or clause == "()":
            parts.append(f"{name}({assignment})")
        elif key.lower() in (k.lower() for k, _ in parse_clause(clause)):
            parts.append(part)
        else:
            parts.append(f"{name}{clause[:-1]} {assignment})")
    return NormalizedDirective(tuple(parts), directive.delimiter)
