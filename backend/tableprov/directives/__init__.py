from __future__ import annotations
# Re-export the directive toolkit
from .scanner import DEFAULT_DELIMITER, NormalizedDirective, Scanner, tokenize, split_name
from .options import OptionValue, absent_marker, extract_option, fill_default, option_keys, parse_clause

__all__ = [
    "DEFAULT_DELIMITER",
    "NormalizedDirective",
    "Scanner",
    "tokenize",
    "split_name",
    "OptionValue",
    "absent_marker",
    "extract_option",
    "fill_default",
    "option_keys",
    "parse_clause",
]
