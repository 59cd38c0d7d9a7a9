"""
Tests for option extraction and default filling.
"""

import pytest

from tableprov.common.config_models import AppendMode
from tableprov.common.errors import DirectiveParseError
from tableprov.directives import options as options_mod
from tableprov.directives.options import (
    OptionValue,
    absent_marker,
    extract_option,
    fill_default,
    option_keys,
    parse_clause,
)
from tableprov.directives.scanner import tokenize


class TestExtractOption:
    """Test per-table option values."""

    def test_list_scalar_and_absent(self):
        d = tokenize("t1 t2(opt=(a b c)) t3(opt=x)")
        values = extract_option(d, "opt")
        assert values[0] is None
        assert values[1].as_list() == ["a", "b", "c"]
        assert values[1].is_list
        assert values[2] == OptionValue.of("x")

    def test_absent_is_never_empty_string(self):
        values = extract_option(tokenize("t(other=1)"), "opt")
        assert values == [None]

    def test_key_is_case_insensitive(self):
        values = extract_option(tokenize("t(PARTITION=(Region))"), "partition")
        assert values[0].as_list() == ["Region"]

    def test_key_prefix_does_not_match(self):
        d = tokenize("t(orderby=(x)) u(xorder=1 order=2)")
        values = extract_option(d, "order")
        assert values[0] is None
        assert values[1].scalar == "2"

    def test_first_occurrence_wins(self):
        assert extract_option(tokenize("t(a=1 a=2)"), "a")[0].scalar == "1"

    def test_empty_list_is_present(self):
        value = extract_option(tokenize("t(p=())"), "p")[0]
        assert value is not None
        assert value.is_list
        assert value.as_list() == []

    def test_comma_separated_list(self):
        value = extract_option(tokenize("t(p=(a,b , c))"), "p")[0]
        assert value.as_list() == ["a", "b", "c"]

    def test_results_align_with_tables(self):
        d = tokenize("a(k=1) b c(k=3)")
        assert [str(v) if v else None for v in extract_option(d, "k")] == ["1", None, "3"]

    def test_absent_marker_display(self):
        assert absent_marker("partition") == "_NOPARTITION_"

    def test_option_keys(self):
        assert option_keys("t(Promote=yes partition=(a))") == ["promote", "partition"]
        assert option_keys("t") == []


class TestParseClause:
    """Test malformed clauses."""

    @pytest.mark.parametrize(
        "clause",
        ["(a=)", "(a)", "(a=(b=c))", "(a=((b)))", "(a=1", "a=1)", "(=1)", "(a=1)x"],
    )
    def test_malformed_clause_raises(self, clause):
        with pytest.raises(DirectiveParseError):
            parse_clause(clause)

    def test_pairs_in_order(self):
        pairs = parse_clause("(b=2 a=(x y))")
        assert pairs == [("b", OptionValue.of("2")), ("a", OptionValue.of_list(["x", "y"]))]

    def test_scan_bound_fails_fast(self, monkeypatch):
        monkeypatch.setattr(options_mod, "_scan_budget", lambda clause: 2)
        with pytest.raises(DirectiveParseError, match="did not terminate"):
            parse_clause("(promote=yes)")


class TestFillDefault:
    """Test default filling."""

    def test_fills_missing_and_keeps_explicit(self):
        d = tokenize("t1 t2(partition=(r)) t3(promote=no)")
        filled = fill_default(d, "promote", True)
        assert filled.parts == (
            "t1(promote=yes)",
            "t2(partition=(r) promote=yes)",
            "t3(promote=no)",
        )

    def test_idempotent(self):
        d = tokenize("t1 t2(partition=(r)) t3(PROMOTE=no) t4()")
        once = fill_default(d, "promote", False)
        assert fill_default(once, "promote", False) == once

    def test_empty_clause_is_replaced(self):
        assert fill_default(tokenize("t()"), "promote", True).parts == ("t(promote=yes)",)

    def test_enum_and_list_defaults(self):
        d = tokenize("t")
        assert fill_default(d, "append", AppendMode.FORCE).parts == ("t(append=force)",)
        assert fill_default(d, "orderby", ["a", "b"]).parts == ("t(orderby=(a b))",)

    def test_filled_value_is_extracted(self):
        filled = fill_default(tokenize("t1 t2(append=normal)"), "append", AppendMode.NONE)
        assert [v.scalar for v in extract_option(filled, "append")] == ["none", "normal"]

    @pytest.mark.parametrize("default", ["a b", "a|b", ""])
    def test_unwritable_default_raises(self, default):
        with pytest.raises(DirectiveParseError):
            fill_default(tokenize("t"), "k", default)

    def test_keeps_delimiter(self):
        d = tokenize("a b", delimiter=";")
        assert fill_default(d, "k", "v").text == "a(k=v);b(k=v)"
