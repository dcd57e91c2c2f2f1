"""Tests for dqgrammar.grammar.parser module."""

from pathlib import Path

import polars as pl
import pytest

from dqgrammar.base import Severity
from dqgrammar.exceptions import LexError, ParseError
from dqgrammar.grammar import (
    ColumnRef,
    Comparator,
    ComparisonCheck,
    DateValidityCheck,
    HumanNameCheck,
    Literal,
    MembershipCheck,
    NowRef,
    NullCheck,
    PastCheck,
    PatternCheck,
    RangeCheck,
    SourceLocation,
    WhitespaceCheck,
    parse,
    parse_file,
    parse_tokens,
    tokenize,
)
from dqgrammar.grammar.tokens import TokenKind


def check_of(rule_line: str):
    """Parse a single rule under a dummy table and return its check."""
    return parse(f"T\n  {rule_line}").rules[0].check


class TestParseTable:
    """Tests for the table-level structure."""

    def test_person_rules(self, person_rules):
        """Test the Person example parses into three rules."""
        table = parse(person_rules)
        assert table.name == "Person"
        assert len(table) == 3

        human, whitespace, birth = table.rules
        assert human.column == "Name"
        assert human.severity is Severity.SHOULD
        assert human.negated is False
        assert human.check == HumanNameCheck()

        assert whitespace.severity is Severity.MUST
        assert whitespace.negated is True
        assert whitespace.check == WhitespaceCheck()

        assert birth.column == "BirthDate"
        assert birth.check == PastCheck()

    def test_locations(self):
        """Test table and rule locations."""
        table = parse("Person\n  Name must be null")
        assert table.location == SourceLocation(1, 1)
        assert table.rules[0].location == SourceLocation(2, 3)

    def test_blank_lines_and_comments(self):
        """Test blank lines and comments between rules are ignored."""
        table = parse(
            "\n# people\nPerson\n\n  Name must be null  # required\n\n  Age should be > 0\n"
        )
        assert [r.column for r in table] == ["Name", "Age"]

    def test_keyword_as_column_name(self):
        """Test a column named like a keyword."""
        table = parse("Event\n  Date must be a valid date")
        assert table.rules[0].column == "Date"
        assert table.rules[0].check == DateValidityCheck()

    def test_severity_case_insensitive(self):
        """Test severity keywords in any case."""
        assert parse("T\n  A MUST be null").rules[0].severity is Severity.MUST
        assert parse("T\n  A Should be null").rules[0].severity is Severity.SHOULD

    def test_parse_tokens(self):
        """Test parsing an explicit token stream."""
        table = parse_tokens(tokenize("T\n  A must be null"))
        assert table.rules[0].check == NullCheck()

    def test_parse_tokens_without_eof(self):
        """Test a stream that stops early ends as if at EOF."""
        tokens = [t for t in tokenize("T\n  A must be null") if t.kind is not TokenKind.EOF]
        assert parse_tokens(tokens).rules[0].check == NullCheck()

    def test_parse_tokens_empty(self):
        """Test an empty token stream is a parse error."""
        with pytest.raises(ParseError) as exc_info:
            parse_tokens([])
        assert exc_info.value.details["found"] == "EOF"

    def test_parse_file(self, tmp_path: Path):
        """Test parsing a UTF-8 rule file."""
        rule_file = tmp_path / "person.dq"
        rule_file.write_text("Person\n  Name should be human_name\n", encoding="utf-8")
        table = parse_file(rule_file)
        assert table.name == "Person"
        assert table.rules[0].check == HumanNameCheck()


class TestParseChecks:
    """Tests for each check form."""

    def test_membership_parentheses(self):
        """Test a set literal in parentheses."""
        check = check_of('Status must be in ("active", "pending")')
        assert check == MembershipCheck(values=(Literal("active"), Literal("pending")))

    def test_membership_brackets(self):
        """Test a set literal in brackets."""
        check = check_of("Code must be in [1, 2, 3]")
        assert check == MembershipCheck(values=(Literal(1), Literal(2), Literal(3)))

    def test_range(self):
        """Test an inclusive range."""
        assert check_of("Age must be between 0 and 120") == RangeCheck(Literal(0), Literal(120))

    @pytest.mark.parametrize(
        ("phrase", "comparator"),
        [
            ("greater than 10", Comparator.GT),
            ("greater than or equal to 10", Comparator.GE),
            ("less than 10", Comparator.LT),
            ("less than or equal to 10", Comparator.LE),
            ("equal to 10", Comparator.EQ),
            ("> 10", Comparator.GT),
            (">= 10", Comparator.GE),
            ("< 10", Comparator.LT),
            ("<= 10", Comparator.LE),
            ("= 10", Comparator.EQ),
            ("== 10", Comparator.EQ),
            ("!= 10", Comparator.NE),
        ],
    )
    def test_comparators(self, phrase, comparator):
        """Test word and symbol comparators against a literal."""
        assert check_of(f"Age must be {phrase}") == ComparisonCheck(comparator, Literal(10))

    def test_compare_to_column(self):
        """Test a comparison against a sibling column."""
        check = check_of("Start must be less than End")
        assert check == ComparisonCheck(Comparator.LT, ColumnRef("End"))

    def test_less_than_now_is_past_check(self):
        """Test ``less than now`` and ``< now`` become a past check."""
        assert check_of("BirthDate must be less than now") == PastCheck()
        assert check_of("BirthDate must be < now") == PastCheck()

    def test_other_now_comparisons(self):
        """Test other comparators against now stay comparisons."""
        check = check_of("Expiry must be greater than now")
        assert check == ComparisonCheck(Comparator.GT, NowRef())

    def test_pattern(self):
        """Test a regular expression check."""
        assert check_of(r"Code must match '^[A-Z]{3}\d$'") == PatternCheck(r"^[A-Z]{3}\d$")

    def test_unicode_class_pattern(self):
        """Test Unicode property classes are accepted."""
        assert check_of(r"Name should match '^\p{L}+$'") == PatternCheck(r"^\p{L}+$")

    def test_null(self):
        """Test a negated null check."""
        rule = parse("T\n  Email must not be null").rules[0]
        assert rule.negated is True
        assert rule.check == NullCheck()

    def test_date_validity_forms(self):
        """Test date validity with and without article and format."""
        assert check_of("D must be a valid date") == DateValidityCheck()
        assert check_of("D must be valid date") == DateValidityCheck()
        assert check_of('D must be a valid date with format "%d/%m/%Y"') == DateValidityCheck("%d/%m/%Y")


class TestParseErrors:
    """Tests for grammar mismatches."""

    def test_missing_severity(self):
        """Test a rule without must/should raises ParseError at the bad token."""
        with pytest.raises(ParseError, match="Missing severity") as exc_info:
            parse("Person\n  Name be human_name")
        error = exc_info.value
        assert error.line == 2
        assert error.column_number == 8
        assert error.table == "Person"
        assert error.column == "Name"
        assert error.expected == ("'must'", "'should'")
        assert error.token.value == "be"

    def test_empty_definition(self):
        """Test empty input."""
        with pytest.raises(ParseError, match="Empty rule definition"):
            parse("\n  # nothing here\n")

    def test_table_without_rules(self):
        """Test a table needs at least one rule."""
        with pytest.raises(ParseError, match="has no column rules"):
            parse("Person\n")

    def test_table_name_alone_on_line(self):
        """Test extra words after the table name."""
        with pytest.raises(ParseError, match="single identifier"):
            parse("Person Name must be null")

    def test_trailing_input(self):
        """Test tokens after a complete rule."""
        with pytest.raises(ParseError, match="Unexpected input after rule"):
            parse("T\n  Name must be null please")

    def test_unknown_be_check(self):
        """Test an unknown word after ``be``."""
        with pytest.raises(ParseError, match="Invalid 'be' check"):
            parse("T\n  Name must be purple")

    def test_unknown_check(self):
        """Test an unknown check verb."""
        with pytest.raises(ParseError, match="Invalid check"):
            parse("T\n  Name must contain 'x'")

    def test_mixed_set(self):
        """Test set values of different types."""
        with pytest.raises(ParseError, match="Set values"):
            parse("T\n  Code must be in (1, 'a')")

    def test_unterminated_set(self):
        """Test a set without its closing bracket."""
        with pytest.raises(ParseError, match="Unterminated set"):
            parse("T\n  Code must be in (1, 2")

    def test_inverted_range(self):
        """Test a range whose lower bound exceeds the upper bound."""
        with pytest.raises(ParseError, match="exceeds upper bound"):
            parse("T\n  Age must be between 10 and 1")

    def test_mixed_range(self):
        """Test range bounds of different types."""
        with pytest.raises(ParseError, match="both be numbers"):
            parse("T\n  Age must be between 1 and 'z'")

    def test_invalid_regex(self):
        """Test an invalid pattern is rejected at parse time."""
        with pytest.raises(ParseError, match="Invalid regular expression") as exc_info:
            parse("T\n  Code must match '('")
        assert isinstance(exc_info.value.cause, pl.exceptions.PolarsError)

    def test_look_around_rejected(self):
        """Test look-around, which polars cannot evaluate, fails at parse time."""
        with pytest.raises(ParseError, match="Invalid regular expression") as exc_info:
            parse("T\n  Name must match '^(?=J)'")
        assert (exc_info.value.line, exc_info.value.column_number) == (2, 19)

    def test_incomplete_comparison(self):
        """Test ``greater`` without ``than``."""
        with pytest.raises(ParseError, match="Invalid comparison"):
            parse("T\n  Age must be greater 10")

    def test_lex_error_propagates(self):
        """Test lexer errors surface from parse unchanged."""
        with pytest.raises(LexError):
            parse("T\n  Age must be > 10 $")

    def test_position_in_message_details(self):
        """Test the error details name the offending rule."""
        with pytest.raises(ParseError) as exc_info:
            parse("Person\n  Name be human_name")
        assert exc_info.value.position == "Person.Name (line 2:8)"
        assert exc_info.value.details["found"] == "be"
