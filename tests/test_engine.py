"""Tests for dqgrammar.engine module."""

from datetime import UTC, date, datetime

import polars as pl
import pytest

from dqgrammar.compiler import NOW_COLUMN, compile_rules
from dqgrammar.engine import EvaluationEngine, to_frame
from dqgrammar.exceptions import CheckEvaluationError


def evaluate(rule_text, data, now=None):
    ruleset = compile_rules(rule_text)
    return EvaluationEngine().evaluate(data, ruleset, now=now)


def column(frame, name):
    return frame.get_column(name).to_list()


class TestEvaluate:
    """Tests for evaluating predicates."""

    def test_person_checks(self, person_frame, person_ruleset, fixed_now):
        """Test each predicate produces its own boolean column."""
        result = EvaluationEngine().evaluate(person_frame, person_ruleset, now=fixed_now)
        assert column(result, "dqw_Name_human_name") == [True, False, False]
        assert column(result, "dqs_Name_not_whitespace") == [True, False, True]
        assert column(result, "dqs_BirthDate_lt_now") == [True, True, False]

    def test_input_columns_preserved(self, person_frame, person_ruleset, fixed_now):
        """Test the input columns are kept unchanged and now is not leaked."""
        result = EvaluationEngine().evaluate(person_frame, person_ruleset, now=fixed_now)
        assert result.columns[:2] == ["Name", "BirthDate"]
        assert result.select("Name", "BirthDate").equals(person_frame)
        assert NOW_COLUMN not in result.columns
        assert result.height == person_frame.height

    def test_results_are_non_null_booleans(self, sample_frame, fixed_now):
        """Test null sources never produce null check results."""
        result = evaluate(
            "T\n  Age must be > 18\n  Name must be human_name\n  Status must be in ('active')",
            sample_frame,
            now=fixed_now,
        )
        for name in ("dqs_Age_gt_18", "dqs_Name_human_name", "dqs_Status_in_set"):
            assert result.schema[name] == pl.Boolean
            assert result.get_column(name).null_count() == 0

    def test_default_now(self):
        """Test now defaults to the current time."""
        data = {"BirthDate": [date(1990, 1, 1), date(2999, 1, 1)]}
        result = evaluate("T\n  BirthDate should be less than now", data)
        assert column(result, "dqw_BirthDate_lt_now") == [True, False]

    def test_aware_now_converted_to_utc(self):
        """Test an aware now is compared as naive UTC."""
        data = {"At": [datetime(2024, 1, 1, 11, 0), datetime(2024, 1, 1, 13, 0)]}
        now = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        result = evaluate("T\n  At must be less than now", data, now=now)
        assert column(result, "dqs_At_lt_now") == [True, False]

    def test_greater_than_now(self, fixed_now):
        """Test other comparisons against now."""
        data = {"Expiry": [date(2030, 1, 1), date(2020, 1, 1)]}
        result = evaluate("T\n  Expiry must be greater than now", data, now=fixed_now)
        assert column(result, "dqs_Expiry_gt_now") == [True, False]

    def test_membership_and_range(self):
        """Test set and range checks."""
        data = {"Status": ["active", "gone", None], "Age": [5, 200, None]}
        result = evaluate(
            "T\n  Status must be in ('active', 'pending')\n  Age must be between 0 and 120",
            data,
        )
        assert column(result, "dqs_Status_in_set") == [True, False, False]
        assert column(result, "dqs_Age_between_0_120") == [True, False, False]

    def test_mixed_numeric_set(self):
        """Test a set mixing integers and floats on integer and float columns."""
        result = evaluate("T\n  Age must be in (1, 2.5)", {"Age": [1, 2, None]})
        assert column(result, "dqs_Age_in_set") == [True, False, False]
        result = evaluate("T\n  Score must be in (1, 2.5)", {"Score": [2.5, 1.0, 3.0]})
        assert column(result, "dqs_Score_in_set") == [True, True, False]

    def test_range_inclusive(self):
        """Test range bounds are inclusive."""
        result = evaluate("T\n  Age must be between 0 and 10", {"Age": [-1, 0, 10, 11]})
        assert column(result, "dqs_Age_between_0_10") == [False, True, True, False]

    def test_literal_comparisons(self):
        """Test numeric and string comparisons against literals."""
        data = {"Age": [10, 20], "Code": ["a", "b"]}
        result = evaluate("T\n  Age must be >= 20\n  Code must be != 'a'", data)
        assert column(result, "dqs_Age_ge_20") == [False, True]
        assert column(result, "dqs_Code_ne_a") == [False, True]

    def test_sibling_comparison(self):
        """Test comparing two columns of one row."""
        data = {"Start": [1, 5, None], "End": [2, 3, 4]}
        result = evaluate("T\n  Start must be less than End", data)
        assert column(result, "dqs_Start_lt_End") == [True, False, False]

    def test_iso_date_literal_on_date_column(self):
        """Test a date column against an ISO date string."""
        data = pl.DataFrame({"BirthDate": [date(1850, 1, 1), date(1990, 5, 1), None]})
        result = evaluate(
            "T\n  BirthDate must be greater than '1900-01-01'\n"
            "  BirthDate should not be greater than '1900-01-01'",
            data,
        )
        assert column(result, "dqs_BirthDate_gt_1900_01_01") == [False, True, False]
        assert column(result, "dqw_BirthDate_not_gt_1900_01_01") == [True, False, True]

    def test_iso_range_on_datetime_column(self):
        """Test a datetime column against an inclusive ISO date range."""
        data = {"Seen": [datetime(2023, 12, 31, 23), datetime(2024, 6, 1), datetime(2024, 12, 31)]}
        result = evaluate("T\n  Seen must be between '2024-01-01' and '2024-12-31'", data)
        assert column(result, "dqs_Seen_between_2024_01_01_2024_12_31") == [False, True, True]

    def test_iso_literal_on_string_column(self):
        """Test string columns still compare ISO literals as text."""
        result = evaluate("T\n  D must be > '1900-01-01'", {"D": ["1899-12-31", "1950-01-01"]})
        assert column(result, "dqs_D_gt_1900_01_01") == [False, True]

    def test_pattern(self):
        """Test regular expression checks search anywhere unless anchored."""
        data = {"Code": ["ABC1", "abc1", "xABC1"]}
        result = evaluate("T\n  Code must match '^[A-Z]{3}\\d$'\n  Code should match 'ABC'", data)
        assert column(result, "dqs_Code_pattern") == [True, False, False]
        assert column(result, "dqw_Code_pattern") == [True, False, True]

    def test_whitespace(self):
        """Test any whitespace character counts."""
        data = {"Name": ["John", "Anne Marie", "Tab\there", ""]}
        result = evaluate("T\n  Name should have whitespace", data)
        assert column(result, "dqw_Name_whitespace") == [False, True, True, False]

    def test_human_name(self):
        """Test the human name pattern."""
        data = {"Name": ["John", "Mary-Jane", "O'Brien", "Anne Marie", "Gle9 X", "R2D2", None]}
        result = evaluate("T\n  Name should be human_name", data)
        assert column(result, "dqw_Name_human_name") == [True, True, True, True, False, False, False]

    def test_null_check(self):
        """Test null and not-null checks."""
        data = {"Email": ["a@b.c", None]}
        result = evaluate("T\n  Email must be null\n  Email should not be null", data)
        assert column(result, "dqs_Email_null") == [False, True]
        assert column(result, "dqw_Email_not_null") == [True, False]


class TestDateValidity:
    """Tests for date validity checks."""

    def test_default_format(self):
        """Test strings are parsed with the configured default format."""
        data = {"Signup": ["2021-02-28", "2021-02-30", "28/02/2021", None]}
        result = evaluate("T\n  Signup must be a valid date", data)
        assert column(result, "dqs_Signup_valid_date") == [True, False, False, False]

    def test_declared_format(self):
        """Test a format declared on the rule."""
        data = {"Signup": ["28/02/2021", "2021-02-28"]}
        result = evaluate('T\n  Signup must be a valid date with format "%d/%m/%Y"', data)
        assert column(result, "dqs_Signup_valid_date") == [True, False]

    def test_temporal_column(self):
        """Test an already temporal column is valid when not null."""
        data = pl.DataFrame({"Seen": [date(2021, 1, 1), None]})
        result = evaluate("T\n  Seen must be a valid date", data)
        assert column(result, "dqs_Seen_valid_date") == [True, False]

    def test_negated_temporal_column(self):
        """Test negation also applies to the temporal form."""
        data = pl.DataFrame({"Seen": [date(2021, 1, 1), None]})
        result = evaluate("T\n  Seen must not be a valid date", data)
        assert column(result, "dqs_Seen_not_valid_date") == [False, True]

    def test_numeric_column_rejected(self):
        """Test a date validity check on a numeric column."""
        with pytest.raises(CheckEvaluationError) as exc_info:
            evaluate("T\n  Age must be a valid date", {"Age": [1, 2]})
        assert exc_info.value.column == "Age"
        assert exc_info.value.rule_name == "dqs_Age_valid_date"


class TestNegation:
    """Tests for ``not`` being the exact negation of the plain rule."""

    PAIRS = [
        ("Name must be human_name", "Name must not be human_name"),
        ("Name must have whitespace", "Name must not have whitespace"),
        ("Name must be null", "Name must not be null"),
        ("Name must match '^J'", "Name must not match '^J'"),
        ("Age must be between 0 and 100", "Age must not be between 0 and 100"),
        ("Age must be greater than Score", "Age must not be greater than Score"),
        ("Status must be in ('active', 'pending')", "Status must not be in ('active', 'pending')"),
        ("SignupDate must be a valid date", "SignupDate must not be a valid date"),
        ("LastSeen must be less than now", "LastSeen must not be less than now"),
    ]

    @pytest.mark.parametrize(("plain", "negated"), PAIRS)
    def test_negation_every_row(self, sample_frame, fixed_now, plain, negated):
        """Test the negated column is the inverse of the plain column on every row."""
        ruleset = compile_rules(f"T\n  {plain}\n  {negated}")
        plain_name, negated_name = list(ruleset)
        result = EvaluationEngine().evaluate(sample_frame, ruleset, now=fixed_now)
        assert (result.get_column(plain_name) != result.get_column(negated_name)).all()


class TestSchemaChecks:
    """Tests for column presence and type checks."""

    def test_missing_column(self, person_ruleset):
        """Test a rule on an absent column."""
        with pytest.raises(CheckEvaluationError, match="missing column 'BirthDate'") as exc_info:
            EvaluationEngine().evaluate({"Name": ["John"]}, person_ruleset)
        assert exc_info.value.actual == "missing column"

    def test_text_check_on_numeric_column(self):
        """Test a text check on an integer column."""
        with pytest.raises(CheckEvaluationError) as exc_info:
            evaluate("T\n  Age must be human_name", {"Age": [1]})
        error = exc_info.value
        assert error.rule_name == "dqs_Age_human_name"
        assert error.column == "Age"
        assert error.actual == "Int64"
        assert error.expected == "a string column"

    def test_now_comparison_on_string_column(self):
        """Test a now comparison needs a temporal column."""
        with pytest.raises(CheckEvaluationError, match="date or datetime"):
            evaluate("T\n  BirthDate must be less than now", {"BirthDate": ["1990-01-01"]})

    def test_string_literal_on_numeric_column(self):
        """Test the literal type must match the column family."""
        with pytest.raises(CheckEvaluationError):
            evaluate("T\n  Age must be in ('a', 'b')", {"Age": [1]})

    def test_sibling_family_mismatch(self):
        """Test comparing a text column with a numeric column."""
        with pytest.raises(CheckEvaluationError, match="compares"):
            evaluate("T\n  Name must be equal to Age", {"Name": ["a"], "Age": [1]})

    def test_sibling_numeric_widths_compatible(self):
        """Test integer and float siblings share the numeric family."""
        data = pl.DataFrame({"A": [1, 3], "B": [2.5, 2.5]})
        result = evaluate("T\n  A must be less than B", data)
        assert column(result, "dqs_A_lt_B") == [True, False]

    def test_now_column_collision(self, fixed_now):
        """Test input already holding the internal now column."""
        data = {"BirthDate": [date(1990, 1, 1)], NOW_COLUMN: [1]}
        with pytest.raises(CheckEvaluationError):
            evaluate("T\n  BirthDate must be less than now", data, now=fixed_now)

    def test_checked_before_evaluation(self, log_capture):
        """Test schema errors are raised before any evaluation is logged."""
        with pytest.raises(CheckEvaluationError):
            evaluate("T\n  Age must be human_name", {"Age": [1]})
        assert "Evaluated checks" not in log_capture.messages()


class TestNullTypedColumns:
    """Tests for columns polars types as Null because every value is missing."""

    def test_all_null_rows_are_graded(self):
        """Test all-null columns fail plain checks instead of raising."""
        rows = [{"Name": None, "Age": None}, {"Name": None, "Age": None}]
        result = evaluate(
            "T\n  Name must be human_name\n  Name must not have whitespace\n"
            "  Age must be > 18\n  Name should be null\n  Age should not be null",
            rows,
        )
        assert result.schema["Name"] == pl.Null
        assert column(result, "dqs_Name_human_name") == [False, False]
        assert column(result, "dqs_Name_not_whitespace") == [True, True]
        assert column(result, "dqs_Age_gt_18") == [False, False]
        assert column(result, "dqw_Name_null") == [True, True]
        assert column(result, "dqw_Age_not_null") == [False, False]

    def test_null_sibling_column(self):
        """Test a comparison against an all-null sibling fails."""
        data = pl.DataFrame({"Start": [1, 2], "End": [None, None]})
        result = evaluate("T\n  Start must be less than End", data)
        assert column(result, "dqs_Start_lt_End") == [False, False]

    def test_date_and_now_checks(self, fixed_now):
        """Test temporal checks on an all-null column."""
        result = evaluate(
            "T\n  D must be a valid date\n  D must be less than now",
            {"D": [None]},
            now=fixed_now,
        )
        assert column(result, "dqs_D_valid_date") == [False]
        assert column(result, "dqs_D_lt_now") == [False]


class TestInputs:
    """Tests for supported input types."""

    def test_lazy_in_lazy_out(self, person_frame, person_ruleset, fixed_now):
        """Test a LazyFrame input stays lazy and matches eager evaluation."""
        engine = EvaluationEngine()
        lazy = engine.evaluate(person_frame.lazy(), person_ruleset, now=fixed_now)
        assert isinstance(lazy, pl.LazyFrame)
        eager = engine.evaluate(person_frame, person_ruleset, now=fixed_now)
        assert lazy.collect().equals(eager)

    def test_row_mappings(self, fixed_now):
        """Test a sequence of row dictionaries."""
        rows = [{"Name": "John"}, {"Name": "Gle9 X"}]
        result = evaluate("Person\n  Name should be human_name", rows, now=fixed_now)
        assert isinstance(result, pl.DataFrame)
        assert column(result, "dqw_Name_human_name") == [True, False]

    def test_empty_row_list(self):
        """Test no rows gives an empty result rather than a schema error."""
        result = evaluate("Person\n  Name should be human_name", [])
        assert result.height == 0
        assert result.columns == ["Name", "dqw_Name_human_name"]

    def test_to_frame_passthrough(self, person_frame):
        """Test polars frames are returned unchanged."""
        assert to_frame(person_frame) is person_frame

    def test_to_frame_mapping(self):
        """Test a column mapping."""
        frame = to_frame({"A": [1, 2]})
        assert frame.columns == ["A"]
        assert frame.height == 2

    def test_unsupported_input(self, person_ruleset):
        """Test an unsupported input type."""
        with pytest.raises(CheckEvaluationError, match="Unsupported data type"):
            EvaluationEngine().evaluate(42, person_ruleset)


class TestIdempotence:
    """Tests for repeatable evaluation."""

    def test_same_now_bit_identical(self, sample_frame, fixed_now):
        """Test two runs with the same now produce identical frames."""
        ruleset = compile_rules(
            "T\n  Name should be human_name\n  LastSeen must be less than now\n"
            "  SignupDate must be a valid date\n  Age must be between 0 and 100"
        )
        engine = EvaluationEngine()
        first = engine.evaluate(sample_frame, ruleset, now=fixed_now)
        second = engine.evaluate(sample_frame, ruleset, now=fixed_now)
        assert first.equals(second)
