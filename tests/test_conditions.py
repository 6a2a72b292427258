"""Tests for threshold condition parsing and evaluation."""
import pytest

from device_warnings.core.exceptions import RuleConfigurationError, InvalidMeasurementError
from device_warnings.services.conditions import (
    Comparison,
    Compound,
    evaluate,
    parse_condition,
    threshold_of,
)


class TestSingleClause:
    @pytest.mark.parametrize("expression,value,expected", [
        ("> 25", 30, True),
        ("> 25", 25, False),
        (">= 25", 25, True),
        ("< 5.5", 5.4, True),
        ("<= 5.5", 5.6, False),
        ("== 0", 0, True),
        ("!= 0", 1, True),
        ("< -5", -10, True),
        (">25", 26, True),
    ])
    def test_numeric_comparisons(self, expression, value, expected):
        assert evaluate(expression, value) is expected

    def test_numeric_strings_are_coerced(self):
        assert evaluate("> 25", "30.5") is True

    def test_text_equality(self):
        assert evaluate('== "error"', "error") is True
        assert evaluate('== "error"', "ok") is False
        assert evaluate("!= 'ok'", "error") is True

    def test_parses_to_comparison(self):
        assert parse_condition(">= 70") == Comparison(">=", 70.0)


class TestCompound:
    def test_or_matches_either_side(self):
        assert evaluate(">= 70 OR < 30", 75) is True
        assert evaluate(">= 70 OR < 30", 20) is True
        assert evaluate(">= 70 OR < 30", 50) is False

    def test_and_requires_both(self):
        assert evaluate("> 10 AND < 20", 15) is True
        assert evaluate("> 10 AND < 20", 25) is False

    def test_joiner_is_case_insensitive(self):
        condition = parse_condition("> 10 and < 20")
        assert isinstance(condition, Compound)
        assert condition.joiner == "AND"


class TestMalformed:
    @pytest.mark.parametrize("expression", [
        "",
        "   ",
        "supposed > ",
        "25",
        ">",
        "> 5 <",
        "> 1 OR < 2 OR > 3",
        "> 1 OR",
        '> "high"',
        "> 5; drop",
        "temperature > 5",
    ])
    def test_rejected(self, expression):
        with pytest.raises(RuleConfigurationError):
            parse_condition(expression)

    def test_error_carries_expression(self):
        with pytest.raises(RuleConfigurationError) as exc_info:
            parse_condition("supposed > ")
        assert exc_info.value.expression == "supposed > "


class TestMeasurements:
    def test_non_numeric_value_for_numeric_rule(self):
        with pytest.raises(InvalidMeasurementError):
            evaluate("> 25", "warm")

    def test_none_value(self):
        with pytest.raises(InvalidMeasurementError):
            evaluate("> 25", None)


class TestThreshold:
    def test_first_numeric_literal(self):
        assert threshold_of(">= 70 OR < 30") == 70.0

    def test_text_condition_has_no_threshold(self):
        assert threshold_of('== "error"') is None

    def test_mixed_literals(self):
        assert threshold_of("!= 'ok' OR > 3") == 3.0
