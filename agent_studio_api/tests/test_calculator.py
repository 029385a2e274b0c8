from __future__ import annotations

import pytest

from agent_studio.agentic.tools.calculator import calculate, evaluate, CalculationError


@pytest.mark.parametrize("expression,expected", [
    ("2+2", "Result: 4"),
    ("2+3*4", "Result: 14"),
    ("(2+3)*4", "Result: 20"),
    ("7/2", "Result: 3.5"),
    ("2.5*2", "Result: 5"),
    ("10 % 3", "Result: 1"),
    ("-3+5", "Result: 2"),
    ("(-3)*2", "Result: -6"),
    ("((1+2)*(3+4))/7", "Result: 3"),
    ("  8 - 2 - 1  ", "Result: 5"),
])
def test_calculate_evaluates_with_precedence(expression, expected):
    assert calculate(expression) == expected


def test_calculate_rejects_code():
    result = calculate("import os")
    assert result.startswith("Error: Invalid characters")


@pytest.mark.parametrize("expression", [
    "__import__('os').system('ls')",
    "2**10",
    "abs(-1)",
    "1e3",
    "2;3",
])
def test_calculate_never_evaluates_non_arithmetic(expression):
    assert calculate(expression).startswith("Error:")


def test_division_by_zero_is_an_error_string():
    assert calculate("10/0") == "Error: Division by zero"
    assert calculate("5 % 0") == "Error: Modulo by zero"


def test_unbalanced_parentheses():
    assert calculate("((2+3)") == "Error: Unbalanced parentheses"
    assert calculate(")2+3(") == "Error: Unbalanced parentheses"


def test_consecutive_operators_rejected():
    assert calculate("2*-3") == "Error: Invalid operator sequence"
    assert calculate("2++3") == "Error: Invalid operator sequence"


def test_length_and_empty_limits():
    assert calculate("1+" * 150 + "1") == "Error: Expression too long (max 200 characters)"
    assert calculate("   ") == "Error: Empty expression"


def test_malformed_numbers_fail_cleanly():
    assert calculate("1.2.3") == "Error: Calculation failed"
    assert calculate("()") == "Error: Calculation failed"


def test_non_string_input():
    assert calculate(None) == "Error: Calculation failed"


def test_evaluate_raises_for_malformed_expression():
    with pytest.raises(CalculationError):
        evaluate("2+")
