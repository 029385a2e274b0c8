"""Safe Arithmetic Evaluator

Evaluates the small arithmetic language offered to agents through the
``calculate`` tool. Input is validated against a character whitelist and
parsed by hand (expression -> term -> factor); nothing is ever handed to
``eval`` or the compiler. All failures come back as ``Error: ...`` strings.
"""

import math
import re

MAX_EXPRESSION_LENGTH = 200

_ALLOWED = re.compile(r"^[0-9+\-*/().%]+$")
_OPERATOR_RUN = re.compile(r"[+\-*/]{2,}")
_WHITESPACE = re.compile(r"\s")


class CalculationError(ValueError):
    """Raised by the parser for arithmetic it refuses to evaluate."""


class _Parser:
    """Recursive descent parser over a whitespace-free expression."""

    def __init__(self, expr: str):
        self.expr = expr
        self.pos = 0

    def _peek(self) -> str:
        return self.expr[self.pos] if self.pos < len(self.expr) else ""

    def parse(self) -> float:
        value = self.expression()
        if self.pos != len(self.expr):
            raise CalculationError(f"Unexpected token at position {self.pos}")
        return value

    def expression(self) -> float:
        result = self.term()
        while self._peek() in ("+", "-"):
            op = self.expr[self.pos]
            self.pos += 1
            rhs = self.term()
            result = result + rhs if op == "+" else result - rhs
        return result

    def term(self) -> float:
        result = self.factor()
        while self._peek() in ("*", "/", "%"):
            op = self.expr[self.pos]
            self.pos += 1
            rhs = self.factor()
            if op == "*":
                result *= rhs
            elif op == "/":
                if rhs == 0:
                    raise ZeroDivisionError("Division by zero")
                result /= rhs
            else:
                if rhs == 0:
                    raise ZeroDivisionError("Modulo by zero")
                # Remainder takes the sign of the dividend
                result = math.fmod(result, rhs)
        return result

    def factor(self) -> float:
        ch = self._peek()
        if ch == "-":
            self.pos += 1
            return -self.factor()
        if ch == "(":
            self.pos += 1
            value = self.expression()
            if self._peek() != ")":
                raise CalculationError("Expected closing parenthesis")
            self.pos += 1
            return value

        start = self.pos
        while self._peek() and self._peek() in "0123456789.":
            self.pos += 1
        token = self.expr[start:self.pos]
        if not token:
            raise CalculationError("Expected number")
        try:
            return float(token)
        except ValueError:
            raise CalculationError(f"Invalid number: {token}")


def _format_number(value: float) -> str:
    if value == int(value):
        return str(int(value))
    return repr(value)


def evaluate(expression: str) -> float:
    """Evaluate a validated, whitespace-free expression.

    Raises:
        CalculationError: malformed expression
        ZeroDivisionError: division or modulo by zero
    """
    return _Parser(expression).parse()


def calculate(expression: str) -> str:
    """Validate and evaluate ``expression``; never raises."""
    if not isinstance(expression, str):
        return "Error: Calculation failed"

    if len(expression) > MAX_EXPRESSION_LENGTH:
        return f"Error: Expression too long (max {MAX_EXPRESSION_LENGTH} characters)"

    sanitized = _WHITESPACE.sub("", expression)
    if not sanitized:
        return "Error: Empty expression"

    if not _ALLOWED.match(sanitized):
        return (
            "Error: Invalid characters in expression. "
            "Only numbers and operators (+, -, *, /, %, .) are allowed."
        )

    depth = 0
    for char in sanitized:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if depth < 0:
            return "Error: Unbalanced parentheses"
    if depth != 0:
        return "Error: Unbalanced parentheses"

    # A minus directly after "(" is unary, not part of an operator run
    if _OPERATOR_RUN.search(sanitized.replace("(-", "(~")):
        return "Error: Invalid operator sequence"

    try:
        result = evaluate(sanitized)
    except ZeroDivisionError as e:
        return f"Error: {e}"
    except (CalculationError, OverflowError, RecursionError):
        return "Error: Calculation failed"

    if not math.isfinite(result):
        return "Error: Invalid calculation result"

    return f"Result: {_format_number(result)}"
