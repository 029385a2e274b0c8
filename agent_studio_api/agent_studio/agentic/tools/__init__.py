"""Agent tools: knowledge search, summarize, calculate, compare, analyze."""

from .calculator import calculate, evaluate, CalculationError
from .executors import ToolExecutors, ToolOutcome, BUILTIN_TOOLS, TOOL_ALIASES

__all__ = [
    "calculate",
    "evaluate",
    "CalculationError",
    "ToolExecutors",
    "ToolOutcome",
    "BUILTIN_TOOLS",
    "TOOL_ALIASES",
]
