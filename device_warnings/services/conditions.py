# device_warnings/services/conditions.py
"""
Threshold condition parsing and evaluation.

A condition is one or two clauses joined by AND/OR (case-insensitive).
Each clause is a comparator followed by a literal:

    > 25
    >= 70 OR < 30
    == "error"

Numeric literals compare against the measured value coerced to float.
Quoted literals compare as text and only support == and !=.
Expressions are parsed into a small tree and never evaluated as code.
"""
import operator
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple, Union

from device_warnings.core.exceptions import RuleConfigurationError, InvalidMeasurementError

Literal = Union[float, str]

COMPARATORS = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}

TEXT_COMPARATORS = ("==", "!=")

JOINERS = ("AND", "OR")

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<op>>=|<=|==|!=|>|<)
      | (?P<text>"[^"]*"|'[^']*')
      | (?P<number>[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)
      | (?P<word>[A-Za-z_]+)
    )
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Comparison:
    comparator: str
    literal: Literal

    @property
    def is_text(self) -> bool:
        return isinstance(self.literal, str)

    def matches(self, value) -> bool:
        compare = COMPARATORS[self.comparator]
        if self.is_text:
            return compare("" if value is None else str(value), self.literal)
        return compare(coerce_number(value), self.literal)


@dataclass(frozen=True)
class Compound:
    joiner: str  # "AND" or "OR"
    left: Comparison
    right: Comparison

    def matches(self, value) -> bool:
        if self.joiner == "AND":
            return self.left.matches(value) and self.right.matches(value)
        return self.left.matches(value) or self.right.matches(value)


Condition = Union[Comparison, Compound]


def coerce_number(value) -> float:
    """Coerce a measured value to float for numeric comparison."""
    if value is None:
        raise InvalidMeasurementError("No value to compare")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidMeasurementError(f"Value {value!r} is not numeric")


def _tokenize(expression: str):
    tokens = []
    pos = 0
    text = expression.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise RuleConfigurationError(
                f"Unexpected input at position {pos} in condition {expression!r}", expression
            )
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


def _parse_clause(tokens, expression: str) -> Comparison:
    if len(tokens) != 2:
        raise RuleConfigurationError(
            f"Expected '<comparator> <literal>' in condition {expression!r}", expression
        )
    (op_kind, comparator), (literal_kind, raw) = tokens
    if op_kind != "op":
        raise RuleConfigurationError(f"Missing comparator in condition {expression!r}", expression)

    if literal_kind == "number":
        return Comparison(comparator, float(raw))
    if literal_kind == "text":
        if comparator not in TEXT_COMPARATORS:
            raise RuleConfigurationError(
                f"Comparator {comparator} cannot be used with text in condition {expression!r}",
                expression,
            )
        return Comparison(comparator, raw[1:-1])
    raise RuleConfigurationError(f"Missing literal in condition {expression!r}", expression)


@lru_cache(maxsize=1024)
def parse_condition(expression: str) -> Condition:
    """
    Parse a condition expression.

    Raises:
        RuleConfigurationError: if the expression is malformed
    """
    if not isinstance(expression, str) or not expression.strip():
        raise RuleConfigurationError("Empty condition", expression)

    tokens = _tokenize(expression)
    joiner_positions = [
        i for i, (kind, text) in enumerate(tokens)
        if kind == "word" and text.upper() in JOINERS
    ]
    stray_words = [
        text for kind, text in tokens
        if kind == "word" and text.upper() not in JOINERS
    ]
    if stray_words:
        raise RuleConfigurationError(
            f"Unknown word {stray_words[0]!r} in condition {expression!r}", expression
        )

    if not joiner_positions:
        return _parse_clause(tokens, expression)
    if len(joiner_positions) > 1:
        raise RuleConfigurationError(
            f"At most two clauses are supported in condition {expression!r}", expression
        )

    split = joiner_positions[0]
    left = _parse_clause(tokens[:split], expression)
    right = _parse_clause(tokens[split + 1:], expression)
    return Compound(tokens[split][1].upper(), left, right)


def literals(condition: Condition) -> Tuple[Literal, ...]:
    if isinstance(condition, Compound):
        return (condition.left.literal, condition.right.literal)
    return (condition.literal,)


def threshold_of(expression: str) -> Optional[float]:
    """First numeric literal of a condition, reported as the threshold."""
    for literal in literals(parse_condition(expression)):
        if not isinstance(literal, str):
            return literal
    return None


def evaluate(expression: str, value) -> bool:
    """
    Return True when ``value`` satisfies the condition, i.e. the rule is violated.

    Raises:
        RuleConfigurationError: malformed expression
        InvalidMeasurementError: value cannot be compared numerically
    """
    return parse_condition(expression).matches(value)
