"""Operator and logic dispatch tables.

Both tables are closed ``str`` enums. Each member maps to exactly one
boolean clause group; strings outside the table resolve to ``None``.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Union

# Weight given to a nested clause registered as a scoring function.
NESTED_FUNCTION_WEIGHT = 2


class ClauseGroup(str, Enum):
    """Boolean query clause groups."""
    FILTER = "filter"
    MUST = "must"
    MUST_NOT = "must_not"
    SHOULD = "should"


class Operator(str, Enum):
    """Comparison operators accepted by ``where``."""
    EQUAL_TO = "="
    NOT_EQUAL_TO = "!="

    @property
    def group(self) -> ClauseGroup:
        return _OPERATOR_GROUPS[self]

    @classmethod
    def resolve(cls, value: Union[str, "Operator"]) -> Optional["Operator"]:
        """Look up an operator by symbol or alias, ``None`` if unknown."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        key = _OPERATOR_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return None


class Logic(str, Enum):
    """Combination logic accepted by nested clauses."""
    AND = "&&"
    OR = "||"
    NOT_EQUAL_TO = "!="

    @property
    def group(self) -> ClauseGroup:
        return _LOGIC_GROUPS[self]

    @classmethod
    def resolve(cls, value: Union[str, "Logic"]) -> Optional["Logic"]:
        """Look up a logic value by symbol or alias, ``None`` if unknown."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        key = _LOGIC_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return None


class ExecutionMode(str, Enum):
    """What ``execute`` hands back to the caller."""
    RAW = "raw"  # gateway response object, untouched
    DECODED = "decoded"  # plain dicts and lists


_OPERATOR_GROUPS: Dict[Operator, ClauseGroup] = {
    Operator.EQUAL_TO: ClauseGroup.FILTER,
    Operator.NOT_EQUAL_TO: ClauseGroup.MUST_NOT,
}

_LOGIC_GROUPS: Dict[Logic, ClauseGroup] = {
    Logic.AND: ClauseGroup.MUST,
    Logic.OR: ClauseGroup.SHOULD,
    Logic.NOT_EQUAL_TO: ClauseGroup.MUST_NOT,
}

_OPERATOR_ALIASES: Dict[str, str] = {
    "equals": "=",
    "eq": "=",
    "==": "=",
    "not-equals": "!=",
    "not_equals": "!=",
    "ne": "!=",
    "<>": "!=",
}

_LOGIC_ALIASES: Dict[str, str] = {
    "and": "&&",
    "or": "||",
    "not-equals": "!=",
    "not_equals": "!=",
    "not": "!=",
    "<>": "!=",
}

SCORE_MODES = frozenset({"multiply", "sum", "avg", "first", "max", "min"})
BOOST_MODES = frozenset({"multiply", "replace", "sum", "avg", "max", "min"})
