"""Nested-path clause composition.

A nested predicate is scoped to a sub-document collection. Multi-valued
input is unrolled: every value becomes its own nested clause, and every
clause can also be registered as a scoring function so documents matching
more values rank higher.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Union

from esbuilder.constants import NESTED_FUNCTION_WEIGHT, ClauseGroup
from esbuilder.query import BoolQuery, NestedQuery, Query, TermQuery, as_query
from esbuilder.scoring import ScoreFunction

logger = logging.getLogger(__name__)

_UNROLLED_TYPES = (list, tuple, set, frozenset)


def unroll(value: Any) -> List[Any]:
    """Turn a multi-valued input into a list; scalars become one item."""
    if isinstance(value, _UNROLLED_TYPES):
        return list(value)
    return [value]


class NestedQueryComposer:
    """Appends nested clauses to a bool query and its scoring functions."""

    def __init__(self, bool_query: BoolQuery, functions: List[ScoreFunction]):
        self._bool_query = bool_query
        self._functions = functions

    def add(
        self,
        path: str,
        inner_queries: Iterable[Query],
        group: ClauseGroup,
        as_function: bool = True,
        weight: float = NESTED_FUNCTION_WEIGHT,
    ) -> List[NestedQuery]:
        """Wrap each inner query in ``path`` and place it in ``group``."""
        added: List[NestedQuery] = []
        for inner in inner_queries:
            clause = NestedQuery(path=path, query=inner)
            self._bool_query.add(group, clause)
            if as_function:
                self._functions.append(ScoreFunction(filter=clause, weight=weight))
            added.append(clause)

        logger.debug(
            "Added %d nested clause(s) on %s to %s (scoring=%s)",
            len(added), path, ClauseGroup(group).value, as_function,
        )
        return added

    def add_where(
        self,
        path: str,
        field: str,
        value: Any,
        group: ClauseGroup,
        query_type: str = "term",
        as_function: bool = True,
        weight: float = NESTED_FUNCTION_WEIGHT,
    ) -> List[NestedQuery]:
        """One ``{query_type: {field: item}}`` nested clause per value item.

        ``terms`` takes an array, so each item is sent as a one-element list.
        """
        inner = [
            TermQuery(
                field=field,
                value=[item] if query_type == "terms" else item,
                query_type=query_type,
            )
            for item in unroll(value)
        ]
        return self.add(path, inner, group, as_function=as_function, weight=weight)

    def add_raw(
        self,
        path: str,
        query: Union[Query, Mapping[str, Any], Iterable[Mapping[str, Any]]],
        group: ClauseGroup,
        as_function: bool = True,
        weight: float = NESTED_FUNCTION_WEIGHT,
    ) -> List[NestedQuery]:
        """Nested clause(s) around caller-supplied query bodies."""
        inner = [as_query(item) for item in unroll(query)]
        return self.add(path, inner, group, as_function=as_function, weight=weight)
