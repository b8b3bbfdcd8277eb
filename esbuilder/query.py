"""Query clauses and the boolean clause accumulator.

Clauses are immutable values that render themselves into the
Elasticsearch query DSL. ``BoolQuery`` collects them into the four
boolean groups.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from esbuilder.constants import ClauseGroup


class Query:
    """Base query class."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Elasticsearch query dict."""
        raise NotImplementedError


@dataclass(frozen=True)
class TermQuery(Query):
    """Single-field predicate, ``term`` unless another query type is given."""

    field: str
    value: Any
    query_type: str = "term"  # term, terms, match, match_phrase, prefix, wildcard

    def to_dict(self) -> Dict[str, Any]:
        return {self.query_type: {self.field: copy.deepcopy(self.value)}}


@dataclass(frozen=True)
class MultiMatchQuery(Query):
    """Multi-field match query."""

    query: str
    fields: Tuple[str, ...]
    type: Optional[str] = None  # best_fields, most_fields, cross_fields, phrase

    def to_dict(self) -> Dict[str, Any]:
        query_body: Dict[str, Any] = {
            "query": self.query,
            "fields": list(self.fields),
        }

        if self.type:
            query_body["type"] = self.type

        return {"multi_match": query_body}


@dataclass(frozen=True)
class ExistsQuery(Query):
    """Field exists query."""

    field: str

    def to_dict(self) -> Dict[str, Any]:
        return {"exists": {"field": self.field}}


@dataclass(frozen=True)
class RawQuery(Query):
    """Query body passed through verbatim."""

    body: Mapping[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(dict(self.body))


@dataclass(frozen=True)
class NestedQuery(Query):
    """Nested object query."""

    path: str
    query: Query
    score_mode: Optional[str] = None  # avg, max, min, sum, none

    def to_dict(self) -> Dict[str, Any]:
        nested_body: Dict[str, Any] = {
            "path": self.path,
            "query": self.query.to_dict(),
        }

        if self.score_mode:
            nested_body["score_mode"] = self.score_mode

        return {"nested": nested_body}


def as_query(value: Union[Query, Mapping[str, Any]]) -> Query:
    """Accept either a clause object or a raw query mapping."""
    if isinstance(value, Query):
        return value
    if isinstance(value, Mapping):
        return RawQuery(body=copy.deepcopy(dict(value)))
    raise TypeError(f"Expected a Query or mapping, got {type(value).__name__}")


@dataclass
class BoolQuery(Query):
    """Boolean compound query.

    Unlike a general-purpose bool query this one always renders all four
    groups, empty or not, so the compiled document has a stable shape.
    """

    filter: List[Query] = field(default_factory=list)
    must: List[Query] = field(default_factory=list)
    must_not: List[Query] = field(default_factory=list)
    should: List[Query] = field(default_factory=list)
    minimum_should_match: Optional[int] = None

    def group(self, group: ClauseGroup) -> List[Query]:
        return getattr(self, ClauseGroup(group).value)

    def add(self, group: ClauseGroup, query: Query) -> "BoolQuery":
        self.group(group).append(query)
        return self

    def replace(self, group: ClauseGroup, query: Query) -> "BoolQuery":
        """Make ``query`` the only clause in ``group``."""
        setattr(self, ClauseGroup(group).value, [query])
        return self

    def to_dict(self) -> Dict[str, Any]:
        bool_body: Dict[str, Any] = {
            "filter": [q.to_dict() for q in self.filter],
            "must": [q.to_dict() for q in self.must],
            "must_not": [q.to_dict() for q in self.must_not],
            "should": [q.to_dict() for q in self.should],
        }

        if self.minimum_should_match is not None:
            bool_body["minimum_should_match"] = self.minimum_should_match

        return {"bool": bool_body}

