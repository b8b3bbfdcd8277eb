"""Accumulated query state and its immutable snapshot."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from esbuilder.errors import InvalidArgumentError
from esbuilder.query import BoolQuery, Query
from esbuilder.scoring import FunctionScoreQuery, FunctionScoreSettings, ScoreFunction


@dataclass
class Pagination:
    """Result window; either bound may be unset."""
    offset: Optional[int] = None
    size: Optional[int] = None

    @classmethod
    def for_page(cls, page_size: int, page: int = 1) -> "Pagination":
        if page < 1:
            raise InvalidArgumentError(
                f"Invalid parameter [page]: {page}, must be >= 1.",
                details={"page": page},
            )
        if page_size < 0:
            raise InvalidArgumentError(
                f"Invalid parameter [page_size]: {page_size}, must be >= 0.",
                details={"page_size": page_size},
            )
        return cls(offset=(page - 1) * page_size, size=page_size)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.offset is not None:
            result["from"] = self.offset
        if self.size is not None:
            result["size"] = self.size
        return result


@dataclass
class Highlight:
    """Search-term highlighting wrapped in a ``<span>`` with a CSS class."""
    fields: Tuple[str, ...]
    wrapper_class: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pre_tags": f'<span class="{self.wrapper_class}">',
            "post_tags": "</span>",
            "require_field_match": True,
            "fields": {name: {} for name in self.fields},
        }


@dataclass
class QueryDocument:
    """Everything a builder has accumulated for one query."""

    index: str = ""
    pagination: Pagination = field(default_factory=Pagination)
    sort: List[Tuple[str, str]] = field(default_factory=list)
    bool_query: BoolQuery = field(default_factory=BoolQuery)
    functions: List[ScoreFunction] = field(default_factory=list)
    function_score: Optional[FunctionScoreSettings] = None
    highlight: Optional[Highlight] = None
    min_score: Optional[float] = None
    aggregations: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_wrapped(self) -> bool:
        """True once the query has been wrapped in a function_score envelope."""
        return self.function_score is not None

    def compiled_query(self) -> Query:
        if self.function_score is None:
            return self.bool_query
        return FunctionScoreQuery(
            query=self.bool_query,
            functions=list(self.functions),
            settings=self.function_score,
        )

    def body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"query": self.compiled_query().to_dict()}

        if self.sort:
            body["sort"] = [{name: direction} for name, direction in self.sort]

        body.update(self.pagination.to_dict())

        if self.min_score is not None:
            body["min_score"] = self.min_score

        if self.highlight is not None:
            body["highlight"] = self.highlight.to_dict()

        if self.aggregations:
            body["aggs"] = copy.deepcopy(self.aggregations)

        return body

    def to_params(self) -> Dict[str, Any]:
        """Compile to the ``{index, body}`` parameters of a search call."""
        return {"index": self.index, "body": self.body()}

    def snapshot(self) -> "QuerySnapshot":
        return QuerySnapshot(index=self.index, body=freeze(self.body()))


@dataclass(frozen=True)
class QuerySnapshot:
    """Read-only copy of a compiled query.

    Mappings are ``MappingProxyType`` and lists are tuples all the way
    down, so neither the live builder nor the holder can change it.
    """

    index: str
    body: Mapping[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """Fresh, mutable ``{index, body}`` dict, e.g. for the search client."""
        return {"index": self.index, "body": thaw(self.body)}


def freeze(value: Any) -> Any:
    """Recursively convert dicts and lists to read-only equivalents."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(v) for v in value)
    return copy.deepcopy(value)


def thaw(value: Any) -> Any:
    """Inverse of ``freeze``: plain dicts and lists."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    if isinstance(value, frozenset):
        return [thaw(v) for v in value]
    return value
