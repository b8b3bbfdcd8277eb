"""Nested aggregation trees.

An aggregation tree is declared as ``AggregationNode`` values::

    AggregationNode(key="color", path="variants", field_type="terms", children=[
        AggregationNode(key="size", path="variants.sizes", field_type="terms"),
    ])

and expands into::

    {"color": {"nested": {"path": "variants"},
               "aggs": {"color": {"terms": {"field": "variants.color"},
                                  "aggs": {"size": {...}}}}}}

Every sibling at every level is expanded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from esbuilder.errors import InvalidArgumentError

# Aggregation types that produce a single value and cannot hold sub-aggregations.
METRIC_TYPES = frozenset({
    "avg",
    "sum",
    "min",
    "max",
    "stats",
    "extended_stats",
    "cardinality",
    "value_count",
    "percentiles",
})


@dataclass
class Aggregation:
    """Base aggregation class."""

    name: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Elasticsearch aggregation dict."""
        raise NotImplementedError


@dataclass
class FieldAggregation(Aggregation):
    """Aggregation of ``type`` computed over a single field."""

    type: str
    field: str
    sub_aggregations: List[Aggregation] = field(default_factory=list)

    @property
    def is_bucket(self) -> bool:
        return self.type not in METRIC_TYPES

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {self.type: {"field": self.field}}

        if self.sub_aggregations:
            result["aggs"] = _merge(self.sub_aggregations)

        return {self.name: result}


@dataclass
class NestedAggregation(Aggregation):
    """Nested bucket aggregation."""

    path: str
    sub_aggregations: List[Aggregation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"nested": {"path": self.path}}

        if self.sub_aggregations:
            result["aggs"] = _merge(self.sub_aggregations)

        return {self.name: result}


def _merge(aggregations: Sequence[Aggregation]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for agg in aggregations:
        if agg.name in merged:
            raise InvalidArgumentError(
                f"Duplicate aggregation key [{agg.name}].",
                details={"key": agg.name},
            )
        merged[agg.name] = agg.to_dict()[agg.name]
    return merged


@dataclass
class AggregationNode:
    """Declarative node of a nested aggregation tree."""

    key: str
    path: str
    field_type: Optional[str] = None
    children: List["AggregationNode"] = field(default_factory=list)

    @property
    def field_name(self) -> str:
        return f"{self.path}.{self.key}"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AggregationNode":
        """Build a node (and its children) from a plain mapping.

        ``type`` is accepted as an alias of ``field_type``.
        """
        try:
            key = data["key"]
            path = data["path"]
        except KeyError as e:
            raise InvalidArgumentError(
                f"Aggregation node is missing [{e.args[0]}].",
                details={"node": dict(data)},
            ) from e

        return cls(
            key=key,
            path=path,
            field_type=data.get("field_type", data.get("type")),
            children=[coerce_node(child) for child in data.get("children") or []],
        )


NodeLike = Union[AggregationNode, Mapping[str, Any]]


def coerce_node(node: NodeLike) -> AggregationNode:
    if isinstance(node, AggregationNode):
        return node
    if isinstance(node, Mapping):
        return AggregationNode.from_mapping(node)
    raise InvalidArgumentError(
        f"Unsupported aggregation node type [{type(node).__name__}]."
    )


def expand_node(node: AggregationNode) -> NestedAggregation:
    """Expand one node and, recursively, all of its children."""
    if not node.key or not node.path:
        raise InvalidArgumentError(
            "Aggregation node requires a non-empty key and path.",
            details={"key": node.key, "path": node.path},
        )

    children = [expand_node(coerce_node(child)) for child in node.children]
    nested = NestedAggregation(name=node.key, path=node.path)

    if node.field_type:
        field_agg = FieldAggregation(
            name=node.key, type=node.field_type, field=node.field_name
        )
        if children and not field_agg.is_bucket:
            raise InvalidArgumentError(
                f"Metric aggregation [{node.field_type}] on [{node.key}] "
                "cannot have children.",
            )
        field_agg.sub_aggregations = children
        nested.sub_aggregations = [field_agg]
    else:
        nested.sub_aggregations = children

    return nested


def build_aggregations(nodes: Sequence[NodeLike]) -> Dict[str, Any]:
    """Build the ``aggs`` document for a list of sibling nodes."""
    return _merge([expand_node(coerce_node(node)) for node in nodes])


class AggregationTreeBuilder:
    """Collects aggregation nodes and builds them into one document."""

    def __init__(self):
        self._nodes: List[AggregationNode] = []

    def add(self, *nodes: NodeLike) -> "AggregationTreeBuilder":
        self._nodes.extend(coerce_node(node) for node in nodes)
        return self

    def node(
        self,
        key: str,
        path: str,
        field_type: Optional[str] = None,
        children: Optional[Sequence[NodeLike]] = None,
    ) -> "AggregationTreeBuilder":
        """Add a node built from keyword arguments."""
        return self.add(AggregationNode(
            key=key,
            path=path,
            field_type=field_type,
            children=[coerce_node(child) for child in children or []],
        ))

    def build(self) -> Dict[str, Any]:
        """Build aggregations dict."""
        return build_aggregations(self._nodes)
