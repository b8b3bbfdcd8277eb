"""Fluent Elasticsearch query builder.

Provides:
- Clause accumulation into bool queries
- Nested clauses with scoring-function promotion
- Nested aggregation trees
- Function-score wrapping
- Async execution gateways and index administration
"""

from esbuilder.aggregations import (
    AggregationNode,
    AggregationTreeBuilder,
    build_aggregations,
)
from esbuilder.builder import QueryBuilder, create_builder, decode_response
from esbuilder.client import (
    ElasticsearchGateway,
    InMemoryGateway,
    SearchGateway,
    create_gateway,
)
from esbuilder.config import ConnectionConfig, Settings, get_settings
from esbuilder.constants import (
    NESTED_FUNCTION_WEIGHT,
    ClauseGroup,
    ExecutionMode,
    Logic,
    Operator,
)
from esbuilder.document import QueryDocument, QuerySnapshot
from esbuilder.errors import (
    BuilderError,
    BuilderStateError,
    ConfigurationError,
    ErrorCode,
    GatewayError,
    InvalidArgumentError,
    UnsupportedOperatorError,
)
from esbuilder.index import FieldType, IndexManager, IndexMapping
from esbuilder.query import (
    BoolQuery,
    ExistsQuery,
    MultiMatchQuery,
    NestedQuery,
    RawQuery,
    TermQuery,
)

__all__ = [
    # Builder
    "QueryBuilder",
    "create_builder",
    "decode_response",
    "QueryDocument",
    "QuerySnapshot",
    # Clauses
    "BoolQuery",
    "TermQuery",
    "MultiMatchQuery",
    "ExistsQuery",
    "NestedQuery",
    "RawQuery",
    # Tables
    "ClauseGroup",
    "Operator",
    "Logic",
    "ExecutionMode",
    "NESTED_FUNCTION_WEIGHT",
    # Aggregations
    "AggregationNode",
    "AggregationTreeBuilder",
    "build_aggregations",
    # Gateways
    "SearchGateway",
    "ElasticsearchGateway",
    "InMemoryGateway",
    "create_gateway",
    # Index
    "IndexManager",
    "IndexMapping",
    "FieldType",
    # Config
    "ConnectionConfig",
    "Settings",
    "get_settings",
    # Errors
    "ErrorCode",
    "BuilderError",
    "ConfigurationError",
    "InvalidArgumentError",
    "UnsupportedOperatorError",
    "BuilderStateError",
    "GatewayError",
]
