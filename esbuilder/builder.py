"""Fluent Elasticsearch query builder.

Example:
    builder = (QueryBuilder.query(gateway)
        .set_index("products")
        .where("status", 1)
        .keywords(["lamp", "desk"], ["title", "body"])
        .where_nested("tags", "tags.name", ["oak", "walnut"])
        .order_by("created_at", "desc")
        .paginate(20, page=2)
        .functions())
    response = await builder.execute()

Each call mutates one ``QueryDocument``. ``execute`` snapshots it, sends
the snapshot through the gateway and consumes the builder.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Type, TypeVar, Union

from esbuilder.aggregations import NodeLike, build_aggregations
from esbuilder.client import SearchGateway, create_gateway
from esbuilder.config import Settings, get_settings
from esbuilder.constants import (
    NESTED_FUNCTION_WEIGHT,
    ClauseGroup,
    ExecutionMode,
    Logic,
    Operator,
)
from esbuilder.document import Highlight, Pagination, QueryDocument, QuerySnapshot
from esbuilder.errors import (
    BuilderStateError,
    ErrorCode,
    InvalidArgumentError,
    UnsupportedOperatorError,
)
from esbuilder.nested import NestedQueryComposer
from esbuilder.query import ExistsQuery, MultiMatchQuery, Query, TermQuery
from esbuilder.scoring import FunctionScoreSettings
from esbuilder.structured_logging import configure_from_settings

logger = logging.getLogger(__name__)

B = TypeVar("B", bound="QueryBuilder")

SORT_DIRECTIONS = ("asc", "desc")


def decode_response(response: Any) -> Any:
    """Plain dict/list copy of a gateway response."""
    body = getattr(response, "body", response)
    return copy.deepcopy(body)


class QueryBuilder:
    """Accumulates clauses, sort, paging, scoring and aggregations."""

    def __init__(
        self,
        gateway: Optional[SearchGateway] = None,
        mode: Union[ExecutionMode, str] = ExecutionMode.RAW,
        strict: bool = False,
    ):
        self._gateway = gateway
        self.mode = ExecutionMode(mode)
        self.strict = strict
        self._document = QueryDocument()
        self._nested = NestedQueryComposer(
            self._document.bool_query, self._document.functions
        )
        self._consumed = False

    @classmethod
    def query(cls: Type[B], gateway: Optional[SearchGateway] = None, **kwargs: Any) -> B:
        """Obtain a new builder."""
        return cls(gateway, **kwargs)

    @property
    def document(self) -> QueryDocument:
        return self._document

    @property
    def consumed(self) -> bool:
        return self._consumed

    # ------------------------------------------------------------------
    # State guards
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._consumed:
            raise BuilderStateError(
                "Builder has already been executed; create a new one.",
            )

    def _ensure_clauses_open(self) -> None:
        self._ensure_open()
        if self._document.is_wrapped:
            raise BuilderStateError(
                "Clauses cannot be added after functions() wrapped the query.",
            )

    def _resolve_group(
        self,
        table: Union[Type[Operator], Type[Logic]],
        value: Union[str, Operator, Logic],
    ) -> Optional[ClauseGroup]:
        resolved = table.resolve(value)
        if resolved is not None:
            return resolved.group

        kind = table.__name__.lower()
        if self.strict:
            raise UnsupportedOperatorError(
                f"Unsupported {kind} [{value}].",
                details={kind: str(value), "allowed": [m.value for m in table]},
            )
        logger.warning("Ignoring clause with unsupported %s %r", kind, value)
        return None

    # ------------------------------------------------------------------
    # Target, paging and sort
    # ------------------------------------------------------------------

    def set_index(self: B, index: str) -> B:
        """Set the target index."""
        self._ensure_open()
        self._document.index = index
        return self

    def limit(self: B, size: int) -> B:
        """Set the number of hits to return."""
        self._ensure_open()
        if size < 0:
            raise InvalidArgumentError(
                f"Invalid parameter [size]: {size}, must be >= 0.",
                details={"size": size},
            )
        self._document.pagination.size = size
        return self

    def paginate(self: B, page_size: int, page: int = 1) -> B:
        """Select page ``page`` (1-based) of ``page_size`` hits."""
        self._ensure_open()
        self._document.pagination = Pagination.for_page(page_size, page)
        return self

    def order_by(
        self: B,
        orders: Union[str, Mapping[str, Any], None] = None,
        direction: str = "desc",
    ) -> B:
        """Add sort clauses.

        ``orders`` is either one field name sorted by ``direction`` or a
        mapping of field name to direction. Defaults to ``{"id": "desc"}``.
        """
        self._ensure_open()
        if orders is None:
            orders = {"id": "desc"}
        if isinstance(orders, str):
            orders = {orders: direction}

        for name, order in orders.items():
            self._document.sort.append((name, self._normalize_direction(order)))
        return self

    @staticmethod
    def _normalize_direction(order: Any) -> Any:
        if isinstance(order, Mapping):
            return dict(order)
        normalized = str(order).lower()
        if normalized not in SORT_DIRECTIONS:
            raise InvalidArgumentError(
                f"Invalid sort direction [{order}].",
                details={"allowed": list(SORT_DIRECTIONS)},
            )
        return normalized

    # ------------------------------------------------------------------
    # Clauses
    # ------------------------------------------------------------------

    def where(
        self: B,
        field: str,
        value: Any,
        operator: Union[str, Operator] = Operator.EQUAL_TO,
        query_type: str = "term",
    ) -> B:
        """Add a basic where clause.

        ``=`` goes to ``filter`` and ``!=`` to ``must_not``. An unknown
        operator adds nothing, or raises ``UnsupportedOperatorError`` when
        the builder is strict.
        """
        self._ensure_clauses_open()
        group = self._resolve_group(Operator, operator)
        if group is not None:
            self._document.bool_query.add(
                group, TermQuery(field=field, value=value, query_type=query_type)
            )
            logger.debug("where %s %s -> %s", field, operator, group.value)
        return self

    def where_null(self: B, field: str, is_null: bool = True) -> B:
        """Require ``field`` to be missing (or, with ``is_null=False``, present).

        The exists clause replaces whatever the target group held, so a
        query carries one such condition per group.
        """
        self._ensure_clauses_open()
        group = ClauseGroup.MUST_NOT if is_null else ClauseGroup.MUST
        self._document.bool_query.replace(group, ExistsQuery(field=field))
        return self

    def keywords(
        self: B,
        keywords: Union[str, Iterable[str]],
        fields: Union[str, Sequence[str]],
    ) -> B:
        """Add one multi_match clause per keyword to ``must``."""
        self._ensure_clauses_open()
        if isinstance(keywords, str):
            keywords = [keywords]
        field_names = (fields,) if isinstance(fields, str) else tuple(fields)

        for keyword in keywords:
            self._document.bool_query.add(
                ClauseGroup.MUST, MultiMatchQuery(query=keyword, fields=field_names)
            )
        return self

    def min_should_match(self: B, count: int = 1) -> B:
        """Set minimum_should_match on the bool query."""
        self._ensure_clauses_open()
        self._document.bool_query.minimum_should_match = count
        return self

    def min_score(self: B, score: Union[float, str] = 0.0) -> B:
        """Drop hits scoring below ``score``."""
        self._ensure_open()
        try:
            self._document.min_score = float(score)
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(
                f"Invalid parameter [min_score]: {score!r}.",
            ) from e
        return self

    def highlight(self: B, fields: Union[str, Sequence[str]], css_class: str) -> B:
        """Highlight matches in ``fields`` with ``<span class="css_class">``."""
        self._ensure_open()
        names = (fields,) if isinstance(fields, str) else tuple(dict.fromkeys(fields))
        self._document.highlight = Highlight(fields=names, wrapper_class=css_class)
        return self

    def where_nested(
        self: B,
        path: str,
        field: str,
        value: Any,
        logic: Union[str, Logic] = Logic.OR,
        query_type: str = "term",
        as_function: bool = True,
        weight: float = NESTED_FUNCTION_WEIGHT,
    ) -> B:
        """Add nested clause(s) on ``path``.

        A list, tuple or set ``value`` yields one clause per item. With
        ``as_function`` each clause is also a scoring function of ``weight``.
        """
        self._ensure_clauses_open()
        group = self._resolve_group(Logic, logic)
        if group is not None:
            self._nested.add_where(
                path,
                field,
                value,
                group,
                query_type=query_type,
                as_function=as_function,
                weight=weight,
            )
        return self

    def where_nested_raw(
        self: B,
        path: str,
        query: Union[Query, Mapping[str, Any], Sequence[Mapping[str, Any]]],
        logic: Union[str, Logic] = Logic.OR,
        as_function: bool = True,
        weight: float = NESTED_FUNCTION_WEIGHT,
    ) -> B:
        """Like ``where_nested`` but with a caller-supplied inner query."""
        self._ensure_clauses_open()
        group = self._resolve_group(Logic, logic)
        if group is not None:
            self._nested.add_raw(
                path, query, group, as_function=as_function, weight=weight
            )
        return self

    # ------------------------------------------------------------------
    # Aggregations and scoring
    # ------------------------------------------------------------------

    def aggregate(self: B, nodes: Sequence[NodeLike]) -> B:
        """Expand an aggregation tree into the request's ``aggs``."""
        self._ensure_open()
        built = build_aggregations(nodes)
        duplicates = set(built) & set(self._document.aggregations)
        if duplicates:
            raise InvalidArgumentError(
                f"Duplicate aggregation key(s) {sorted(duplicates)}.",
            )
        self._document.aggregations.update(built)
        return self

    def functions(self: B, score_mode: str = "sum", boost_mode: str = "replace") -> B:
        """Wrap the bool query in a function_score envelope.

        Must come after every clause call; clause calls made afterwards
        raise ``BuilderStateError``.
        """
        self._ensure_open()
        if self._document.is_wrapped:
            raise BuilderStateError("Query is already wrapped by functions().")
        self._document.function_score = FunctionScoreSettings(
            score_mode=score_mode, boost_mode=boost_mode
        )
        logger.debug(
            "Wrapped query in function_score with %d function(s)",
            len(self._document.functions),
        )
        return self

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def get_params(self) -> Dict[str, Any]:
        """Return the compiled ``{index, body}`` parameters."""
        return self._document.to_params()

    def snapshot(self) -> QuerySnapshot:
        """Read-only copy of the compiled query as it stands now."""
        return self._document.snapshot()

    async def execute(self, timeout: Optional[float] = None) -> Any:
        """Send the query to the gateway.

        Raises:
            InvalidArgumentError: if no index was set; the gateway is not called.
            BuilderStateError: if the builder was already executed.
            ConfigurationError: if no gateway was given and the configured
                connection is malformed; the builder stays open.
        """
        self._ensure_open()
        if not self._document.index:
            raise InvalidArgumentError(
                "Invalid parameter [index].",
                code=ErrorCode.MISSING_REQUIRED_FIELD,
            )

        snapshot = self.snapshot()
        if self._gateway is None:
            self._gateway = create_gateway()
        self._consumed = True

        logger.debug("Executing search on %s", snapshot.index)
        response = await self._gateway.search(snapshot.to_dict(), timeout=timeout)

        if self.mode is ExecutionMode.DECODED:
            return decode_response(response)
        return response

    async def get(self, timeout: Optional[float] = None) -> Any:
        """Alias of ``execute``."""
        return await self.execute(timeout=timeout)

    async def fetch_page(
        self,
        page_size: int,
        page: int = 1,
        timeout: Optional[float] = None,
    ) -> Any:
        """Paginate and execute in one call."""
        return await self.paginate(page_size, page).execute(timeout=timeout)


def create_builder(
    settings: Optional[Settings] = None,
    gateway: Optional[SearchGateway] = None,
) -> QueryBuilder:
    """Build a ``QueryBuilder`` configured from settings.

    Raises:
        ConfigurationError: if no gateway is given and the configured
            connection is malformed.
    """
    settings = settings or get_settings()
    configure_from_settings(settings)
    return QueryBuilder(
        gateway or create_gateway(settings),
        mode=settings.EXECUTION_MODE,
        strict=settings.STRICT_OPERATORS,
    )
