"""Execution gateways.

A gateway receives compiled ``{index, body}`` parameters and talks to the
search engine. ``ElasticsearchGateway`` wraps the official async client;
``InMemoryGateway`` evaluates the compiled DSL against in-process
documents and records every call, for tests and local runs.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from elasticsearch import AsyncElasticsearch
from elasticsearch.helpers import async_bulk

from esbuilder.config import ConnectionConfig, Settings, get_settings
from esbuilder.errors import GatewayError

logger = logging.getLogger(__name__)


def mapping_body(properties: Mapping[str, Any]) -> Dict[str, Any]:
    """Mapping document with ``_source`` enabled.

    ``properties`` maps field names either to a type name or to a full
    field mapping dict.
    """
    return {
        "_source": {"enabled": True},
        "properties": {
            name: ({"type": definition} if isinstance(definition, str) else dict(definition))
            for name, definition in properties.items()
        },
    }


class SearchGateway(ABC):
    """Abstract base class for execution gateways."""

    @abstractmethod
    async def search(
        self,
        params: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> Any:
        """Run a compiled search.

        Args:
            params: ``{"index": ..., "body": ...}`` as compiled by the builder
            timeout: Request timeout in seconds

        Returns:
            The engine's response, unchanged
        """
        pass

    @abstractmethod
    async def index_document(
        self,
        index: str,
        doc_id: str,
        document: Dict[str, Any],
        refresh: bool = False,
    ) -> Any:
        """Create or replace a document by ID."""
        pass

    @abstractmethod
    async def delete_document(self, index: str, doc_id: str, refresh: bool = False) -> Any:
        """Delete a document by ID."""
        pass

    @abstractmethod
    async def bulk_index(
        self,
        index: str,
        documents: Sequence[Tuple[str, Dict[str, Any]]],
        refresh: bool = False,
    ) -> Tuple[int, List[Any]]:
        """Bulk upsert documents.

        Args:
            index: Index name
            documents: List of (doc_id, document) tuples
            refresh: Whether to refresh

        Returns:
            Tuple of (success_count, per-item errors as reported)
        """
        pass

    @abstractmethod
    async def create_index(self, index: str, body: Optional[Dict[str, Any]] = None) -> Any:
        pass

    @abstractmethod
    async def delete_index(self, index: str) -> Any:
        pass

    @abstractmethod
    async def index_exists(self, index: str) -> bool:
        pass

    @abstractmethod
    async def put_mapping(self, index: str, properties: Mapping[str, Any]) -> Any:
        """Put a field-name to engine-type mapping on an index."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the client connection."""
        pass


class ElasticsearchGateway(SearchGateway):
    """Gateway over ``elasticsearch.AsyncElasticsearch``.

    Errors raised by the client are logged and re-raised unchanged.
    """

    def __init__(
        self,
        config: Optional[ConnectionConfig] = None,
        client: Optional[AsyncElasticsearch] = None,
    ):
        self.config = config or ConnectionConfig()
        self._client = client

    async def _get_client(self) -> AsyncElasticsearch:
        """Get or create Elasticsearch client."""
        if self._client is None:
            kwargs: Dict[str, Any] = {"hosts": self.config.hosts}

            if self.config.api_key:
                kwargs["api_key"] = self.config.api_key
            elif self.config.basic_auth:
                kwargs["basic_auth"] = self.config.basic_auth

            if self.config.request_timeout is not None:
                kwargs["request_timeout"] = self.config.request_timeout

            self._client = AsyncElasticsearch(**kwargs)
            logger.info("Connected to Elasticsearch at %s", self.config.hosts)

        return self._client

    async def search(
        self,
        params: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> Any:
        client = await self._get_client()
        if timeout is not None:
            client = client.options(request_timeout=timeout)

        try:
            return await client.search(index=params["index"], body=params["body"])
        except GatewayError as e:
            logger.error("Search error on %s: %s", params["index"], e)
            raise

    async def index_document(
        self,
        index: str,
        doc_id: str,
        document: Dict[str, Any],
        refresh: bool = False,
    ) -> Any:
        client = await self._get_client()
        try:
            return await client.index(
                index=index,
                id=doc_id,
                document=document,
                refresh="wait_for" if refresh else False,
            )
        except GatewayError as e:
            logger.error("Index error for %s/%s: %s", index, doc_id, e)
            raise

    async def delete_document(self, index: str, doc_id: str, refresh: bool = False) -> Any:
        client = await self._get_client()
        try:
            return await client.delete(
                index=index,
                id=doc_id,
                refresh="wait_for" if refresh else False,
            )
        except GatewayError as e:
            logger.error("Delete error for %s/%s: %s", index, doc_id, e)
            raise

    async def bulk_index(
        self,
        index: str,
        documents: Sequence[Tuple[str, Dict[str, Any]]],
        refresh: bool = False,
    ) -> Tuple[int, List[Any]]:
        client = await self._get_client()

        actions = [
            {
                "_op_type": "index",
                "_index": index,
                "_id": doc_id,
                "_source": document,
            }
            for doc_id, document in documents
        ]

        success, errors = await async_bulk(
            client,
            actions,
            refresh="wait_for" if refresh else False,
            raise_on_error=False,
        )
        if errors:
            logger.warning("Bulk index into %s: %d item error(s)", index, len(errors))
        return success, list(errors) if isinstance(errors, list) else []

    async def create_index(self, index: str, body: Optional[Dict[str, Any]] = None) -> Any:
        client = await self._get_client()
        try:
            response = await client.indices.create(index=index, body=body)
            logger.info("Created index: %s", index)
            return response
        except GatewayError as e:
            logger.error("Create index error for %s: %s", index, e)
            raise

    async def delete_index(self, index: str) -> Any:
        client = await self._get_client()
        try:
            response = await client.indices.delete(index=index)
            logger.info("Deleted index: %s", index)
            return response
        except GatewayError as e:
            logger.error("Delete index error for %s: %s", index, e)
            raise

    async def index_exists(self, index: str) -> bool:
        client = await self._get_client()
        return bool(await client.indices.exists(index=index))

    async def put_mapping(self, index: str, properties: Mapping[str, Any]) -> Any:
        client = await self._get_client()
        try:
            response = await client.indices.put_mapping(
                index=index, body=mapping_body(properties)
            )
            logger.info("Updated mapping for index: %s", index)
            return response
        except GatewayError as e:
            logger.error("Put mapping error for %s: %s", index, e)
            raise

    async def close(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None


class InMemoryGateway(SearchGateway):
    """In-memory gateway for testing.

    Understands the subset of the DSL the builder emits: ``bool``,
    ``function_score``, ``nested``, ``term``/``terms``/``match``,
    ``multi_match``, ``exists`` and ``match_all``.
    """

    def __init__(self):
        self._indices: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._mappings: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Dict[str, Any]] = []

    async def search(
        self,
        params: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        self.calls.append(copy.deepcopy(params))
        index = params["index"]
        body = params.get("body", {})
        query = body.get("query", {"match_all": {}})

        scored: List[Tuple[str, Dict[str, Any], float]] = []
        for doc_id, doc in self._indices.get(index, {}).items():
            if self._matches_query(doc, query):
                scored.append((doc_id, doc, self._score(doc, query)))

        min_score = body.get("min_score")
        if min_score is not None:
            scored = [hit for hit in scored if hit[2] >= float(min_score)]

        for sort_clause in reversed(body.get("sort", [])):
            for field_name, direction in sort_clause.items():
                scored.sort(
                    key=lambda hit: _sort_key(
                        hit[2] if field_name == "_score" else _lookup(hit[1], field_name)
                    ),
                    reverse=str(direction).lower() == "desc",
                )

        total = len(scored)
        offset = body.get("from", 0)
        size = body.get("size", 10)
        window = scored[offset:offset + size]

        return {
            "took": 0,
            "timed_out": False,
            "hits": {
                "total": {"value": total, "relation": "eq"},
                "max_score": max((s for _, _, s in window), default=None),
                "hits": [
                    {"_index": index, "_id": doc_id, "_score": score, "_source": doc}
                    for doc_id, doc, score in window
                ],
            },
        }

    def _score(self, doc: Dict[str, Any], query: Dict[str, Any]) -> float:
        if "function_score" not in query:
            return 1.0

        envelope = query["function_score"]
        weights = [
            float(function.get("weight", 1))
            for function in envelope.get("functions", [])
            if self._matches_query(doc, function.get("filter", {"match_all": {}}))
        ]
        if not weights:
            return 1.0 if envelope.get("boost_mode") != "replace" else 0.0

        mode = envelope.get("score_mode", "multiply")
        if mode == "sum":
            return sum(weights)
        if mode == "max":
            return max(weights)
        if mode == "min":
            return min(weights)
        if mode == "avg":
            return sum(weights) / len(weights)
        if mode == "first":
            return weights[0]
        result = 1.0
        for weight in weights:
            result *= weight
        return result

    def _matches_query(
        self,
        doc: Dict[str, Any],
        query: Dict[str, Any],
        prefix: str = "",
    ) -> bool:
        """Simple query matching."""
        if "match_all" in query:
            return True

        if "function_score" in query:
            return self._matches_query(
                doc, query["function_score"].get("query", {"match_all": {}}), prefix
            )

        if "term" in query or "match" in query:
            exact = "term" in query
            for field_name, expected in query["term" if exact else "match"].items():
                if isinstance(expected, dict):
                    expected = expected.get("value", expected.get("query"))
                values = _as_list(_lookup(doc, _strip(field_name, prefix)))
                if exact and expected not in values:
                    return False
                if not exact and not any(
                    str(expected).lower() in str(v).lower() for v in values
                ):
                    return False
            return True

        if "terms" in query:
            for field_name, expected in query["terms"].items():
                values = _as_list(_lookup(doc, _strip(field_name, prefix)))
                if not any(v in expected for v in values):
                    return False
            return True

        if "multi_match" in query:
            body = query["multi_match"]
            needle = str(body.get("query", "")).lower()
            return any(
                needle in str(v).lower()
                for field_name in body.get("fields", [])
                for v in _as_list(_lookup(doc, _strip(field_name, prefix)))
            )

        if "exists" in query:
            return _lookup(doc, _strip(query["exists"]["field"], prefix)) is not None

        if "nested" in query:
            nested = query["nested"]
            path = nested["path"]
            children = _as_list(_lookup(doc, _strip(path, prefix)))
            return any(
                isinstance(child, dict)
                and self._matches_query(child, nested.get("query", {}), path + ".")
                for child in children
            )

        if "bool" in query:
            bool_query = query["bool"]

            for must_clause in _as_list(bool_query.get("must", [])):
                if not self._matches_query(doc, must_clause, prefix):
                    return False

            for filter_clause in _as_list(bool_query.get("filter", [])):
                if not self._matches_query(doc, filter_clause, prefix):
                    return False

            for must_not_clause in _as_list(bool_query.get("must_not", [])):
                if self._matches_query(doc, must_not_clause, prefix):
                    return False

            should = _as_list(bool_query.get("should", []))
            if should:
                required = bool_query.get("minimum_should_match")
                if required is None:
                    scoring_context = bool_query.get("must") or bool_query.get("filter")
                    required = 0 if scoring_context else 1
                matched = sum(
                    1 for clause in should if self._matches_query(doc, clause, prefix)
                )
                if matched < int(required):
                    return False

            return True

        return True

    async def index_document(
        self,
        index: str,
        doc_id: str,
        document: Dict[str, Any],
        refresh: bool = False,
    ) -> Dict[str, Any]:
        created = doc_id not in self._indices.setdefault(index, {})
        self._indices[index][doc_id] = copy.deepcopy(document)
        return {"_index": index, "_id": doc_id, "result": "created" if created else "updated"}

    async def delete_document(
        self, index: str, doc_id: str, refresh: bool = False
    ) -> Dict[str, Any]:
        if index in self._indices and doc_id in self._indices[index]:
            del self._indices[index][doc_id]
            return {"_index": index, "_id": doc_id, "result": "deleted"}
        return {"_index": index, "_id": doc_id, "result": "not_found"}

    async def bulk_index(
        self,
        index: str,
        documents: Sequence[Tuple[str, Dict[str, Any]]],
        refresh: bool = False,
    ) -> Tuple[int, List[Any]]:
        for doc_id, document in documents:
            await self.index_document(index, doc_id, document)
        return len(documents), []

    async def create_index(self, index: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self._indices.setdefault(index, {})
        if body and "mappings" in body:
            self._mappings[index] = copy.deepcopy(body["mappings"])
        return {"acknowledged": True, "index": index}

    async def delete_index(self, index: str) -> Dict[str, Any]:
        self._indices.pop(index, None)
        self._mappings.pop(index, None)
        return {"acknowledged": True}

    async def index_exists(self, index: str) -> bool:
        return index in self._indices

    async def put_mapping(self, index: str, properties: Mapping[str, Any]) -> Dict[str, Any]:
        self._indices.setdefault(index, {})
        current = self._mappings.setdefault(index, {"properties": {}})
        body = mapping_body(properties)
        current["_source"] = body["_source"]
        current.setdefault("properties", {}).update(body["properties"])
        return {"acknowledged": True}

    def get_mapping(self, index: str) -> Dict[str, Any]:
        return copy.deepcopy(self._mappings.get(index, {}))

    async def close(self) -> None:
        self._indices.clear()
        self._mappings.clear()


def _lookup(doc: Any, dotted: str) -> Any:
    value = doc
    for part in dotted.split("."):
        if isinstance(value, dict):
            value = value.get(part)
        else:
            return None
    return value


def _strip(field_name: str, prefix: str) -> str:
    if prefix and field_name.startswith(prefix):
        return field_name[len(prefix):]
    return field_name


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _sort_key(value: Any) -> Tuple[int, Any]:
    # Missing values sort lowest.
    if value is None:
        return (0, "")
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, str(value))


def create_gateway(settings: Optional[Settings] = None) -> ElasticsearchGateway:
    """Build an Elasticsearch gateway from settings.

    Raises:
        ConfigurationError: on malformed hosts or incomplete credentials.
    """
    settings = settings or get_settings()
    return ElasticsearchGateway(settings.connection())
