"""Index and document administration.

Thin layer over a ``SearchGateway`` for the calls that are not searches:
index lifecycle, mappings and document writes. Gateway errors propagate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from esbuilder.client import SearchGateway

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    """Elasticsearch field types."""
    TEXT = "text"
    KEYWORD = "keyword"
    LONG = "long"
    INTEGER = "integer"
    FLOAT = "float"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT = "object"
    NESTED = "nested"
    GEO_POINT = "geo_point"


@dataclass
class FieldMapping:
    """Field mapping configuration."""
    name: str
    field_type: FieldType
    analyzer: Optional[str] = None
    properties: Optional[Dict[str, "FieldMapping"]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Elasticsearch mapping dict."""
        mapping: Dict[str, Any] = {"type": FieldType(self.field_type).value}

        if self.analyzer:
            mapping["analyzer"] = self.analyzer

        if self.properties:
            mapping["properties"] = {
                name: f.to_dict() for name, f in self.properties.items()
            }

        return mapping


@dataclass
class IndexMapping:
    """Complete index mapping."""
    fields: Dict[str, FieldMapping] = field(default_factory=dict)
    number_of_shards: Optional[int] = None
    number_of_replicas: Optional[int] = None

    def add_field(
        self,
        name: str,
        field_type: Union[FieldType, str],
        **kwargs: Any,
    ) -> "IndexMapping":
        """Add a field to the mapping."""
        self.fields[name] = FieldMapping(
            name=name, field_type=FieldType(field_type), **kwargs
        )
        return self

    @classmethod
    def from_types(cls, types: Mapping[str, Union[FieldType, str]]) -> "IndexMapping":
        """Mapping from a plain field-name to type-name schema."""
        mapping = cls()
        for name, field_type in types.items():
            mapping.add_field(name, field_type)
        return mapping

    def properties(self) -> Dict[str, Any]:
        return {name: f.to_dict() for name, f in self.fields.items()}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Elasticsearch index body."""
        body: Dict[str, Any] = {
            "mappings": {
                "_source": {"enabled": True},
                "properties": self.properties(),
            },
        }

        settings: Dict[str, Any] = {}
        if self.number_of_shards is not None:
            settings["number_of_shards"] = self.number_of_shards
        if self.number_of_replicas is not None:
            settings["number_of_replicas"] = self.number_of_replicas
        if settings:
            body["settings"] = {"index": settings}

        return body


class IndexManager:
    """Index lifecycle and document writes through a gateway."""

    def __init__(self, gateway: SearchGateway, prefix: str = ""):
        self._gateway = gateway
        self._prefix = prefix

    def _full_index_name(self, name: str) -> str:
        """Get full index name with prefix."""
        return f"{self._prefix}{name}" if self._prefix else name

    async def create_index(
        self,
        name: str,
        mapping: Optional[IndexMapping] = None,
        exist_ok: bool = True,
    ) -> bool:
        """Create an index.

        Returns:
            True if created, False if it already existed and ``exist_ok``
        """
        full_name = self._full_index_name(name)

        if exist_ok and await self._gateway.index_exists(full_name):
            logger.debug("Index %s already exists", full_name)
            return False

        await self._gateway.create_index(
            full_name, mapping.to_dict() if mapping else None
        )
        return True

    async def delete_index(self, name: str) -> Any:
        return await self._gateway.delete_index(self._full_index_name(name))

    async def index_exists(self, name: str) -> bool:
        return await self._gateway.index_exists(self._full_index_name(name))

    async def put_mapping(
        self,
        name: str,
        fields: Union[IndexMapping, Mapping[str, Union[FieldType, str]]],
    ) -> Any:
        """Add fields to an index mapping."""
        if not isinstance(fields, IndexMapping):
            fields = IndexMapping.from_types(fields)
        return await self._gateway.put_mapping(
            self._full_index_name(name), fields.properties()
        )

    async def upsert(
        self,
        name: str,
        doc_id: str,
        document: Dict[str, Any],
        refresh: bool = False,
    ) -> Any:
        return await self._gateway.index_document(
            self._full_index_name(name), doc_id, document, refresh=refresh
        )

    async def delete(self, name: str, doc_id: str, refresh: bool = False) -> Any:
        return await self._gateway.delete_document(
            self._full_index_name(name), doc_id, refresh=refresh
        )

    async def bulk_upsert(
        self,
        name: str,
        documents: Sequence[Tuple[str, Dict[str, Any]]],
        refresh: bool = False,
    ) -> Tuple[int, List[Any]]:
        """Bulk upsert; partial failures come back in the error list as-is."""
        return await self._gateway.bulk_index(
            self._full_index_name(name), documents, refresh=refresh
        )
