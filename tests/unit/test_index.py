"""Unit tests for index and document administration."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock


class TestIndexMapping:
    """Test index mapping construction."""

    def test_field_mapping(self):
        """Test a field with analyzer and sub-properties."""
        from esbuilder.index import FieldMapping, FieldType

        mapping = FieldMapping(
            name="tags",
            field_type=FieldType.NESTED,
            properties={"name": FieldMapping(name="name", field_type="keyword")},
        )

        assert mapping.to_dict() == {
            "type": "nested",
            "properties": {"name": {"type": "keyword"}},
        }
        assert FieldMapping("title", FieldType.TEXT, analyzer="english").to_dict() == {
            "type": "text",
            "analyzer": "english",
        }

    def test_index_body(self):
        """Test the create-index body enables _source and carries settings."""
        from esbuilder.index import FieldType, IndexMapping

        mapping = IndexMapping(number_of_shards=1, number_of_replicas=0)
        mapping.add_field("title", FieldType.TEXT).add_field("status", "integer")

        assert mapping.to_dict() == {
            "mappings": {
                "_source": {"enabled": True},
                "properties": {
                    "title": {"type": "text"},
                    "status": {"type": "integer"},
                },
            },
            "settings": {"index": {"number_of_shards": 1, "number_of_replicas": 0}},
        }

    def test_from_types(self):
        """Test building from a name-to-type schema."""
        from esbuilder.index import IndexMapping

        mapping = IndexMapping.from_types({"price": "float", "created_at": "date"})

        assert mapping.properties() == {
            "price": {"type": "float"},
            "created_at": {"type": "date"},
        }
        assert "settings" not in mapping.to_dict()

    def test_unknown_type_rejected(self):
        """Test an unknown field type is rejected."""
        from esbuilder.index import IndexMapping

        with pytest.raises(ValueError):
            IndexMapping.from_types({"x": "not-a-type"})


class TestMappingBody:
    """Test the put-mapping document."""

    def test_source_enabled(self):
        """Test type names expand and _source is enabled."""
        from esbuilder.client import mapping_body

        body = mapping_body({"title": "text", "tags": {"type": "nested"}})

        assert body == {
            "_source": {"enabled": True},
            "properties": {"title": {"type": "text"}, "tags": {"type": "nested"}},
        }


class TestIndexManager:
    """Test IndexManager against the in-memory gateway."""

    def test_create_index_once(self, gateway):
        """Test a second create with exist_ok reports False."""
        from esbuilder.index import IndexManager, IndexMapping

        manager = IndexManager(gateway, prefix="test_")
        mapping = IndexMapping.from_types({"title": "text"})

        assert asyncio.run(manager.create_index("products", mapping)) is True
        assert asyncio.run(manager.create_index("products", mapping)) is False
        assert asyncio.run(manager.index_exists("products")) is True
        assert asyncio.run(gateway.index_exists("test_products")) is True
        assert gateway.get_mapping("test_products")["properties"] == {
            "title": {"type": "text"}
        }

    def test_put_mapping(self, gateway):
        """Test fields are merged into the index mapping."""
        from esbuilder.index import IndexManager

        manager = IndexManager(gateway)
        asyncio.run(manager.put_mapping("products", {"title": "text"}))
        asyncio.run(manager.put_mapping("products", {"status": "integer"}))

        assert gateway.get_mapping("products") == {
            "_source": {"enabled": True},
            "properties": {"title": {"type": "text"}, "status": {"type": "integer"}},
        }

    def test_document_writes_are_searchable(self, gateway, builder):
        """Test upserted documents come back from a built query."""
        from esbuilder.index import IndexManager

        manager = IndexManager(gateway)
        success, errors = asyncio.run(manager.bulk_upsert(
            "products",
            [("1", {"status": 1}), ("2", {"status": 1}), ("3", {"status": 0})],
        ))
        asyncio.run(manager.delete("products", "2"))
        asyncio.run(manager.upsert("products", "4", {"status": 1}))

        response = asyncio.run(builder.set_index("products").where("status", 1).execute())

        assert (success, errors) == (3, [])
        assert sorted(h["_id"] for h in response["hits"]["hits"]) == ["1", "4"]

    def test_delete_index(self, gateway):
        """Test deleting an index."""
        from esbuilder.index import IndexManager

        manager = IndexManager(gateway)
        asyncio.run(manager.create_index("products"))
        asyncio.run(manager.delete_index("products"))

        assert asyncio.run(manager.index_exists("products")) is False

    def test_create_without_exist_check(self):
        """Test exist_ok=False skips the existence check."""
        from esbuilder.index import IndexManager

        mock_gateway = MagicMock()
        mock_gateway.index_exists = AsyncMock(return_value=True)
        mock_gateway.create_index = AsyncMock(return_value={"acknowledged": True})

        created = asyncio.run(IndexManager(mock_gateway).create_index("p", exist_ok=False))

        assert created is True
        mock_gateway.index_exists.assert_not_awaited()
        mock_gateway.create_index.assert_awaited_once_with("p", None)
