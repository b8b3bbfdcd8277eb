"""Unit tests for execute() and the execution gateways."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock


def _seed(gateway):
    docs = [
        ("1", {"status": 1, "title": "Oak desk lamp", "tags": [{"name": "oak"}, {"name": "lamp"}]}),
        ("2", {"status": 1, "title": "Walnut table", "tags": [{"name": "walnut"}]}),
        ("3", {"status": 0, "title": "Oak shelf", "tags": [{"name": "oak"}]}),
        ("4", {"status": 1, "title": "Steel lamp", "tags": [{"name": "steel"}], "deleted_at": "2024-01-01"}),
    ]
    asyncio.run(gateway.bulk_index("products", docs))


def _ids(response):
    return [hit["_id"] for hit in response["hits"]["hits"]]


class TestExecute:
    """Test the terminal execute call."""

    def test_missing_index_fails_without_gateway_call(self, builder, gateway):
        """Test execute without an index raises and never reaches the gateway."""
        from esbuilder.errors import ErrorCode, InvalidArgumentError

        builder.where("status", 1)

        with pytest.raises(InvalidArgumentError) as exc_info:
            asyncio.run(builder.execute())

        assert exc_info.value.code is ErrorCode.MISSING_REQUIRED_FIELD
        assert "[index]" in str(exc_info.value)
        assert gateway.calls == []
        assert builder.consumed is False

    def test_missing_index_with_mock_gateway(self):
        """Test the search method of a mocked gateway is never awaited."""
        from esbuilder.builder import QueryBuilder
        from esbuilder.errors import InvalidArgumentError

        mock_gateway = MagicMock()
        mock_gateway.search = AsyncMock()

        with pytest.raises(InvalidArgumentError):
            asyncio.run(QueryBuilder(mock_gateway).limit(5).get())

        mock_gateway.search.assert_not_awaited()

    def test_execute_forwards_snapshot(self, builder, gateway):
        """Test the gateway receives the compiled params."""
        expected = builder.set_index("products").where("status", 1).limit(5).get_params()

        asyncio.run(builder.execute())

        assert gateway.calls == [expected]

    def test_execute_filters(self, builder, gateway):
        """Test an executed query against the in-memory gateway."""
        _seed(gateway)

        response = asyncio.run(
            builder.set_index("products")
            .where("status", 1)
            .where_null("deleted_at")
            .keywords("lamp", ["title"])
            .execute()
        )

        assert _ids(response) == ["1"]
        assert response["hits"]["total"]["value"] == 1

    def test_execute_function_score_ranking(self, builder, gateway):
        """Test nested scoring functions rank documents matching more values."""
        _seed(gateway)

        response = asyncio.run(
            builder.set_index("products")
            .where_nested("tags", "tags.name", ["oak", "lamp"])
            .functions()
            .order_by({"_score": "desc"})
            .execute()
        )

        hits = response["hits"]["hits"]
        assert hits[0]["_score"] == 4.0
        assert [h["_id"] for h in hits] == ["1", "3"]
        assert hits[1]["_score"] == 2.0

    def test_execute_pagination(self, builder, gateway):
        """Test from/size windowing."""
        _seed(gateway)

        response = asyncio.run(
            builder.set_index("products").order_by("title", "asc").fetch_page(2, page=2)
        )

        assert _ids(response) == ["4", "2"]
        assert response["hits"]["total"]["value"] == 4

    def test_builder_consumed_after_execute(self, builder):
        """Test a builder cannot be reused after execute."""
        from esbuilder.errors import BuilderStateError

        builder.set_index("products")
        asyncio.run(builder.execute())

        assert builder.consumed is True
        with pytest.raises(BuilderStateError):
            builder.where("status", 1)
        with pytest.raises(BuilderStateError):
            asyncio.run(builder.execute())

    def test_snapshot_still_available_after_execute(self, builder):
        """Test reading the compiled query after execute is allowed."""
        builder.set_index("products").where("status", 1)
        asyncio.run(builder.execute())

        assert builder.snapshot().index == "products"


class TestExecutionModes:
    """Test raw and decoded return shapes."""

    def test_raw_mode_returns_gateway_object(self):
        """Test RAW returns exactly what the gateway returned."""
        from esbuilder.builder import QueryBuilder
        from esbuilder.constants import ExecutionMode

        sentinel = object()
        mock_gateway = MagicMock()
        mock_gateway.search = AsyncMock(return_value=sentinel)

        result = asyncio.run(
            QueryBuilder(mock_gateway, mode=ExecutionMode.RAW).set_index("p").execute()
        )

        assert result is sentinel

    def test_decoded_mode_unwraps_body(self):
        """Test DECODED returns a plain copy of a response body."""
        from esbuilder.builder import QueryBuilder

        body = {"hits": {"total": {"value": 0, "relation": "eq"}, "hits": []}}
        response = MagicMock()
        response.body = body
        mock_gateway = MagicMock()
        mock_gateway.search = AsyncMock(return_value=response)

        result = asyncio.run(QueryBuilder(mock_gateway, mode="decoded").set_index("p").execute())

        assert result == body
        assert result is not body
        assert isinstance(result, dict)

    def test_decode_response_plain_dict(self):
        """Test decode_response copies plain dicts."""
        from esbuilder.builder import decode_response

        data = {"a": [1, 2]}
        decoded = decode_response(data)

        assert decoded == data
        assert decoded["a"] is not data["a"]

    def test_timeout_is_forwarded(self):
        """Test execute passes the timeout to the gateway."""
        from esbuilder.builder import QueryBuilder

        mock_gateway = MagicMock()
        mock_gateway.search = AsyncMock(return_value={})

        asyncio.run(QueryBuilder(mock_gateway).set_index("p").execute(timeout=2.5))

        _, kwargs = mock_gateway.search.call_args
        assert kwargs["timeout"] == 2.5


class TestElasticsearchGateway:
    """Test the gateway over a mocked AsyncElasticsearch client."""

    def _client(self):
        client = MagicMock()
        client.search = AsyncMock(return_value={"hits": {"hits": []}})
        client.options = MagicMock(return_value=client)
        client.indices = MagicMock()
        client.indices.create = AsyncMock(return_value={"acknowledged": True})
        client.indices.delete = AsyncMock(return_value={"acknowledged": True})
        client.indices.exists = AsyncMock(return_value=True)
        client.indices.put_mapping = AsyncMock(return_value={"acknowledged": True})
        client.index = AsyncMock(return_value={"result": "created"})
        client.delete = AsyncMock(return_value={"result": "deleted"})
        client.close = AsyncMock()
        return client

    def test_search_passes_index_and_body(self):
        """Test search splits params into index and body."""
        from esbuilder.client import ElasticsearchGateway

        client = self._client()
        gateway = ElasticsearchGateway(client=client)
        params = {"index": "products", "body": {"query": {"match_all": {}}}}

        asyncio.run(gateway.search(params))

        client.search.assert_awaited_once_with(
            index="products", body={"query": {"match_all": {}}}
        )
        client.options.assert_not_called()

    def test_search_timeout_uses_options(self):
        """Test a timeout goes through client.options."""
        from esbuilder.client import ElasticsearchGateway

        client = self._client()
        gateway = ElasticsearchGateway(client=client)

        asyncio.run(gateway.search({"index": "p", "body": {}}, timeout=3))

        client.options.assert_called_once_with(request_timeout=3)

    def test_search_errors_propagate_unchanged(self):
        """Test client errors reach the caller as-is."""
        from elasticsearch import ConnectionError as ESConnectionError

        from esbuilder.client import ElasticsearchGateway

        error = ESConnectionError("connection refused")
        client = self._client()
        client.search = AsyncMock(side_effect=error)
        gateway = ElasticsearchGateway(client=client)

        with pytest.raises(ESConnectionError) as exc_info:
            asyncio.run(gateway.search({"index": "p", "body": {}}))

        assert exc_info.value is error

    def test_builder_surfaces_gateway_errors(self):
        """Test execute does not wrap gateway errors."""
        from elasticsearch import ConnectionError as ESConnectionError

        from esbuilder.builder import QueryBuilder
        from esbuilder.client import ElasticsearchGateway
        from esbuilder.errors import GatewayError

        client = self._client()
        client.search = AsyncMock(side_effect=ESConnectionError("down"))
        builder = QueryBuilder(ElasticsearchGateway(client=client)).set_index("p")

        with pytest.raises(GatewayError):
            asyncio.run(builder.execute())

    def test_put_mapping_enables_source(self):
        """Test put_mapping sends types with _source enabled."""
        from esbuilder.client import ElasticsearchGateway

        client = self._client()
        gateway = ElasticsearchGateway(client=client)

        asyncio.run(gateway.put_mapping("products", {"title": "text", "status": "integer"}))

        client.indices.put_mapping.assert_awaited_once_with(
            index="products",
            body={
                "_source": {"enabled": True},
                "properties": {"title": {"type": "text"}, "status": {"type": "integer"}},
            },
        )

    def test_document_operations(self):
        """Test upsert, delete and index lifecycle calls."""
        from esbuilder.client import ElasticsearchGateway

        client = self._client()
        gateway = ElasticsearchGateway(client=client)

        asyncio.run(gateway.index_document("p", "1", {"a": 1}))
        asyncio.run(gateway.delete_document("p", "1", refresh=True))
        asyncio.run(gateway.create_index("p"))
        assert asyncio.run(gateway.index_exists("p")) is True
        asyncio.run(gateway.delete_index("p"))

        client.index.assert_awaited_once_with(index="p", id="1", document={"a": 1}, refresh=False)
        client.delete.assert_awaited_once_with(index="p", id="1", refresh="wait_for")
        client.indices.create.assert_awaited_once_with(index="p", body=None)
        client.indices.delete.assert_awaited_once_with(index="p")

    def test_close(self):
        """Test close releases the client."""
        from esbuilder.client import ElasticsearchGateway

        client = self._client()
        gateway = ElasticsearchGateway(client=client)

        asyncio.run(gateway.close())

        client.close.assert_awaited_once()
        assert gateway._client is None


class TestInMemoryGateway:
    """Test the in-memory gateway."""

    def test_index_get_delete(self, gateway):
        """Test upsert then delete."""
        first = asyncio.run(gateway.index_document("idx", "d1", {"a": 1}))
        second = asyncio.run(gateway.index_document("idx", "d1", {"a": 2}))
        deleted = asyncio.run(gateway.delete_document("idx", "d1"))
        missing = asyncio.run(gateway.delete_document("idx", "d1"))

        assert first["result"] == "created"
        assert second["result"] == "updated"
        assert deleted["result"] == "deleted"
        assert missing["result"] == "not_found"

    def test_should_semantics(self, gateway):
        """Test should needs one match unless must/filter is present."""
        _seed(gateway)

        only_should = asyncio.run(gateway.search({
            "index": "products",
            "body": {"query": {"bool": {"should": [{"term": {"status": 0}}]}}},
        }))
        with_filter = asyncio.run(gateway.search({
            "index": "products",
            "body": {"query": {"bool": {
                "filter": [{"term": {"status": 1}}],
                "should": [{"term": {"status": 0}}],
            }}},
        }))

        assert _ids(only_should) == ["3"]
        assert sorted(_ids(with_filter)) == ["1", "2", "4"]

    def test_min_score(self, gateway):
        """Test min_score drops low-scoring hits."""
        _seed(gateway)

        response = asyncio.run(gateway.search({
            "index": "products",
            "body": {
                "query": {"function_score": {
                    "query": {"match_all": {}},
                    "functions": [{"filter": {"term": {"status": 0}}, "weight": 3}],
                    "score_mode": "sum",
                    "boost_mode": "replace",
                }},
                "min_score": 1,
            },
        }))

        assert _ids(response) == ["3"]

    def test_unknown_index(self, gateway):
        """Test searching a missing index returns no hits."""
        response = asyncio.run(gateway.search({"index": "nope", "body": {}}))

        assert response["hits"]["total"]["value"] == 0


class TestCreateBuilder:
    """Test the settings-driven factory."""

    def test_settings_applied(self, gateway):
        """Test execution mode and strictness come from settings."""
        from esbuilder.builder import create_builder
        from esbuilder.config import Settings
        from esbuilder.constants import ExecutionMode

        settings = Settings(EXECUTION_MODE="decoded", STRICT_OPERATORS=True)
        builder = create_builder(settings, gateway=gateway)

        assert builder.mode is ExecutionMode.DECODED
        assert builder.strict is True

    def test_default_gateway_from_settings(self):
        """Test a gateway is built from the configured connection."""
        from esbuilder.builder import create_builder
        from esbuilder.client import ElasticsearchGateway
        from esbuilder.config import Settings

        builder = create_builder(Settings(HOST="es1,es2:9201", PORT=9300))

        assert isinstance(builder._gateway, ElasticsearchGateway)
        assert builder._gateway.config.hosts == ["http://es1:9300", "http://es2:9201"]

    def test_bad_host_fails_at_construction(self):
        """Test a malformed host is reported before any query is built."""
        from esbuilder.builder import create_builder
        from esbuilder.config import Settings
        from esbuilder.errors import ConfigurationError, ErrorCode

        with pytest.raises(ConfigurationError) as exc_info:
            create_builder(Settings(HOST="ftp://es1"))

        assert exc_info.value.code is ErrorCode.CONFIG_INVALID

    def test_lazy_gateway_on_execute(self, monkeypatch):
        """Test a builder without a gateway builds one from the environment."""
        from esbuilder import builder as builder_module
        from esbuilder.builder import QueryBuilder

        fake = MagicMock()
        fake.search = AsyncMock(return_value={"hits": {"hits": []}})
        monkeypatch.setattr(builder_module, "create_gateway", lambda: fake)

        result = asyncio.run(QueryBuilder().set_index("p").execute())

        assert result == {"hits": {"hits": []}}
        fake.search.assert_awaited_once()

    def test_config_error_leaves_builder_open(self, monkeypatch):
        """Test a malformed connection does not consume the builder."""
        from esbuilder.builder import QueryBuilder
        from esbuilder.errors import ConfigurationError

        monkeypatch.setenv("ESBUILDER_HOST", "ftp://bad")
        builder = QueryBuilder().set_index("products")

        with pytest.raises(ConfigurationError):
            asyncio.run(builder.execute())

        assert builder.consumed is False
        builder.where("status", 1)
        assert builder.get_params()["body"]["query"]["bool"]["filter"] == [
            {"term": {"status": 1}}
        ]


class TestCancellation:
    """Test task cancellation during execute."""

    def test_cancel_propagates(self):
        """Test cancelling execute while the search is pending raises CancelledError."""
        from esbuilder.builder import QueryBuilder

        async def scenario():
            started = asyncio.Event()

            async def blocking_search(params, timeout=None):
                started.set()
                await asyncio.Event().wait()

            mock_gateway = MagicMock()
            mock_gateway.search = blocking_search
            builder = QueryBuilder(mock_gateway).set_index("products")

            task = asyncio.ensure_future(builder.execute())
            await started.wait()
            task.cancel()

            with pytest.raises(asyncio.CancelledError):
                await task
            return builder

        builder = asyncio.run(scenario())

        assert builder.consumed is True
