import os

import pytest


_ENV_VARS_TO_ISOLATE = [
    "ESBUILDER_HOST",
    "ESBUILDER_PORT",
    "ESBUILDER_USERNAME",
    "ESBUILDER_PASSWORD",
    "ESBUILDER_API_KEY",
    "ESBUILDER_REQUEST_TIMEOUT",
    "ESBUILDER_EXECUTION_MODE",
    "ESBUILDER_STRICT_OPERATORS",
    "ESBUILDER_DEBUG",
    "ESBUILDER_LOG_LEVEL",
    "ESBUILDER_LOG_JSON",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables and cached settings between tests."""
    from esbuilder.config import reset_settings

    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    reset_settings()
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
        reset_settings()


@pytest.fixture
def gateway():
    from esbuilder.client import InMemoryGateway

    return InMemoryGateway()


@pytest.fixture
def builder(gateway):
    from esbuilder.builder import QueryBuilder

    return QueryBuilder(gateway)
