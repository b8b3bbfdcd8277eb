"""Connection configuration and runtime settings.

``Settings`` reads ``ESBUILDER_*`` environment variables (and an optional
``.env`` file); ``ConnectionConfig`` is the validated connection block the
gateway is built from.
"""

from __future__ import annotations

from typing import Any, List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

from esbuilder.constants import ExecutionMode
from esbuilder.errors import ConfigurationError

DEFAULT_PORT = 9200


def normalize_host(host: str, default_port: int = DEFAULT_PORT) -> str:
    """Validate one host URI and fill in scheme and port when missing.

    Raises:
        ConfigurationError: if the host is not a usable http(s) URI.
    """
    raw = (host or "").strip()
    if not raw:
        raise ConfigurationError("Invalid configuration: empty host.")

    candidate = raw if "://" in raw else f"http://{raw}"
    parsed = urlsplit(candidate)

    if parsed.scheme not in ("http", "https"):
        raise ConfigurationError(
            f"Invalid configuration: unsupported scheme in host [{raw}].",
            details={"host": raw},
        )
    if not parsed.hostname:
        raise ConfigurationError(
            f"Invalid configuration: malformed host [{raw}].",
            details={"host": raw},
        )
    try:
        port = parsed.port
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid configuration: bad port in host [{raw}].",
            details={"host": raw},
        ) from e

    netloc = parsed.netloc if port is not None else f"{parsed.netloc}:{default_port}"
    return f"{parsed.scheme}://{netloc}{parsed.path.rstrip('/')}"


def _invalid_values(error: ValidationError) -> ConfigurationError:
    problems = [
        f"{'.'.join(str(part) for part in item['loc']) or 'value'}: {item['msg']}"
        for item in error.errors()
    ]
    return ConfigurationError(
        f"Invalid configuration: {'; '.join(problems)}.",
        details={"errors": problems},
    )


class ConnectionConfig(BaseModel):
    """Validated connection parameters for the search cluster."""

    hosts: List[str] = ["http://localhost:9200"]
    username: Optional[str] = None
    password: Optional[str] = None
    api_key: Optional[str] = None
    request_timeout: Optional[float] = None

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise _invalid_values(e) from e

    @field_validator("hosts")
    @classmethod
    def _check_hosts(cls, hosts: List[str]) -> List[str]:
        if not hosts:
            raise ConfigurationError("Invalid configuration: no hosts given.")
        return [normalize_host(h) for h in hosts]

    @model_validator(mode="after")
    def _check_auth(self) -> "ConnectionConfig":
        if bool(self.username) != bool(self.password):
            raise ConfigurationError(
                "Invalid configuration: username and password must be set together."
            )
        return self

    @property
    def basic_auth(self) -> Optional[tuple]:
        if self.username and self.password:
            return (self.username, self.password)
        return None


class Settings(BaseSettings):
    """Runtime settings for the query builder."""

    HOST: str = "localhost"  # comma-separated for several nodes
    PORT: int = DEFAULT_PORT
    USERNAME: Optional[str] = None
    PASSWORD: Optional[str] = None
    API_KEY: Optional[str] = None
    REQUEST_TIMEOUT: Optional[float] = None

    EXECUTION_MODE: ExecutionMode = ExecutionMode.RAW
    STRICT_OPERATORS: bool = False
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = {
        "env_prefix": "ESBUILDER_",
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }

    def __init__(self, **values: Any):
        try:
            super().__init__(**values)
        except ValidationError as e:
            raise _invalid_values(e) from e

    def connection(self) -> ConnectionConfig:
        """Build the connection block; ``PORT`` fills hosts without one."""
        hosts = [
            normalize_host(h, default_port=self.PORT)
            for h in self.HOST.split(",")
            if h.strip()
        ]
        return ConnectionConfig(
            hosts=hosts,
            username=self.USERNAME,
            password=self.PASSWORD,
            api_key=self.API_KEY,
            request_timeout=self.REQUEST_TIMEOUT,
        )


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings_cache
    _settings_cache = None
