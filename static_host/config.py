import json
from os import getenv
from pathlib import Path
from typing import Annotated, Any, Union
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from .errors import ConfigError

DEFAULT_CONFIG_NAME = 'static_host.json'


class DirectoryRule(BaseModel):
    model_config = ConfigDict(extra='forbid', frozen=True)

    path: str | None = None     # defaults to the prefix itself
    index: str = 'index.html'
    dir: bool = True            # list directories without an index file


class ProxyRule(BaseModel):
    model_config = ConfigDict(extra='forbid', frozen=True)

    proxy_to: str

    @field_validator('proxy_to')
    @classmethod
    def must_be_absolute(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ValueError(f'proxy_to must be an absolute http(s) URL, got {value!r}')
        return value


def _descriptor_kind(value: Any) -> str | None:
    if isinstance(value, dict):
        return 'proxy' if 'proxy_to' in value else 'directory'
    if isinstance(value, ProxyRule):
        return 'proxy'
    if isinstance(value, DirectoryRule):
        return 'directory'
    return None


RuleDescriptor = Annotated[
    Union[
        Annotated[ProxyRule, Tag('proxy')],
        Annotated[DirectoryRule, Tag('directory')],
    ],
    Discriminator(_descriptor_kind),
]

descriptor_adapter: TypeAdapter = TypeAdapter(RuleDescriptor)


class ServerSettings(BaseModel):
    host: str = '0.0.0.0'
    port: int = 8081
    proxy_timeout: float = 20.0
    log_level: str = 'INFO'

    @field_validator('log_level')
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def from_env(cls) -> 'ServerSettings':
        """Build settings from STATIC_HOST_* variables; unset ones keep the field defaults."""
        env = {
            'host': getenv('STATIC_HOST_HOST'),
            'port': getenv('STATIC_HOST_PORT'),
            'proxy_timeout': getenv('STATIC_HOST_PROXY_TIMEOUT'),
            'log_level': getenv('STATIC_HOST_LOG_LEVEL'),
        }
        try:
            return cls(**{k: v for k, v in env.items() if v is not None})
        except ValidationError as exc:
            raise ConfigError(f'invalid environment settings: {exc}') from exc


def read_config_file(path: Path) -> dict[str, Any]:
    """
    Read a JSON configuration file mapping URL prefixes to rule descriptors.
    :return: the decoded top-level object, in file order
    """
    try:
        with path.open(encoding='utf-8') as fp:
            data = json.load(fp)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f'cannot read config {path}: {exc}') from exc

    if not isinstance(data, dict):
        raise ConfigError(f'config {path} must be a JSON object, got {type(data).__name__}')
    return data

