"""
Connection sources accepted by Lock.

A Lock either builds its own command connection (from a URL or keyword
parameters) and closes it on shutdown, or borrows a caller's client and leaves
it open. Subscriptions always run on a dedicated pub/sub connection taken from
the command client's pool, since a subscribed connection cannot issue other
commands.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Union
from redis.asyncio import Redis

from ..common.config.models import RedisConfig
from ..errors import ConfigError


@dataclass(frozen=True)
class ConnectionString:
    url: str


@dataclass(frozen=True)
class ConnectionOptions:
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: RedisConfig) -> "ConnectionOptions":
        return cls(config.connection_params())


@dataclass(frozen=True)
class ExistingConnection:
    client: Redis


ConnectionSource = Union[ConnectionString, ConnectionOptions, ExistingConnection]


@dataclass
class CommandConnection:
    client: Redis
    owned: bool


def open_command_connection(source: ConnectionSource) -> CommandConnection:
    if source is None:
        raise ConfigError("must provide a redis connection source to Lock")

    if isinstance(source, ConnectionString):
        if not source.url:
            raise ConfigError("redis connection string is empty")
        return CommandConnection(Redis.from_url(source.url), owned=True)

    if isinstance(source, ConnectionOptions):
        return CommandConnection(Redis(**source.params), owned=True)

    if isinstance(source, ExistingConnection):
        if source.client is None:
            raise ConfigError("existing redis connection is None")
        return CommandConnection(source.client, owned=False)

    raise ConfigError(
        f"unsupported connection source {type(source).__name__}; "
        "use ConnectionString, ConnectionOptions or ExistingConnection"
    )
