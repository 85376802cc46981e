from typing import Any, Dict, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class RedisConfig(BaseSettings):
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    username: Optional[str] = None
    password: Optional[str] = None
    pool_size: Optional[int] = None
    ssl: bool = False

    @property
    def url(self) -> str:
        scheme = "rediss" if self.ssl else "redis"
        auth = ""
        if self.password:
            auth = f"{self.username or ''}:{self.password}@"
        return f"{scheme}://{auth}{self.host}:{self.port}/{self.db}"

    def connection_params(self) -> Dict[str, Any]:
        """Keyword arguments for redis.asyncio.Redis"""
        params: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "db": self.db,
            "username": self.username,
            "password": self.password,
            "ssl": self.ssl,
        }
        if self.pool_size:
            params["max_connections"] = self.pool_size
        return params

    model_config = SettingsConfigDict(env_prefix="REDIS_")

class LoggingConfig(BaseSettings):
    level: str = "INFO"
    format: str = "json"

    model_config = SettingsConfigDict(env_prefix="LOG_")

class RelockConfig(BaseSettings):
    namespace: str = "lock"
    # milliseconds
    lock_ttl: int = 30000
    wait_ttl: int = 0

    redis: RedisConfig = RedisConfig()
    logging: LoggingConfig = LoggingConfig()

    model_config = SettingsConfigDict(env_prefix="RELOCK_", env_file=".env", env_nested_delimiter="__")
