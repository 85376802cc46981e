from .models import RelockConfig, RedisConfig, LoggingConfig
from pathlib import Path
from typing import Optional, Union
import tomllib

def _deep_update(base: dict, updates: dict) -> dict:
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def load_config(path: Optional[Union[str, Path]] = None) -> RelockConfig:
    """
    Build a RelockConfig from the environment, overlaid with a TOML file.

    Without an explicit path, ``relock.toml`` in the working directory is used
    when present. Settings may sit at the top level of the file or under a
    ``[relock]`` table.
    """
    if path is None:
        candidate = Path.cwd() / "relock.toml"
        if not candidate.exists():
            return RelockConfig()
        path = candidate

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    if isinstance(raw.get("relock"), dict):
        raw = raw["relock"]

    base = RelockConfig().model_dump()
    merged = _deep_update(base, raw)
    return RelockConfig.model_validate(merged)


settings = load_config()

def get_settings() -> RelockConfig:
    return settings

def update_settings(new_settings: RelockConfig):
    global settings
    settings = new_settings
