from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import yaml

from .gitea_rest import DEFAULT_API_URL


class ConfigError(RuntimeError):
    pass


@dataclass
class ForgeConfig:
    version: int
    source_file: Path
    endpoint: str
    token: str | None
    repository: str | None
    clone_submodules: bool
    git_workdir: Path
    git_clone: bool
    http_timeout: float
    http_cache: bool
    retry_attempts: int
    retry_base_sleep: float
    # Logging configuration
    logging_json_enabled: bool
    logging_level: str
    # Environment authentication configuration
    env_auth_load_dotenv: bool
    env_auth_dotenv_path: str | None


def _resolve_env_var(value: Any) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith('$'):
        resolved = os.getenv(value[1:])
        return resolved if resolved else None
    return value


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f'Section "{name}" must be a mapping')
    return cast(dict[str, Any], value)


def load_config(path: str | Path) -> ForgeConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f'Configuration file not found: {p}')
    try:
        raw = yaml.safe_load(p.read_text()) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f'Invalid YAML in {p}: {exc}') from exc
    if not isinstance(raw, dict):
        raise ConfigError(f'Configuration root must be a mapping: {p}')

    platform = _section(raw, 'platform')
    repo = _section(raw, 'repository')
    git = _section(raw, 'git')
    http = _section(raw, 'http')
    retry = _section(raw, 'retry')
    logging_config = _section(raw, 'logging')
    env_auth = _section(raw, 'environment')

    workdir = Path(git.get('workdir', '.forgesync/repo'))
    if not workdir.is_absolute():
        workdir = p.parent / workdir

    return ForgeConfig(
        version=int(raw.get('version', 1)),
        source_file=p,
        endpoint=_resolve_env_var(platform.get('endpoint')) or DEFAULT_API_URL,
        token=_resolve_env_var(platform.get('token')),
        repository=_resolve_env_var(repo.get('name')),
        clone_submodules=bool(repo.get('clone_submodules', False)),
        git_workdir=workdir,
        git_clone=bool(git.get('clone', False)),
        http_timeout=float(http.get('timeout', 30)),
        http_cache=bool(http.get('cache', True)),
        retry_attempts=int(retry.get('attempts', 3)),
        retry_base_sleep=float(retry.get('base_sleep', 0.5)),
        logging_json_enabled=bool(logging_config.get('json_enabled', False)),
        logging_level=str(logging_config.get('level', 'INFO')),
        env_auth_load_dotenv=bool(env_auth.get('load_dotenv', True)),
        env_auth_dotenv_path=env_auth.get('dotenv_path'),
    )


__all__ = ['ConfigError', 'ForgeConfig', 'load_config']
