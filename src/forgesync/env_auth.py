"""Environment-based token discovery.

The API token is read from the process environment, optionally after
loading a ``.env`` file through python-dotenv.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .logging import get_logger

DEFAULT_TOKEN_VARS = ("FORGESYNC_TOKEN", "GITEA_TOKEN", "GITEA_ACCESS_TOKEN")


@dataclass
class EnvAuthConfig:
    """Configuration for environment-based authentication."""

    load_dotenv: bool = True
    dotenv_path: str | None = None
    token_vars: tuple[str, ...] = field(default_factory=lambda: DEFAULT_TOKEN_VARS)


class EnvironmentAuthManager:
    """Finds the API token in environment variables and .env files."""

    def __init__(self, config: EnvAuthConfig):
        self.config = config
        self.logger = get_logger()
        self._dotenv_loaded = False
        if config.load_dotenv:
            self._load_dotenv()

    @property
    def dotenv_loaded(self) -> bool:
        return self._dotenv_loaded

    def _load_dotenv(self) -> None:
        candidates = [self.config.dotenv_path] if self.config.dotenv_path else []
        candidates += [".env", ".env.local"]
        for location in candidates:
            env_path = Path(location)
            if env_path.exists():
                load_dotenv(str(env_path))
                self._dotenv_loaded = True
                self.logger.debug(f"Loaded environment variables from {env_path}")
                return

    def get_token(self) -> str | None:
        for var in self.config.token_vars:
            token = os.getenv(var)
            if token:
                self.logger.debug(f"Found API token in {var}")
                return token
        self.logger.debug("No API token found in environment")
        return None

    def get_recommendations(self) -> list[str]:
        """Hints for finding a token; empty when one is already available."""
        if self.get_token():
            return []
        names = ", ".join(self.config.token_vars)
        recommendations = [f"Set one of {names}"]
        if self.dotenv_loaded:
            recommendations.append(f"Add {self.config.token_vars[0]}=your_token to the loaded .env file")
        elif self.config.load_dotenv:
            recommendations.append(f"Or create a .env file with {self.config.token_vars[0]}=your_token")
        return recommendations


def create_env_auth_manager(config: EnvAuthConfig | None = None) -> EnvironmentAuthManager:
    """Factory function to create environment authentication manager."""
    return EnvironmentAuthManager(config or EnvAuthConfig())


__all__ = [
    "DEFAULT_TOKEN_VARS",
    "EnvAuthConfig",
    "EnvironmentAuthManager",
    "create_env_auth_manager",
]
