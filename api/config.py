"""
API Configuration
Environment variables and settings for the FastAPI backend.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache

from fleet.config import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_VERSION,
    DEFAULT_NAME_PREFIX,
    DEFAULT_MAX_AGENTS,
    ServerConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    debug_mode: bool = False

    # Game server target (used until a persisted config exists)
    mc_host: str = DEFAULT_HOST
    mc_port: int = DEFAULT_PORT
    mc_version: str = DEFAULT_VERSION
    agent_name_prefix: str = DEFAULT_NAME_PREFIX
    max_agents: int = DEFAULT_MAX_AGENTS
    auto_reconnect: bool = True

    # Where the server target is persisted ("" disables persistence)
    config_path: str = "data/server_config.json"

    # "module:callable" returning an AgentSession for (config, name)
    session_backend: str = "fleet.session.simulated:create_session"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def server_config(self) -> ServerConfig:
        """Default target server snapshot from the environment."""
        return ServerConfig.parse({
            "host": self.mc_host,
            "port": self.mc_port,
            "version": self.mc_version,
            "agent_name_prefix": self.agent_name_prefix,
            "max_agents": self.max_agents,
            "auto_reconnect": self.auto_reconnect,
        })


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
