"""Configuration management for the rollout sidecar."""

from __future__ import annotations

import socket
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Compose derives the project name from the directory basename, so the
# default compose_dir of /deploy yields this project when no label is found.
FALLBACK_PROJECT = "deploy"


class Settings(BaseSettings):
    """Sidecar settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Deployment
    compose_dir: str = Field(default="/deploy", description="Compose project directory")
    app_service_name: str = Field(default="app", description="Managed compose service")
    app_container_name: str | None = Field(
        default=None,
        description=(
            "Container name of the managed service. Defaults to deploy-<service>, which "
            "only matches a compose file that sets container_name; compose v2 otherwise "
            "names it <project>-<service>-1, so set this to keep running-tag discovery working"
        ),
    )
    sidecar_container: str | None = Field(
        default=None, description="Name or id of this sidecar's own container"
    )
    compose_project: str | None = Field(
        default=None, description="Explicit compose project name"
    )
    image_repo: str = Field(default="ghcr.io/example/app", description="Image repository")
    docker_binary: str = Field(default="docker", description="Container runtime CLI")

    # Tag file
    tag_env_key: str = Field(default="APP_IMAGE_TAG", description="Image tag key in the env file")
    tag_file_name: str = Field(default=".env", description="Env file name inside compose_dir")

    # Health gate
    health_url: str = Field(default="http://app/health", description="Application health URL")
    health_timeout_seconds: float = Field(default=120.0, gt=0)
    health_interval_seconds: float = Field(default=3.0, ge=0)
    health_request_timeout_seconds: float = Field(default=5.0, gt=0)

    # Control surface
    listen_addr: str = Field(default=":8484", description="host:port to listen on")

    # Release registry (optional)
    release_repo: str | None = Field(default=None, description="GitHub repo as owner/name")
    github_api_base: str = Field(default="https://api.github.com")
    github_token: SecretStr | None = Field(default=None, description="GitHub API token")
    registry_tags_enabled: bool = Field(
        default=True, description="Serve image tags from the image_repo registry"
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def tag_file_path(self) -> Path:
        return Path(self.compose_dir) / self.tag_file_name

    @property
    def resolved_app_container(self) -> str:
        """Container name used for inspection and forced removal."""
        return self.app_container_name or f"{FALLBACK_PROJECT}-{self.app_service_name}"

    @property
    def resolved_sidecar_container(self) -> str:
        return self.sidecar_container or socket.gethostname()

    @property
    def listen_host_port(self) -> tuple[str, int]:
        """Split listen_addr into (host, port); an empty host binds all interfaces."""
        host, _, port = self.listen_addr.rpartition(":")
        return (host or "0.0.0.0", int(port))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
