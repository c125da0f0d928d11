"""
Application configuration management.

Settings are loaded from environment variables (or a `.env` file) and
validated once at startup. The repository propagation mapping is loaded from
a YAML file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from cherrybot.errors import ConfigError
from cherrybot.models.repo_config import RepoConfig, RepoTarget


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    # GitHub
    github_username: str
    github_user_email: str
    github_token: SecretStr
    github_webhook_secret: SecretStr
    github_bot_username: Optional[str] = None
    github_api_base: str = "https://api.github.com/repos"
    github_web_url: str = "https://github.com"
    github_api_version: str = "2022-11-28"
    github_user_agent: str = "cherry-bot"
    github_merged_action: str = "closed"
    github_merged_state: str = "closed"

    # GitCode
    gitcode_username: str
    gitcode_user_email: str
    gitcode_token: SecretStr
    gitcode_webhook_secret: SecretStr
    gitcode_bot_username: str
    gitcode_api_base: str = "https://api.gitcode.com/api/v5/repos"
    gitcode_web_url: str = "https://gitcode.com"
    gitcode_user_agent: str = "GitBot"
    gitcode_merged_action: str = "close"
    gitcode_merged_state: str = "closed"

    # Labels
    approval_label: str = "approval: ready"
    branch_label_prefix: str = "br:"

    # Propagation
    repo_config_path: str = "config.yaml"
    workspace_root: str = "workspaces"

    # Application
    log_level: str = "INFO"
    max_workers: int = 3
    http_timeout_seconds: float = 30.0


def load_settings(**overrides) -> Settings:
    """
    Build and validate settings.

    Args:
        **overrides: Explicit values that take precedence over the environment

    Returns:
        Validated settings

    Raises:
        ConfigError: If a required value is missing or invalid
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        # Field names only; values may be secrets.
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ConfigError(f"Invalid or missing settings: {', '.join(fields)}") from e


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return load_settings()


def load_repo_config(path: Union[str, Path]) -> RepoConfig:
    """
    Load the repository propagation mapping from a YAML file.

    Expected format:
        my-repo:
          target_repo: https://gitcode.com/org/my-repo.git
          namespace: org
          repo_name: my-repo

    Args:
        path: Path to the YAML file

    Returns:
        RepoConfig; empty when the file does not exist

    Raises:
        ConfigError: If the file cannot be parsed or an entry is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        return RepoConfig()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read repo config {config_path}: {e}") from e

    if raw is None:
        return RepoConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"Repo config {config_path} must be a mapping of repo name to target")

    targets = {}
    for repo_name, entry in raw.items():
        if not isinstance(entry, dict):
            raise ConfigError(f"Repo config entry '{repo_name}' must be a mapping")
        try:
            targets[str(repo_name)] = RepoTarget(**entry)
        except ValidationError as e:
            raise ConfigError(f"Invalid repo config entry '{repo_name}': {e}") from e

    return RepoConfig(targets=targets)
