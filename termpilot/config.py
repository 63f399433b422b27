"""Configuration management for termpilot."""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.termpilot/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "termpilot.yaml"

DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 16384


class APIConfig(BaseModel):
    """Messages API connection settings."""

    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    api_version: str = "2023-06-01"
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout: float = 600.0


class ToolsConfig(BaseModel):
    """Tools configuration."""

    require_confirmation: list[str] = ["Bash", "Write", "Edit", "MultiEdit"]
    bash_default_timeout_ms: int = 120_000
    bash_max_timeout_ms: int = 600_000


class ConversationConfig(BaseModel):
    """Tool-use loop configuration."""

    max_iterations: int = 25


class WorkspaceConfig(BaseModel):
    """Working directory the tools operate in (empty means launch cwd)."""

    path: str = ""


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for termpilot."""

    api: APIConfig = Field(default_factory=APIConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="TERMPILOT_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; environment must win over them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load configuration: YAML, then env vars, then the API key fallback."""
        config = cls.from_yaml(path)
        if not config.api.api_key:
            config.api.api_key = os.environ.get("ANTHROPIC_API_KEY", "")
        return config

    def resolved_work_dir(self, runtime_base: Path | str | None = None) -> Path:
        """Resolve the working directory, anchoring relative paths to runtime base/cwd."""
        anchor = Path(runtime_base).expanduser().resolve() if runtime_base is not None else Path.cwd().resolve()
        if not self.workspace.path:
            return anchor
        raw = Path(self.workspace.path).expanduser()
        if raw.is_absolute():
            return raw.resolve()
        return (anchor / raw).resolve()


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
