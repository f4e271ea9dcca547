"""Configuration management for codeloop."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from codeloop.exceptions import ConfigurationError


# Paths
DEFAULT_CONFIG_PATH = Path("~/.codeloop/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "config.yaml"


class ModelConfig(BaseModel):
    """Model configuration."""

    provider: str = "ollama"
    model: str = "qwen3-coder-next"
    temperature: float = 0.7
    max_tokens: int = 32000
    api_key: str = ""
    base_url: str = ""


class AgentConfig(BaseModel):
    """Agent loop configuration."""

    max_turns: int = 40
    system_prompt: str = ""


class BashToolConfig(BaseModel):
    """Bash tool configuration."""

    timeout_ms: int = 30_000
    dangerous_patterns: list[str] = []


class ToolsConfig(BaseModel):
    """Tools configuration."""

    enabled: list[str] = [
        "read_file",
        "glob",
        "grep",
        "tree",
        "write_file",
        "edit_file",
        "bash",
    ]
    bash: BashToolConfig = Field(default_factory=BashToolConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: Literal["console", "json"] = "console"


class Config(BaseSettings):
    """Main configuration for codeloop."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="CODELOOP_",
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
        # YAML values arrive as init kwargs; environment variables win over them.
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

        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid config file {config_path}: {e}") from e

        return cls(**data)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML; pydantic-settings layers env vars on top."""
        return cls.from_yaml(path)

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def default_system_prompt(cwd: Path | str) -> str:
    """Build the default system prompt for a working directory."""
    return f"""You are a coding agent running in the user's terminal. You help with software engineering tasks.

## Available Tools
- **read_file**: Read file contents (with optional offset/limit for large files)
- **glob**: Find files by pattern (e.g. "**/*.py")
- **grep**: Search file contents with regex
- **tree**: Show the directory structure
- **write_file**: Create or overwrite files (requires approval)
- **edit_file**: Make surgical edits by replacing exact string matches (requires approval)
- **bash**: Run shell commands (requires approval)

## Guidelines
- Be concise. Don't explain what you're about to do unless the task is complex.
- Use tools to read files before modifying them; never guess at file contents.
- For multi-step tasks, briefly outline your plan, then execute.
- Match the existing code style and conventions.
- After making changes, verify they work (run tests, type checks, etc.) when appropriate.
- If a tool call fails, diagnose the issue and try a different approach.

Current working directory: {cwd}"""


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
