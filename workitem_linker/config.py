"""Configuration management for workitem-linker using YAML files."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml

from workitem_linker.activation import ACTIVE_STATE
from workitem_linker.errors import ConfigurationError, RepositoryConfigurationError
from workitem_linker.models import RepositoryRef
from workitem_linker.relations import DEFAULT_FAN_OUT_LIMIT

logger = structlog.get_logger()

CONFIG_DIR_NAME = ".workitem-linker"

KNOWN_KEYS = frozenset(
    {
        "backend",
        "azure.organization",
        "azure.project",
        "azure.repository",
        "github.organization",
        "github.owner",
        "github.repository",
        "github.token",
        "branch.prefix",
        "branch.source",
        "relations.fan_out",
        "cache.default_branch_ttl",
        "activate.state",
    }
)
SECRET_KEYS = frozenset({"github.token"})


class Config:
    """Configuration manager using YAML file storage.

    Supports both local (repository-level) and global (user-level) configuration.
    Local config is stored in .workitem-linker/config.yaml in the current directory.
    Global config is stored in ~/.workitem-linker/config.yaml.

    When reading, values are looked up in local config first, then global config.
    """

    def __init__(self, use_global: bool = False, config_dir: Path | None = None) -> None:
        """Initialize configuration manager.

        Args:
            use_global: If True, use global config only. If False, use local config with global fallback.
            config_dir: Custom directory to store config file (overrides use_global)
        """
        if config_dir is not None:
            self.config_dir = Path(config_dir)
            self.is_global = use_global
        elif use_global:
            self.config_dir = Path.home() / CONFIG_DIR_NAME
            self.is_global = True
        else:
            self.config_dir = Path.cwd() / CONFIG_DIR_NAME
            self.is_global = False

        self.config_file = self.config_dir / "config.yaml"

        self._config: dict[str, Any] = self._load()

        # Local config falls back to the global file
        self._global_config: dict[str, Any] = {}
        if not self.is_global:
            global_config_file = Path.home() / CONFIG_DIR_NAME / "config.yaml"
            if global_config_file.exists() and global_config_file != self.config_file:
                try:
                    with open(global_config_file, "r") as f:
                        self._global_config = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    logger.warning("Failed to load global config", error=str(e))

        logger.debug("Config initialized", config_file=str(self.config_file), is_global=self.is_global)

    def _load(self) -> dict[str, Any]:
        """Load configuration from YAML file.

        Returns:
            Configuration dictionary
        """
        if not self.config_file.exists():
            logger.debug("Config file does not exist, initializing empty config")
            return {}

        try:
            with open(self.config_file, "r") as f:
                config = yaml.safe_load(f) or {}
                logger.debug("Config loaded successfully", keys=list(config.keys()))
                return config
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load config", error=str(e))
            raise ConfigurationError(f"Failed to load config from {self.config_file}: {e}") from e

    def _save(self) -> None:
        """Save configuration to YAML file, creating its directory on first write."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)
            logger.debug("Config saved successfully")
        except OSError as e:
            logger.error("Failed to save config", error=str(e))
            raise ConfigurationError(f"Failed to save config to {self.config_file}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        For local config, checks local config first, then falls back to global config.

        Args:
            key: Configuration key
            default: Default value if key doesn't exist

        Returns:
            Configuration value or default
        """
        if key in self._config:
            logger.debug("Getting config value from local", key=key)
            return self._config[key]

        if not self.is_global and key in self._global_config:
            logger.debug("Getting config value from global", key=key)
            return self._global_config[key]

        logger.debug("Config value not found", key=key)
        return default

    def set(self, key: str, value: str) -> None:
        """Set a configuration value.

        Args:
            key: Configuration key
            value: Configuration value
        """
        logger.debug("Setting config value", key=key)
        self._config[key] = value
        self._save()

    def unset(self, key: str) -> None:
        """Remove a configuration value.

        Args:
            key: Configuration key
        """
        logger.debug("Unsetting config value", key=key)
        if key in self._config:
            del self._config[key]
            self._save()

    def list(self) -> dict[str, Any]:
        """List all configuration settings.

        For local config, merges global config with local config (local takes precedence).

        Returns:
            Dictionary of all config settings
        """
        if self.is_global:
            logger.debug("Listing global config values", count=len(self._config))
            return self._config.copy()

        merged = self._global_config.copy()
        merged.update(self._config)
        logger.debug("Listing merged config values", count=len(merged))
        return merged


def get_config(use_global: bool = False) -> Config:
    """Get a configuration instance.

    Args:
        use_global: If True, return global config. If False, return local config with global fallback.

    Returns:
        Config instance
    """
    return Config(use_global=use_global)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class LinkerSettings:
    """Settings threaded into every operation that talks to the remote service."""

    backend: str = "azure"
    organization: str | None = None
    project: str | None = None
    repository: str | None = None
    branch_prefix: str = ""
    source_branch: str | None = None
    fan_out_limit: int = DEFAULT_FAN_OUT_LIMIT
    default_branch_ttl: float | None = None
    github_token: str | None = None
    active_state: str = ACTIVE_STATE

    @classmethod
    def from_config(cls, config: Config) -> "LinkerSettings":
        """Build settings from a configuration instance.

        The GitHub backend uses the repository owner as the project and
        github.com as the organization.
        """
        backend = _optional_str(config.get("backend")) or "azure"

        if backend == "github":
            organization = _optional_str(config.get("github.organization")) or "https://github.com"
            project = _optional_str(config.get("github.owner"))
            repository = _optional_str(config.get("github.repository"))
        else:
            organization = _optional_str(config.get("azure.organization"))
            project = _optional_str(config.get("azure.project"))
            repository = _optional_str(config.get("azure.repository"))

        fan_out = config.get("relations.fan_out", DEFAULT_FAN_OUT_LIMIT)
        try:
            fan_out_limit = int(fan_out)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"relations.fan_out must be an integer, got {fan_out!r}") from e
        if fan_out_limit < 1:
            raise ConfigurationError(f"relations.fan_out must be positive, got {fan_out_limit}")

        ttl_value = _optional_str(config.get("cache.default_branch_ttl"))
        try:
            default_branch_ttl = float(ttl_value) if ttl_value is not None else None
        except ValueError as e:
            raise ConfigurationError(f"cache.default_branch_ttl must be a number of seconds, got {ttl_value!r}") from e

        return cls(
            backend=backend,
            organization=organization,
            project=project,
            repository=repository,
            branch_prefix=_optional_str(config.get("branch.prefix")) or "",
            source_branch=_optional_str(config.get("branch.source")),
            fan_out_limit=fan_out_limit,
            default_branch_ttl=default_branch_ttl,
            github_token=_optional_str(config.get("github.token")),
            active_state=_optional_str(config.get("activate.state")) or ACTIVE_STATE,
        )

    def repository_ref(self) -> RepositoryRef:
        """Return the configured repository; it defaults to the project name.

        Raises:
            RepositoryConfigurationError: Organization or project is missing
        """
        if not self.organization or not self.project:
            if self.backend == "github":
                hint = "  wil config set github.owner <owner>\n  wil config set github.repository <repo>"
            else:
                hint = "  wil config set azure.organization <url>\n  wil config set azure.project <project>"
            raise RepositoryConfigurationError(f"Organization and project not configured. Set them using:\n{hint}")
        return RepositoryRef(
            organization=self.organization,
            project=self.project,
            repository=self.repository or self.project,
        )
