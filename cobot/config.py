"""
Configuration for the cobot agent.

Two documents are handled here:

* ``agent-config.yaml`` inside the catalog storage, describing the agent and
  listing the enabled actions (:class:`AgentConfig`);
* runtime settings (storage path, language, similarity threshold, logging),
  read from an optional YAML file and ``COBOT_*`` environment variables
  (:class:`Settings`).
"""

import logging
import os
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

from .core.errors import ConfigInvalidError

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "english"
DEFAULT_MINIMUM_SCORE = 0.5
DEFAULT_CACHE_DIR = "local/cache"
ENV_PREFIX = "COBOT_"


@dataclass
class AgentConfig:
    """Agent definition stored as ``agent-config.yaml``."""

    name: str = "default"
    allow_reboot: bool = False
    allow_privileged: bool = False
    actions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent": {
                "name": self.name,
                "allow_reboot": self.allow_reboot,
                "allow_privileged": self.allow_privileged,
            },
            "actions": list(self.actions),
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False)

    @classmethod
    def from_dict(cls, data: Any, source: Optional[str] = None) -> "AgentConfig":
        if not isinstance(data, dict):
            raise ConfigInvalidError("agent configuration must be a mapping", source=source)

        agent = data.get("agent") or {}
        if not isinstance(agent, dict):
            raise ConfigInvalidError("'agent' must be a mapping", source=source, field="agent")

        name = agent.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigInvalidError("agent name is empty", source=source, field="agent.name")

        actions = data.get("actions") or []
        if not isinstance(actions, list) or not all(isinstance(a, str) for a in actions):
            raise ConfigInvalidError(
                "'actions' must be a list of action names", source=source, field="actions"
            )

        return cls(
            name=name,
            allow_reboot=bool(agent.get("allow_reboot", False)),
            allow_privileged=bool(agent.get("allow_privileged", False)),
            actions=list(actions),
        )

    @classmethod
    def from_yaml(cls, data: Union[bytes, str], source: Optional[str] = None) -> "AgentConfig":
        try:
            parsed = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise ConfigInvalidError(f"error parsing agent configuration: {e}", source=source) from e
        return cls.from_dict(parsed, source=source)


@dataclass
class Settings:
    """Runtime settings for the agent and its similarity matcher."""

    storage_path: Path = field(default_factory=lambda: Path.cwd() / ".data")
    language: str = DEFAULT_LANGUAGE
    minimum_score: float = DEFAULT_MINIMUM_SCORE
    log_file: Optional[Path] = None
    log_level: str = "INFO"
    use_git: bool = True
    cache_dir: str = DEFAULT_CACHE_DIR

    @property
    def cache_root(self) -> Path:
        cache_dir = Path(self.cache_dir)
        if cache_dir.is_absolute():
            return cache_dir
        return Path(self.storage_path) / cache_dir

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["storage_path"] = str(self.storage_path)
        data["log_file"] = str(self.log_file) if self.log_file else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigInvalidError(
                f"unknown settings: {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
            )

        values = dict(data)
        if values.get("storage_path") is not None:
            values["storage_path"] = Path(values["storage_path"])
        if values.get("log_file"):
            values["log_file"] = Path(values["log_file"])
        if "minimum_score" in values:
            try:
                values["minimum_score"] = float(values["minimum_score"])
            except (TypeError, ValueError) as e:
                raise ConfigInvalidError(
                    f"minimum_score must be a number, got {values['minimum_score']!r}",
                    field="minimum_score"
                ) from e
        return cls(**{k: v for k, v in values.items() if v is not None})

    def validate(self) -> None:
        """Raise ConfigInvalidError on the first invalid value."""
        if not 0.0 <= self.minimum_score <= 1.0:
            raise ConfigInvalidError(
                f"minimum_score must be between 0.0 and 1.0, got {self.minimum_score}",
                field="minimum_score"
            )
        if not self.language or not self.language.strip():
            raise ConfigInvalidError("language must not be empty", field="language")
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigInvalidError(f"unknown log level: {self.log_level}", field="log_level")

    def apply_env_overrides(self, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """Apply ``COBOT_*`` environment overrides in place."""
        environ = os.environ if environ is None else environ

        if env_path := environ.get(f"{ENV_PREFIX}STORAGE_PATH"):
            self.storage_path = Path(env_path)

        if env_language := environ.get(f"{ENV_PREFIX}LANGUAGE"):
            self.language = env_language

        if env_score := environ.get(f"{ENV_PREFIX}MINIMUM_SCORE"):
            try:
                self.minimum_score = float(env_score)
                logger.debug(f"Applied env override: minimum_score={self.minimum_score}")
            except ValueError:
                logger.warning(f"Invalid env value for minimum_score: {env_score}")

        if env_log_file := environ.get(f"{ENV_PREFIX}LOG_FILE"):
            self.log_file = Path(env_log_file)

        if env_level := environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
            self.log_level = env_level.upper()

        return self

    def display(self, console: Optional[Console] = None) -> None:
        """Print the settings as a highlighted YAML panel."""
        console = console or Console()
        yaml_str = yaml.safe_dump(self.to_dict(), default_flow_style=False)
        syntax = Syntax(yaml_str, "yaml", theme="monokai", line_numbers=False)
        console.print(Panel(syntax, title="[bold cyan]cobot settings[/bold cyan]", border_style="cyan"))


def load_settings(path: Optional[Path] = None,
                  environ: Optional[Dict[str, str]] = None,
                  **overrides: Any) -> Settings:
    """
    Build settings from defaults, an optional YAML file, env vars and overrides.

    Args:
        path: YAML file with a top-level ``settings`` mapping
        environ: Environment to read (defaults to ``os.environ``)
        **overrides: Explicit values, e.g. from CLI flags; ``None`` is ignored

    Returns:
        Validated settings
    """
    data: Dict[str, Any] = {}
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                parsed = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigInvalidError(f"cannot read settings file: {e}", source=str(path)) from e
        except yaml.YAMLError as e:
            raise ConfigInvalidError(f"error parsing settings file: {e}", source=str(path)) from e

        section = parsed.get("settings", parsed) if isinstance(parsed, dict) else None
        if not isinstance(section, dict):
            raise ConfigInvalidError("settings file must contain a mapping", source=str(path))
        data.update(section)

    settings = Settings.from_dict(data)
    settings.apply_env_overrides(environ)

    for key, value in overrides.items():
        if value is None:
            continue
        if not hasattr(settings, key):
            raise ConfigInvalidError(f"unknown setting: {key}", field=key)
        if key in ("storage_path", "log_file"):
            value = Path(value)
        setattr(settings, key, value)

    settings.validate()
    return settings
