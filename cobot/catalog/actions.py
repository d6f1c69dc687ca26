"""
Action definitions and the catalog that loads them from storage.

Each enabled action lives in ``actions/<name>.yaml``::

    name: restart-server
    description: restart the web server
    args: [service]
    exec:
      plugin: systemd
      parameters:
        unit: nginx
        timeout: 30
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Union

import yaml

from ..config import AgentConfig
from ..core.errors import ConfigInvalidError, NotFoundError
from .storage import ACTIONS_DIR, AGENT_CONFIG_FILE, Storage

logger = logging.getLogger(__name__)

Scalar = Union[str, int, float, bool, None]
_SCALAR_TYPES = (str, int, float, bool, type(None))


def action_path(name: str) -> str:
    return f"{ACTIONS_DIR}/{name}.yaml"


def action_name_from_path(path: str) -> str:
    name = path
    if name.startswith(f"{ACTIONS_DIR}/"):
        name = name[len(ACTIONS_DIR) + 1:]
    if name.endswith(".yaml"):
        name = name[:-len(".yaml")]
    return name


@dataclass(frozen=True)
class ActionExecution:
    """How an action runs: a plugin name and its scalar parameters."""
    plugin: str = ""
    parameters: Dict[str, Scalar] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[dict], source: Optional[str] = None) -> "ActionExecution":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigInvalidError("'exec' must be a mapping", source=source, field="exec")

        plugin = data.get("plugin") or ""
        if not isinstance(plugin, str):
            raise ConfigInvalidError("'exec.plugin' must be a string", source=source, field="exec.plugin")

        raw = data.get("parameters") or {}
        if not isinstance(raw, dict):
            raise ConfigInvalidError(
                "'exec.parameters' must be a mapping", source=source, field="exec.parameters"
            )

        parameters: Dict[str, Scalar] = {}
        for key, value in raw.items():
            if not isinstance(key, str):
                raise ConfigInvalidError(
                    f"parameter name {key!r} is not a string", source=source, field="exec.parameters"
                )
            if not isinstance(value, _SCALAR_TYPES):
                raise ConfigInvalidError(
                    f"parameter '{key}' must be a scalar, got {type(value).__name__}",
                    source=source,
                    field=f"exec.parameters.{key}"
                )
            parameters[key] = value

        return cls(plugin=plugin, parameters=parameters)


@dataclass(frozen=True)
class Action:
    """A named action the agent can run."""
    name: str
    description: str
    args: Tuple[str, ...] = ()
    exec: ActionExecution = field(default_factory=ActionExecution)

    @classmethod
    def from_dict(cls, data: object, source: Optional[str] = None) -> "Action":
        if not isinstance(data, dict):
            raise ConfigInvalidError("action definition must be a mapping", source=source)

        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigInvalidError("action name is empty", source=source, field="name")

        description = data.get("description")
        if not isinstance(description, str):
            raise ConfigInvalidError("action description must be a string", source=source, field="description")

        args = data.get("args") or []
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise ConfigInvalidError("'args' must be a list of strings", source=source, field="args")

        return cls(
            name=name,
            description=description,
            args=tuple(args),
            exec=ActionExecution.from_dict(data.get("exec"), source=source),
        )

    @classmethod
    def from_yaml(cls, data: Union[bytes, str], source: Optional[str] = None) -> "Action":
        try:
            parsed = yaml.safe_load(data)
        except yaml.YAMLError as e:
            raise ConfigInvalidError(f"error parsing action file: {e}", source=source) from e
        return cls.from_dict(parsed, source=source)

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"name": self.name, "description": self.description}
        if self.args:
            data["args"] = list(self.args)
        if self.exec.plugin or self.exec.parameters:
            data["exec"] = {"plugin": self.exec.plugin, "parameters": dict(self.exec.parameters)}
        return data


class ActionCatalog:
    """
    Ordered set of actions loaded from storage.

    Entry order follows ``agent-config.yaml``; an entry's position is the id
    stored in the similarity index.  Actions whose file is missing or
    malformed are skipped with a warning.
    """

    def __init__(self, storage: Storage, agent_config: Optional[AgentConfig] = None):
        self.storage = storage
        self.agent_config = agent_config or self.load_agent_config(storage)
        self._actions: Dict[str, Action] = {}
        self._names: List[str] = []
        self.skipped: Dict[str, str] = {}
        self._load()

    @staticmethod
    def load_agent_config(storage: Storage) -> AgentConfig:
        try:
            data = storage.read_bytes(AGENT_CONFIG_FILE)
        except NotFoundError:
            logger.info("Agent configuration file not found, using defaults")
            return AgentConfig()
        return AgentConfig.from_yaml(data, source=AGENT_CONFIG_FILE)

    def _load(self) -> None:
        for name in self.agent_config.actions:
            if name in self._actions:
                logger.warning(f"Action '{name}' listed twice, skipping duplicate")
                continue
            path = action_path(name)
            try:
                action = Action.from_yaml(self.storage.read_bytes(path), source=path)
            except NotFoundError:
                logger.warning(f"Action definition not found: {path}, skipping")
                self.skipped[name] = "not found"
                continue
            except ConfigInvalidError as e:
                logger.warning(f"Invalid action definition {path}: {e.message}, skipping")
                self.skipped[name] = e.message
                continue

            self._actions[name] = action
            self._names.append(name)

        logger.debug(f"Loaded {len(self._names)} actions ({len(self.skipped)} skipped)")

    @property
    def names(self) -> List[str]:
        return list(self._names)

    def get(self, name: str) -> Optional[Action]:
        return self._actions.get(name)

    def find_by_action_name(self, name: str) -> Optional[Action]:
        """Look up by the ``name`` field inside the definition."""
        for key in self._names:
            action = self._actions[key]
            if action.name == name:
                return action
        return None

    def entries(self) -> List[Tuple[str, str]]:
        """Return ``(name, description)`` pairs in catalog order."""
        return [(name, self._actions[name].description) for name in self._names]

    def descriptions(self) -> List[str]:
        return [self._actions[name].description for name in self._names]

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def __iter__(self) -> Iterator[Action]:
        return (self._actions[name] for name in self._names)
