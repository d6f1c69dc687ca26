"""
Shared fixtures: an in-memory catalog storage and a sample agent directory.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import pytest
import yaml

from cobot.catalog.storage import DEFAULT_VERSION, match_pattern
from cobot.core.errors import NotFoundError

SCENARIO_CORPUS = ["restart the server", "shut down the machine", "list running processes"]

SAMPLE_ACTIONS = {
    "restart-server": "restart the server",
    "shutdown": "shut down the machine",
    "list-processes": "list running processes",
}


class FakeStorage:
    """Storage double keeping files in a dict; ``changed`` drives dirty state."""

    def __init__(self, root: Path, files: Optional[Dict[str, bytes]] = None,
                 version: str = DEFAULT_VERSION):
        self.root = Path(root)
        self.files = dict(files or {})
        self.version = version
        self.changed: List[str] = []

    def exists(self, path: str) -> bool:
        return path in self.files

    def read_bytes(self, path: str) -> bytes:
        try:
            return self.files[path]
        except KeyError:
            raise NotFoundError(f"file not found: {path}", path=path)

    def write_bytes(self, path: str, data: bytes) -> None:
        self.files[path] = data

    def list_changed(self, pattern: str) -> List[str]:
        return [path for path in self.changed if match_pattern(pattern, path)]

    def current_version_id(self) -> str:
        return self.version

    def has_uncommitted_changes(self) -> bool:
        return bool(self.changed)


def action_yaml(name: str, description: str, **extra) -> bytes:
    data = {"name": name, "description": description}
    data.update(extra)
    return yaml.safe_dump(data, sort_keys=False).encode("utf-8")


def agent_config_yaml(actions: List[str], name: str = "default") -> bytes:
    data = {
        "agent": {"name": name, "allow_reboot": False, "allow_privileged": False},
        "actions": actions,
    }
    return yaml.safe_dump(data, sort_keys=False).encode("utf-8")


def write_agent_dir(root: Path, actions: Dict[str, str], name: str = "default") -> Path:
    """Write agent-config.yaml and one file per action under ``root``."""
    (root / "actions").mkdir(parents=True, exist_ok=True)
    (root / "agent-config.yaml").write_bytes(agent_config_yaml(list(actions), name=name))
    for action_name, description in actions.items():
        (root / "actions" / f"{action_name}.yaml").write_bytes(action_yaml(action_name, description))
    return root


@pytest.fixture
def fake_storage(tmp_path):
    files = {f"actions/{name}.yaml": action_yaml(name, desc) for name, desc in SAMPLE_ACTIONS.items()}
    files["agent-config.yaml"] = agent_config_yaml(list(SAMPLE_ACTIONS))
    return FakeStorage(tmp_path / "storage", files)


@pytest.fixture
def sample_entries():
    return list(SAMPLE_ACTIONS.items())


@pytest.fixture
def agent_dir(tmp_path):
    return write_agent_dir(tmp_path / "agent", SAMPLE_ACTIONS)


@pytest.fixture(autouse=True)
def reset_cobot_logger():
    """The CLI configures the ``cobot`` logger; undo it between tests."""
    yield
    logger = logging.getLogger("cobot")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.filters.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
