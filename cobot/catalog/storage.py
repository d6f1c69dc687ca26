"""
Storage backends for the agent's action catalog.

The catalog lives in a directory laid out as::

    agent-config.yaml     agent definition and the list of enabled actions
    actions/*.yaml        one file per action
    plugins/              plugin configuration files
    local/                never committed (logs, plugin binaries, cache)

``GitStorage`` reads a git working tree and derives the catalog version from
``HEAD``; ``DirectoryStorage`` is a plain directory without history.
"""

import fnmatch
import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Protocol, Union, runtime_checkable

import yaml

from ..core.errors import NotFoundError, StorageUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "v0.0.0"
AGENT_CONFIG_FILE = "agent-config.yaml"
ACTIONS_DIR = "actions"
ACTIONS_GLOB = "actions/*.yaml"
LOCAL_DIRS = ["actions", "plugins", "local", "local/logs", "local/plugins", "local/cache"]
GITIGNORE_ENTRY = "local/*"


@runtime_checkable
class Storage(Protocol):
    """Contract the catalog and the cache manager rely on."""

    root: Path

    def exists(self, path: str) -> bool: ...

    def read_bytes(self, path: str) -> bytes: ...

    def write_bytes(self, path: str, data: bytes) -> None: ...

    def list_changed(self, pattern: str) -> List[str]: ...

    def current_version_id(self) -> str: ...

    def has_uncommitted_changes(self) -> bool: ...


def match_pattern(pattern: str, path: str) -> bool:
    """Glob match where ``*`` spans any characters, ``/`` included."""
    return fnmatch.fnmatchcase(path, pattern)


class DirectoryStorage:
    """Catalog stored in a plain directory; no history, never dirty."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        if not self.root.is_dir():
            raise StorageUnavailableError(
                f"storage path is not a directory: {self.root}",
                operation='open',
                path=str(self.root)
            )

    def _resolve(self, path: str) -> Path:
        return self.root / path

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def read_bytes(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(f"file not found: {path}", path=path) from e
        except OSError as e:
            raise StorageUnavailableError(
                f"cannot read {path}: {e}", operation='read', path=path
            ) from e

    def write_bytes(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageUnavailableError(
                f"cannot write {path}: {e}", operation='write', path=path
            ) from e

    def list_changed(self, pattern: str) -> List[str]:
        return []

    def current_version_id(self) -> str:
        return DEFAULT_VERSION

    def has_uncommitted_changes(self) -> bool:
        return False


class GitStorage(DirectoryStorage):
    """
    Catalog stored in a git working tree.

    The caller owns the repository; this class never commits or configures it.
    """

    def __init__(self, root: Union[str, Path]):
        super().__init__(root)
        result = self._git("rev-parse", "--show-prefix")
        if result is None or result.returncode != 0:
            raise StorageUnavailableError(
                f"storage path is not a valid git repository: {self.root}",
                operation='open',
                path=str(self.root)
            )
        # Status paths are relative to the repository top level
        self._prefix = result.stdout.strip()

    def _git(self, *args: str) -> Optional[subprocess.CompletedProcess]:
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.root,
                capture_output=True,
                text=True
            )
        except (subprocess.SubprocessError, FileNotFoundError) as e:
            logger.error(f"Failed to run git {' '.join(args)}: {e}")
            return None

    def current_version_id(self) -> str:
        result = self._git("rev-parse", "--verify", "--quiet", "HEAD")
        if result is None:
            raise StorageUnavailableError(
                "git is not available", operation='version', path=str(self.root)
            )
        if result.returncode != 0:
            logger.info(f"Repository has no commits, using default version ({DEFAULT_VERSION})")
            return DEFAULT_VERSION
        return result.stdout.strip()

    def _status_paths(self) -> List[str]:
        # -z leaves paths unquoted and separates records with NUL
        result = self._git("status", "--porcelain", "-z", "--untracked-files=all", "--", ".")
        if result is None or result.returncode != 0:
            raise StorageUnavailableError(
                "cannot read git status", operation='status', path=str(self.root)
            )

        paths = []
        records = iter(result.stdout.split("\0"))
        for record in records:
            if len(record) < 4:
                continue
            status, path = record[:2], record[3:]
            # Renames and copies are followed by a record holding the source path
            if status[0] in "RC" or status[1] in "RC":
                next(records, None)
            if self._prefix and path.startswith(self._prefix):
                path = path[len(self._prefix):]
            paths.append(path)
        return paths

    def list_changed(self, pattern: str) -> List[str]:
        return [path for path in self._status_paths() if match_pattern(pattern, path)]

    def has_uncommitted_changes(self) -> bool:
        return bool(self._status_paths())


def open_storage(root: Union[str, Path], use_git: bool = True) -> DirectoryStorage:
    """Open ``root`` as git storage, or as a plain directory when ``use_git`` is off."""
    if use_git:
        return GitStorage(root)
    return DirectoryStorage(root)


def init_layout(root: Union[str, Path], agent_name: str = "default") -> List[str]:
    """
    Create the catalog directory structure where missing.

    Returns the relative paths that were created or updated.
    """
    root = Path(root)
    created: List[str] = []
    try:
        root.mkdir(parents=True, exist_ok=True)

        config_file = root / AGENT_CONFIG_FILE
        if not config_file.exists():
            logger.info("Agent configuration file not found, creating a default one")
            default = {
                "agent": {
                    "name": agent_name,
                    "allow_reboot": False,
                    "allow_privileged": False,
                },
                "actions": [],
            }
            config_file.write_text(yaml.safe_dump(default, sort_keys=False), encoding="utf-8")
            created.append(AGENT_CONFIG_FILE)

        for rel in LOCAL_DIRS:
            folder = root / rel
            if not folder.exists():
                folder.mkdir(parents=True)
                logger.info(f"Created {rel} folder")
                created.append(rel)

        gitignore = root / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text(f"{GITIGNORE_ENTRY}\n", encoding="utf-8")
            created.append(".gitignore")
        else:
            content = gitignore.read_text(encoding="utf-8")
            if GITIGNORE_ENTRY not in content:
                if content and not content.endswith("\n"):
                    content += "\n"
                gitignore.write_text(f"{content}{GITIGNORE_ENTRY}\n", encoding="utf-8")
                created.append(".gitignore")
    except OSError as e:
        raise StorageUnavailableError(
            f"cannot initialize storage layout: {e}", operation='init', path=str(root)
        ) from e

    return created
