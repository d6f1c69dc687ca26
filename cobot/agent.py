"""
Agent handle: owns the action catalog and the loaded matcher snapshot.

All state lives on an :class:`AgentContext` instance.  The catalog and the
snapshot built from it are held in one immutable :class:`AgentState`.
Queries read that state once; :meth:`AgentContext.reload` builds a new one
under a lock and swaps it in, so readers never wait on a rebuild.
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

from .catalog.actions import Action, ActionCatalog
from .catalog.storage import Storage, open_storage
from .config import Settings
from .core.cache import CacheManager, MatcherSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedAction:
    """An action name with its similarity score."""
    name: str
    score: float


@dataclass(frozen=True)
class AgentState:
    """
    A catalog and the snapshot built from it.

    Published as one object so a reader never pairs index positions from one
    build with the catalog of another.
    """
    catalog: ActionCatalog
    snapshot: Optional[MatcherSnapshot] = None

    def rank(self, text: str, minimum_score: float) -> List[RankedAction]:
        if self.snapshot is None:
            raise RuntimeError("agent is not initialized, call initialize() first")
        return [RankedAction(name, score) for name, score in self.snapshot.rank(text, minimum_score)]

    def resolve(self, text: str, minimum_score: float) -> Optional[Action]:
        action = self.catalog.get(text) or self.catalog.find_by_action_name(text)
        if action is not None:
            return action

        ranked = self.rank(text, minimum_score)
        if not ranked:
            return None
        return self.catalog.get(ranked[0].name)


class AgentContext:
    """
    Explicit handle replacing process-wide agent state.

    Args:
        settings: Runtime settings (storage path, language, threshold)
        storage: Catalog storage; opened from ``settings`` when omitted
        catalog: Preloaded catalog; read from ``storage`` when omitted
    """

    def __init__(self, settings: Settings,
                 storage: Optional[Storage] = None,
                 catalog: Optional[ActionCatalog] = None):
        self.settings = settings
        if storage is None:
            storage = open_storage(settings.storage_path, use_git=settings.use_git)
        self.storage = storage
        if catalog is None:
            catalog = ActionCatalog(self.storage)
        self.cache = CacheManager(self.storage, settings.cache_root, settings.language)

        self._state = AgentState(catalog)
        self._rebuild_lock = threading.Lock()

    @property
    def catalog(self) -> ActionCatalog:
        return self._state.catalog

    @property
    def name(self) -> str:
        return self.catalog.agent_config.name

    @property
    def state(self) -> AgentState:
        """Current catalog and snapshot; read once per query."""
        state = self._state
        if state.snapshot is None:
            raise RuntimeError("agent is not initialized, call initialize() first")
        return state

    @property
    def snapshot(self) -> MatcherSnapshot:
        return self.state.snapshot

    @property
    def initialized(self) -> bool:
        return self._state.snapshot is not None

    def initialize(self) -> "AgentContext":
        """Load or build the matcher for the current catalog version."""
        if not self.initialized:
            self.reload(reload_catalog=False)
        return self

    def reload(self, reload_catalog: bool = True) -> MatcherSnapshot:
        """
        Rebuild the snapshot and swap it in together with its catalog.

        Args:
            reload_catalog: Re-read ``agent-config.yaml`` and the action files first
        """
        with self._rebuild_lock:
            catalog = ActionCatalog(self.storage) if reload_catalog else self._state.catalog
            snapshot = self.cache.load_or_build(catalog.entries())
            self._state = AgentState(catalog, snapshot)
        logger.info(
            f"Agent {catalog.agent_config.name} ready: {len(snapshot.action_names)} actions, "
            f"{len(snapshot.vocabulary)} terms, version {snapshot.version}"
            f"{' (cached)' if snapshot.from_cache else ''}"
        )
        return snapshot

    # -------- queries --------

    def _threshold(self, minimum_score: Optional[float]) -> float:
        return self.settings.minimum_score if minimum_score is None else minimum_score

    def rank(self, text: str, minimum_score: Optional[float] = None) -> List[RankedAction]:
        """Return actions scoring at least ``minimum_score``, best first."""
        return self.state.rank(text, self._threshold(minimum_score))

    def query_description(self, text: str, minimum_score: Optional[float] = None) -> List[str]:
        """Return the names of actions whose description is similar to ``text``."""
        return [ranked.name for ranked in self.rank(text, minimum_score)]

    def resolve(self, user_input: str) -> Optional[Action]:
        """
        Find the action for ``user_input``.

        An exact action name wins; otherwise the best match at or above the
        configured minimum score, or None.
        """
        return self.state.resolve(user_input.strip(), self._threshold(None))

    def dispatch(self, user_input: str) -> str:
        """Answer one line of user input."""
        action = self.resolve(user_input)
        if action is None:
            logger.debug(f"No match for input: {user_input!r}")
            return f"No similar match for user input: '{user_input}'."
        logger.info(f"Matched action '{action.name}' for input: {user_input!r}")
        return f"Run action '{action.name}'."

    def say_hello(self) -> str:
        return f"Hello! Agent {self.name} ready."

    def say_goodbye(self) -> str:
        return f"Bye! Agent {self.name} shutting down."


def create_agent(settings: Settings, storage: Optional[Storage] = None) -> AgentContext:
    """Create and initialize an agent for ``settings``."""
    return AgentContext(settings, storage=storage).initialize()
