"""cobot - a customizable agent that maps free-text requests onto local actions."""

__version__ = "0.1.0"

from .agent import AgentContext, AgentState, RankedAction
from .catalog.actions import Action, ActionCatalog
from .config import Settings, load_settings

__all__ = ["AgentContext", "AgentState", "RankedAction", "Action", "ActionCatalog", "Settings", "load_settings", "__version__"]
