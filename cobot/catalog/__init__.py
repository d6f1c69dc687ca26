"""Action catalog and the storage it is read from."""

from .storage import Storage, DirectoryStorage, GitStorage, open_storage, init_layout
from .actions import Action, ActionExecution, ActionCatalog

__all__ = [
    'Storage',
    'DirectoryStorage',
    'GitStorage',
    'open_storage',
    'init_layout',
    'Action',
    'ActionExecution',
    'ActionCatalog',
]
