from .decisions_sqlite import SQLiteDecisionTracker
from .registry_base import RegistryStoreBase, rank_entries
from .registry_sqlite import SQLiteRegistryStore
