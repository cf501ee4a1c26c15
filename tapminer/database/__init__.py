from .store import (
    KeyValueStore,
    MemoryStore,
    JsonFileStore,
    create_store,
    empty_state
)
from .mongo import MongoStore
