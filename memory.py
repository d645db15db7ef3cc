"""Per-user conversation memory for the chat assistant.

Records live for the lifetime of the process only. The router receives a
``ConversationMemory`` instead of reaching for module state, so the backing
``SessionStore`` can be swapped in tests or replaced by a persistent store.
"""

import threading
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Protocol


@dataclass
class UserMemory:
    last_conversation: str = ""
    # reserved for personalization; nothing reads these yet
    spending_habits: dict[str, Any] = field(default_factory=dict)
    goals: dict[str, Any] = field(default_factory=dict)
    preferences: dict[str, Any] = field(default_factory=dict)


class SessionStore(Protocol):
    def get(self, user_id: str) -> Optional[UserMemory]: ...

    def put(self, user_id: str, memory: UserMemory) -> None: ...

    def lock_for(self, user_id: str) -> threading.Lock: ...


class InMemorySessionStore:
    def __init__(self) -> None:
        self._records: dict[str, UserMemory] = {}
        # one lock per user id, kept as long as the record itself
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    def get(self, user_id: str) -> Optional[UserMemory]:
        return self._records.get(user_id)

    def put(self, user_id: str, memory: UserMemory) -> None:
        self._records[user_id] = memory

    def __len__(self) -> int:
        return len(self._records)


class ConversationMemory:
    def __init__(self, store: Optional[SessionStore] = None) -> None:
        self.store = store if store is not None else InMemorySessionStore()

    def get(self, user_id: str) -> UserMemory:
        with self.store.lock_for(user_id):
            memory = self.store.get(user_id)
            if memory is None:
                memory = UserMemory()
                self.store.put(user_id, memory)
            return memory

    def update(self, user_id: str, message: str) -> UserMemory:
        with self.store.lock_for(user_id):
            current = self.store.get(user_id) or UserMemory()
            updated = replace(current, last_conversation=message)
            self.store.put(user_id, updated)
            return updated
