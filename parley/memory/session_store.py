"""Concurrency-safe table of users.

The store is the only owner of :class:`~parley.models.user.User` objects.
Callers never receive a reference to a stored user: readers get deep
copies and writers hand in a mutator that runs under the table lock.

Every table-wide operation serialises on one lock.  That is a deliberate
bottleneck for a single-process bot with a bounded number of concurrent
users; the lock is only ever held for in-memory work, never across I/O.
"""

from __future__ import annotations

import threading
from functools import lru_cache
from typing import Callable, Dict, TypeVar

from loguru import logger

from ..models.model_profile import ModelProfile
from ..models.user import User
from ..utils.error_handler import ChatError, UserNotFound

R = TypeVar("R")


class SessionStore:
    """Manage per-user settings and usage.

    Mutations are copy-on-write: :meth:`modify` applies the mutator to a
    deep copy of the user and swaps it in only if the mutator returns
    normally.  A mutator that raises leaves the stored user exactly as it
    was, the lock is released, and the exception propagates to the caller,
    so one failed command cannot corrupt or block state for anybody else.
    """

    def __init__(self, default_model: ModelProfile | None = None) -> None:
        self._users: Dict[str, User] = {}
        self._lock = threading.Lock()
        self._default_model = default_model or ModelProfile()

    @property
    def default_model(self) -> ModelProfile:
        return self._default_model

    def exists(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._users

    def create(self, user_id: str) -> bool:
        """Insert a default user.

        Returns ``False`` without touching anything if ``user_id`` is
        already present, so a repeated call can never wipe usage.
        """
        with self._lock:
            if user_id in self._users:
                return False
            self._users[user_id] = User.new(user_id, model=self._default_model)
        logger.info("Created user {}", user_id)
        return True

    def ensure(self, user_id: str) -> None:
        """Create ``user_id`` if it does not exist yet."""
        self.create(user_id)

    def modify(self, user_id: str, mutator: Callable[[User], R]) -> R:
        """Apply ``mutator`` to the user under exclusive access.

        Raises
        ------
        UserNotFound
            If the user has not been created.
        """
        try:
            with self._lock:
                current = self._users.get(user_id)
                if current is None:
                    raise UserNotFound(user_id)
                draft = current.model_copy(deep=True)
                result = mutator(draft)
                self._users[user_id] = draft
                return result
        except ChatError:
            raise
        except Exception:
            # The lock is already released here.
            logger.exception("Mutation of user {} failed; previous state kept", user_id)
            raise

    def read(self, user_id: str, accessor: Callable[[User], R]) -> R | None:
        """Return ``accessor`` applied to a snapshot, or None if absent."""
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                return None
            snapshot = current.model_copy(deep=True)
        return accessor(snapshot)

    def snapshot(self, user_id: str) -> User | None:
        return self.read(user_id, lambda user: user)

    def user_ids(self) -> list[str]:
        with self._lock:
            return list(self._users.keys())

    def snapshots(self) -> list[User]:
        """Return copies of every user, for analytics."""
        with self._lock:
            return [user.model_copy(deep=True) for user in self._users.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)


@lru_cache()
def get_session_store() -> SessionStore:
    """Return the process-wide session store.

    The default model profile comes from ``LLM_MODEL``.
    """
    from ..config.llm_config import get_llm_config

    return SessionStore(default_model=ModelProfile.from_name(get_llm_config().model))
