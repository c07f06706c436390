from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Union
import asyncio

from catgpt.domain.models.conversation import ConversationTurn
from catgpt.infrastructure.observability.logging import relay_logger

UserId = Union[int, str]

DEFAULT_MAX_TURNS = 10


class ContextStore:
    """Bounded per-user conversation history, kept in process memory only.

    Reads and writes are synchronous so they never interleave between
    await points. Anything that spans an await for one user (the inference
    round trip, the reset command) runs inside ``exclusive(user_id)`` so
    each user has a single writer.
    """

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.max_turns = max_turns
        self.conversations: Dict[UserId, List[ConversationTurn]] = {}
        self._locks: Dict[UserId, asyncio.Lock] = {}
        # Holders plus waiters per lock
        self._lock_users: Dict[UserId, int] = {}

    def get(self, user_id: UserId) -> List[ConversationTurn]:
        """Get a snapshot of the user's history, empty if none exists"""

        return list(self.conversations.get(user_id, ()))

    def append(self, user_id: UserId, turn: ConversationTurn) -> None:
        """Add a turn, dropping the oldest ones beyond the cap"""

        history = self.conversations.setdefault(user_id, [])
        history.append(turn)

        if len(history) > self.max_turns:
            self.conversations[user_id] = history[-self.max_turns:]

        relay_logger.log_context_update(
            user_id,
            "append",
            {"role": turn.role, "turns": len(self.conversations[user_id])}
        )

    def clear(self, user_id: UserId) -> None:
        """Forget the user's history. Clearing an empty history is a no-op."""

        self.conversations.pop(user_id, None)
        relay_logger.log_context_update(user_id, "clear")

    async def reset(self, user_id: UserId) -> None:
        """Clear once the user's in-flight request, if any, has finished"""

        async with self.exclusive(user_id):
            self.clear(user_id)

    @asynccontextmanager
    async def exclusive(self, user_id: UserId) -> AsyncIterator[None]:
        """Serialize everything one user does across await points.

        The user's lock is dropped once nobody holds or waits for it and
        the user has no history left.
        """

        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if self._lock_users[user_id] == 0:
                del self._lock_users[user_id]
                if user_id not in self.conversations:
                    self._locks.pop(user_id, None)

    def locked_users(self) -> int:
        return len(self._locks)

    def active_users(self) -> int:
        return len(self.conversations)

    def close(self) -> None:
        """Drop every history at shutdown"""

        self.conversations.clear()
        self._locks.clear()
        self._lock_users.clear()
