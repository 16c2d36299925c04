import threading
from collections import defaultdict


class RevocationRegistry:
    """
    Process-local record of which refresh tokens are currently honorable.

    Maps user id -> set of refresh token strings. A refresh token is only
    accepted while it is a member of its user's set; restarting the process
    empties the registry and so revokes every outstanding refresh token.

    Endpoints may run in FastAPI's thread pool, so every access goes through
    one lock.
    """

    def __init__(self):
        self._tokens_by_user: dict[str, set[str]] = defaultdict(set)
        self._lock = threading.Lock()

    def register(self, user_id: str, token: str) -> None:
        with self._lock:
            self._tokens_by_user[user_id].add(token)

    def is_registered(self, user_id: str, token: str) -> bool:
        with self._lock:
            tokens = self._tokens_by_user.get(user_id)
            return bool(tokens) and token in tokens

    def revoke(self, user_id: str, token: str) -> bool:
        """Remove one token. Returns whether it was registered."""
        with self._lock:
            tokens = self._tokens_by_user.get(user_id)
            if not tokens or token not in tokens:
                return False
            tokens.discard(token)
            if not tokens:
                del self._tokens_by_user[user_id]
            return True

    def revoke_all(self, user_id: str) -> int:
        """Drop every token of a user. Returns how many were dropped."""
        with self._lock:
            return len(self._tokens_by_user.pop(user_id, ()))

    def count(self, user_id: str) -> int:
        with self._lock:
            return len(self._tokens_by_user.get(user_id, ()))

    def clear(self) -> None:
        with self._lock:
            self._tokens_by_user.clear()
