"""In-memory user storage."""

import hashlib
import threading
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class User:
    id: int
    name: str
    email: str
    role: str
    password_hash: str


class UserStore:
    """Thread-safe in-memory users, keyed by id."""

    def __init__(self) -> None:
        self._users: dict[int, User] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def add(self, name: str, email: str, role: str, password: str) -> User:
        digest = hashlib.sha256(password.encode("utf-8")).hexdigest()
        with self._lock:
            user = User(self._next_id, name, email, role, digest)
            self._users[user.id] = user
            self._next_id += 1
        return user

    def get(self, user_id: int) -> User | None:
        return self._users.get(user_id)

    def remove(self, user_id: int) -> bool:
        with self._lock:
            return self._users.pop(user_id, None) is not None

    def list(self, role: str | None = None, limit: int = 20) -> list[User]:
        users = [u for u in self._users.values() if role is None or u.role == role]
        return users[:limit]


injectable = UserStore
