# impress/infrastructure/identity.py
from typing import Dict, Iterable, Optional, Protocol, Set


class IdentityProvider(Protocol):
    def current_user(self) -> Optional[Dict]: ...

    def has_role(self, user_id: str, role: str) -> bool: ...


class StaticIdentityProvider:
    """In-memory role table.

    `current_user` is the acting user for callers that do not bring their
    own credentials (scripts, tests); the HTTP layer passes the Basic-auth
    user explicitly.
    """

    def __init__(self, roles: Optional[Dict[str, Iterable[str]]] = None, current_user_id: Optional[str] = None):
        self._roles: Dict[str, Set[str]] = {uid: set(r) for uid, r in (roles or {}).items()}
        self._current = current_user_id

    def current_user(self) -> Optional[Dict]:
        return {"id": self._current} if self._current else None

    def has_role(self, user_id: str, role: str) -> bool:
        return role in self._roles.get(user_id, set())

    def grant(self, user_id: str, role: str) -> None:
        self._roles.setdefault(user_id, set()).add(role)


def authorize(provider: IdentityProvider, role: str, user: Optional[Dict] = None) -> Optional[Dict]:
    """Return the acting user if they hold `role`, else None."""
    user = user or provider.current_user()
    if user is None or not provider.has_role(user["id"], role):
        return None
    return user
