"""Session and policy store abstractions."""

from trustgate.store.base import PolicyStore, SessionStore
from trustgate.store.memory import InMemoryPolicyStore, InMemorySessionStore

__all__ = [
    "PolicyStore",
    "SessionStore",
    "InMemoryPolicyStore",
    "InMemorySessionStore",
]
