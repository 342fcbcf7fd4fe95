# app/models/__init__.py
# Import models in dependency order
from .user import User, ProviderReputation
from .session import Session, SessionStatusChange, SessionStatus, ActorRole, CancelledBy
from .notification import Notification

__all__ = [
    "User",
    "ProviderReputation",
    "Session",
    "SessionStatusChange",
    "SessionStatus",
    "ActorRole",
    "CancelledBy",
    "Notification",
]
