# app/schemas/__init__.py

# Auth schemas
from .auth import Token, TokenData

# Session schemas
from .session import (
    AgendaItem,
    SessionCreate,
    SessionRespond,
    SessionCancel,
    SessionComplete,
    SessionNoShow,
    SessionRate,
    SessionResponse,
    SessionDetail,
    SessionPage,
    Pagination,
    SessionStatusChangeResponse,
    ProviderReputationResponse,
)

__all__ = [
    "Token",
    "TokenData",
    "AgendaItem",
    "SessionCreate",
    "SessionRespond",
    "SessionCancel",
    "SessionComplete",
    "SessionNoShow",
    "SessionRate",
    "SessionResponse",
    "SessionDetail",
    "SessionPage",
    "Pagination",
    "SessionStatusChangeResponse",
    "ProviderReputationResponse",
]
