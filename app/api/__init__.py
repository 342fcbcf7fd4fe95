# app/api/__init__.py
# This file makes the api directory a Python package.

from . import provider
from . import session

__all__ = [
    "provider",
    "session",
]
