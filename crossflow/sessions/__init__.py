"""Application session providers."""

from __future__ import annotations

from .base import ApplicationSession, BaseSessionProvider
from .inmemory import InMemorySessionProvider

__all__ = ["ApplicationSession", "BaseSessionProvider", "InMemorySessionProvider"]
