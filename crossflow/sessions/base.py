"""Application session provider interface."""

from __future__ import annotations

import abc
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ApplicationSession(BaseModel):
    """Handles a step body needs to drive one logical application."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    application: str
    page: Any = None
    api: Any = None


class BaseSessionProvider(metaclass=abc.ABCMeta):
    """Hands out sessions per logical application.

    The engine only opens, activates and closes sessions; what a session
    contains is up to the provider and the step bodies that use it.
    """

    @abc.abstractmethod
    async def open(self, application: str) -> ApplicationSession:
        """Create (or return the existing) session for ``application``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def activate(self, application: str) -> None:
        """Bring ``application`` to the foreground."""
        raise NotImplementedError

    @abc.abstractmethod
    def get(self, application: str) -> ApplicationSession:
        """Return an opened session or raise ``SessionError``."""
        raise NotImplementedError

    async def capture_screenshot(
        self, application: str, label: str
    ) -> Optional[str]:
        """Capture a screenshot and return its location (no-op by default)."""
        return None

    async def close(self) -> None:
        """Release every session (no-op by default)."""
        pass
