"""In-memory session provider for tests and headless workflows."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from ..exceptions import SessionError
from .base import ApplicationSession, BaseSessionProvider


class InMemorySessionProvider(BaseSessionProvider):
    """Keeps plain ``ApplicationSession`` records without any real driver."""

    def __init__(self, screenshot_dir: Optional[str] = None) -> None:
        self._sessions: Dict[str, ApplicationSession] = {}
        self._screenshot_dir = screenshot_dir
        self.active: Optional[str] = None
        self.switch_history: List[Tuple[Optional[str], str]] = []
        self.screenshots: List[str] = []
        self.closed = False

    async def open(self, application: str) -> ApplicationSession:
        session = self._sessions.get(application)
        if session is None:
            session = ApplicationSession(application=application)
            self._sessions[application] = session
        return session

    async def activate(self, application: str) -> None:
        if application not in self._sessions:
            raise SessionError(f"Application {application} not initialized")
        if self.active != application:
            self.switch_history.append((self.active, application))
            self.active = application

    def get(self, application: str) -> ApplicationSession:
        try:
            return self._sessions[application]
        except KeyError:
            raise SessionError(f"No session for application {application}") from None

    async def capture_screenshot(
        self, application: str, label: str
    ) -> Optional[str]:
        if self._screenshot_dir is None:
            return None
        name = f"{self._screenshot_dir}/{label}.png"
        self.screenshots.append(name)
        return name

    async def close(self) -> None:
        self._sessions.clear()
        self.active = None
        self.closed = True
