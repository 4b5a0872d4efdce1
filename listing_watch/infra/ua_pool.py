"""User-Agent pool abstraction."""

from __future__ import annotations

import random
from pathlib import Path
from threading import Lock
from typing import Iterable, List, Optional


class UserAgentPool:
    """Hand out user agents; a rebuilt identity asks for one it has not just used."""

    def __init__(self, user_agents: Iterable[str] | None = None, file_path: Path | None = None) -> None:
        self._lock = Lock()
        self._uas: List[str] = []
        if user_agents:
            self._uas.extend(ua.strip() for ua in user_agents if ua.strip())
        if file_path and file_path.exists():
            lines = file_path.read_text(encoding="utf-8").splitlines()
            self._uas.extend(line.strip() for line in lines if line.strip())

    def __len__(self) -> int:
        return len(self._uas)

    def get(self, exclude: str | None = None) -> Optional[str]:
        with self._lock:
            if not self._uas:
                return None
            candidates = [ua for ua in self._uas if ua != exclude] or self._uas
            return random.choice(candidates)

    def pin(self) -> None:
        """Keep only the first agent, so every identity presents the same one."""

        with self._lock:
            del self._uas[1:]


__all__ = ["UserAgentPool"]
