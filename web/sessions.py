"""Server-held login sessions: opaque session id → user id."""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import config


class SessionStore:
    """Process-local session table.

    The cookie only names a session id; destroying the entry here is what makes a
    replayed cookie resolve to anonymous after logout. Entries expire together with
    the signed cookie and are pruned on create/get.
    """

    def __init__(self, ttl: Optional[timedelta] = None) -> None:
        self.ttl = ttl if ttl is not None else timedelta(days=config.SESSION_EXPIRE_DAYS)
        self._sessions: dict[str, tuple[int, datetime]] = {}

    def _prune(self, now: datetime) -> None:
        expired = [sid for sid, (_, expires_at) in self._sessions.items() if expires_at <= now]
        for sid in expired:
            del self._sessions[sid]

    def create(self, user_id: int) -> str:
        now = datetime.now(timezone.utc)
        self._prune(now)
        sid = secrets.token_urlsafe(32)
        self._sessions[sid] = (user_id, now + self.ttl)
        return sid

    def get(self, sid: Optional[str]) -> Optional[int]:
        if not sid:
            return None
        self._prune(datetime.now(timezone.utc))
        entry = self._sessions.get(sid)
        return entry[0] if entry else None

    def destroy(self, sid: Optional[str]) -> None:
        if sid:
            self._sessions.pop(sid, None)

    def destroy_user(self, user_id: int) -> int:
        """Drop every session of a user (e.g. after the account is deleted). Returns count removed."""
        stale = [sid for sid, (uid, _) in self._sessions.items() if uid == user_id]
        for sid in stale:
            del self._sessions[sid]
        return len(stale)

    def __len__(self) -> int:
        return len(self._sessions)
