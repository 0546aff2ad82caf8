from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import threading
import time

from capsule_api.domain.entities import Session
from capsule_api.domain.ports import SessionStore

logger = logging.getLogger("capsule.sessions")

SESSION_COOKIE = "capsule_sid"


class MemorySessionStore:
    """Single-instance session backing. Expiry slides forward on every successful lookup."""

    def __init__(self, *, ttl_s: int = 604800, clock=time.time) -> None:
        self.ttl_s = ttl_s
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._mutex = threading.Lock()

    def create(self, user: str) -> Session:
        session = Session(token=secrets.token_urlsafe(32), user=user, expires_at=self._clock() + self.ttl_s)
        with self._mutex:
            self._purge_expired()
            self._sessions[session.token] = session
        return session

    def get(self, token: str) -> Session | None:
        now = self._clock()
        with self._mutex:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.expires_at <= now:
                self._sessions.pop(token, None)
                return None
            refreshed = Session(token=session.token, user=session.user, expires_at=now + self.ttl_s)
            self._sessions[token] = refreshed
            return refreshed

    def destroy(self, token: str) -> None:
        with self._mutex:
            self._sessions.pop(token, None)

    def _purge_expired(self) -> None:
        now = self._clock()
        for token in [t for t, s in self._sessions.items() if s.expires_at <= now]:
            del self._sessions[token]


class SessionGate:
    """Maps the signed cookie value to an authenticated identity."""

    def __init__(self, sessions: SessionStore, secret: str) -> None:
        self.sessions = sessions
        self._secret = secret.encode("utf-8")

    def _sign(self, token: str) -> str:
        return hmac.new(self._secret, token.encode("utf-8"), hashlib.sha256).hexdigest()

    def cookie_value(self, session: Session) -> str:
        return f"{session.token}.{self._sign(session.token)}"

    def _token_from_cookie(self, cookie: str | None) -> str | None:
        if not cookie:
            return None
        token, sep, signature = cookie.rpartition(".")
        if not sep or not token:
            return None
        if not hmac.compare_digest(signature, self._sign(token)):
            logger.warning("session_bad_signature")
            return None
        return token

    def login(self, user: str) -> str:
        session = self.sessions.create(user)
        logger.info("session_created", extra={"user": user})
        return self.cookie_value(session)

    def identity(self, cookie: str | None) -> str | None:
        token = self._token_from_cookie(cookie)
        if token is None:
            return None
        session = self.sessions.get(token)
        return session.user if session else None

    def logout(self, cookie: str | None) -> None:
        token = self._token_from_cookie(cookie)
        if token is not None:
            self.sessions.destroy(token)
