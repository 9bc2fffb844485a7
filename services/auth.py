"""Credential checks and the per-request session gate."""

from __future__ import annotations

from typing import Optional, Protocol

import gevent

from services.errors import AuthFailure, Unauthorized
from services.logging_setup import core_log
from services.sessions import Session, SessionStore


# Routes that mutate the served tree.
PROTECTED_ACTION_PREFIXES = ("/upload", "/delete", "/create-folder")


class Authenticator(Protocol):
    def authenticate(self, username: str, password: str) -> bool:
        ...


class PamAuthenticator:
    """Checks host OS accounts through PAM (``python-pam``)."""

    def __init__(self, service: str = "login") -> None:
        self.service = service

    def authenticate(self, username: str, password: str) -> bool:
        # libpam is loaded on first use, not at import time.
        import pam

        p = pam.pam()
        ok = bool(p.authenticate(username, password, service=self.service))
        if not ok:
            core_log("debug", "pam rejected", user=username, code=p.code, reason=p.reason)
        return ok


class ThreadpoolAuthenticator:
    """Runs a blocking authenticator on gevent's native threadpool.

    A PAM conversation can take seconds (pam_faildelay); on the hub thread
    it would stall every other request.
    """

    def __init__(self, inner: Authenticator) -> None:
        self.inner = inner

    def authenticate(self, username: str, password: str) -> bool:
        return bool(gevent.get_hub().threadpool.apply(self.inner.authenticate, (username, password)))


def is_protected_action(method: str, path: str) -> bool:
    return (method or "").upper() == "POST" and (path or "").startswith(PROTECTED_ACTION_PREFIXES)


class AuthGate:
    """Decides whether a request carries a live session."""

    def __init__(self, store: SessionStore, authenticator: Authenticator) -> None:
        self.store = store
        self.authenticator = authenticator

    def current_user(self, token: Optional[str]) -> Optional[str]:
        sess = self.store.validate(token)
        return sess.username if sess is not None else None

    def authorize(self, token: Optional[str], path: str, method: str) -> str:
        """Return the session's username or raise :class:`Unauthorized`.

        Any live session passes, whatever the method or route.
        """
        sess = self.store.validate(token)
        if sess is None:
            raise Unauthorized(path)
        # Both arms forward; there is no per-route permission model.
        if is_protected_action(method, path):
            core_log("debug", "action authorized", user=sess.username, method=method, path=path)
        else:
            core_log("debug", "request authorized", user=sess.username, method=method, path=path)
        return sess.username

    def login(self, username: str, password: str) -> Session:
        """Check credentials and open a session, or raise :class:`AuthFailure`."""
        if not username or not password:
            raise AuthFailure(username)
        if not self.authenticator.authenticate(username, password):
            raise AuthFailure(username)
        return self.store.create(username)

    def logout(self, token: Optional[str]) -> None:
        self.store.invalidate(token)
