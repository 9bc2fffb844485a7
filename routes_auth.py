"""Login / logout / session-check routes and the session gate decorator."""

from __future__ import annotations

import functools
from typing import Any, Callable
from urllib.parse import urlparse

from flask import Blueprint, current_app, redirect, render_template, request

from services.auth import AuthGate
from services.errors import AuthFailure
from services.logging_setup import core_log
from services.sessions import SESSION_COOKIE_NAME


LOGIN_FAILED_MESSAGE = "Authentication failed. Please try again."


def get_gate() -> AuthGate:
    return current_app.extensions["fileserver.gate"]


def client_addr() -> str:
    return request.remote_addr or ""


def session_token() -> str:
    return request.cookies.get(SESSION_COOKIE_NAME, "")


def session_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """Run ``view`` only with a live session; pass the username as ``actor``.

    Without one, ``Unauthorized`` propagates to the app's handler, which
    redirects to the login page.
    """

    @functools.wraps(view)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        actor = get_gate().authorize(session_token(), request.path, request.method)
        return view(*args, actor=actor, **kwargs)

    return wrapper


def create_auth_blueprint() -> Blueprint:
    bp = Blueprint("auth", __name__)

    @bp.get("/login")
    def login() -> Any:
        return render_template("login.html")

    @bp.post("/login")
    def login_post() -> Any:
        username = (request.form.get("username") or "").strip()
        password = request.form.get("password") or ""
        gate = get_gate()
        try:
            sess = gate.login(username, password)
        except AuthFailure:
            core_log("warning", "authentication failed", user=username, ip=client_addr())
            return render_template("login.html", error=LOGIN_FAILED_MESSAGE)

        core_log("info", "user logged in", user=username, ip=client_addr())
        resp = redirect("/", code=303)
        resp.set_cookie(
            SESSION_COOKIE_NAME,
            sess.token,
            path="/",
            expires=sess.expires_at,
            httponly=True,
            secure=request.is_secure,
            samesite="Lax",
        )
        return resp

    @bp.get("/logout")
    def logout() -> Any:
        token = session_token()
        # Only the path of the referer, never another host.
        back = urlparse(request.referrer or "").path or "/"
        if not back.startswith("/") or back.startswith("//") or back.rstrip("/").endswith("/logout"):
            back = "/"
        resp = redirect(back, code=303)
        if token:
            user = get_gate().current_user(token)
            get_gate().logout(token)
            resp.set_cookie(SESSION_COOKIE_NAME, "", path="/", expires=0, httponly=True)
            core_log("info", "user logged out", user=user or "-", ip=client_addr())
        return resp

    @bp.get("/check-session")
    def check_session() -> Any:
        if get_gate().current_user(session_token()) is None:
            return "Unauthorized", 401
        return "", 200

    return bp
