"""Flask application factory for the file server."""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

from flask import Flask, g, redirect, request, url_for

from routes_auth import create_auth_blueprint
from routes_files import create_files_blueprint
from services.archive import ArchiveBuilder
from services.auth import AuthGate, Authenticator, PamAuthenticator
from services.config import Config
from services.errors import IOFailure, NoSelection, NotFound, PathEscape, Unauthorized
from services.fs import LocalFilesystem
from services.listing import file_icon, join_path, readable_size, split_path
from services.logging_setup import access_enabled, access_logger, core_log
from services.paths import PathResolver
from services.sessions import SessionStore


REQUIRED_TEMPLATES = ("index.html", "login.html")


def create_app(
    config: Config,
    *,
    authenticator: Optional[Authenticator] = None,
    clock: Optional[Callable[[], float]] = None,
    fs: Optional[LocalFilesystem] = None,
) -> Flask:
    ws = config.web_server
    app = Flask(__name__, static_folder="static", template_folder="templates")
    if ws.max_upload_mb > 0:
        app.config["MAX_CONTENT_LENGTH"] = ws.max_upload_mb * 1024 * 1024

    store = SessionStore(ws.session_seconds, clock=clock or time.time)
    gate = AuthGate(store, authenticator or PamAuthenticator(ws.pam_service))
    resolver = PathResolver(ws.base_dir, fs)

    app.extensions["fileserver.config"] = config
    app.extensions["fileserver.sessions"] = store
    app.extensions["fileserver.gate"] = gate
    app.extensions["fileserver.resolver"] = resolver
    app.extensions["fileserver.archive"] = ArchiveBuilder(resolver)

    app.add_template_filter(file_icon, "file_icon")
    app.add_template_filter(readable_size, "readable_size")
    app.add_template_global(split_path, "split_path")
    app.add_template_global(join_path, "join_path")

    _register_error_handlers(app)
    _register_access_log(app)

    app.register_blueprint(create_auth_blueprint())
    app.register_blueprint(create_files_blueprint())

    core_log("info", "file server app created", base_dir=resolver.root, protocol=ws.protocol)
    return app


def check_templates(app: Flask) -> None:
    """Load every page template once; raises jinja2's TemplateError."""
    for name in REQUIRED_TEMPLATES:
        app.jinja_env.get_template(name)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(PathEscape)
    def _path_escape(e: PathEscape) -> Any:
        core_log("warning", "path escape rejected", path=request.path, ip=request.remote_addr)
        return "Not Found", 404

    @app.errorhandler(NotFound)
    def _not_found(e: NotFound) -> Any:
        return "Not Found", 404

    @app.errorhandler(NoSelection)
    def _no_selection(e: NoSelection) -> Any:
        return "No files selected for download", 400

    @app.errorhandler(Unauthorized)
    def _unauthorized(e: Unauthorized) -> Any:
        return redirect(url_for("auth.login"), code=303)

    @app.errorhandler(IOFailure)
    def _io_failure(e: IOFailure) -> Any:
        # The raise site already logged the cause with user and address.
        return "Internal Server Error", 500


def _register_access_log(app: Flask) -> None:
    @app.before_request
    def _access_log_before_request() -> None:
        g._fileserver_t0 = time.time()

    @app.after_request
    def _access_log_after_request(response: Any) -> Any:
        if not access_enabled():
            return response
        path = request.path or ""
        if path.startswith("/static/"):
            return response
        client = request.remote_addr or ""
        t0 = getattr(g, "_fileserver_t0", None)
        if t0 is None:
            line = f"{client} {request.method} {path} -> {response.status_code}"
        else:
            dt_ms = int((time.time() - t0) * 1000.0)
            line = f"{client} {request.method} {path} -> {response.status_code} ({dt_ms}ms)"
        access_logger().info(line)
        return response
