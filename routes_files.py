"""Browsing, download and mutation routes for the served directory tree.

- Reads (listing, raw files, downloads) are public.
- Upload / create-folder / delete require a live session.
- Every client-supplied path goes through the app's PathResolver first.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote as _url_quote

from flask import Blueprint, Response, current_app, redirect, render_template, request, send_file

from routes_auth import client_addr, get_gate, session_required, session_token
from services.archive import ZIP_DOWNLOAD_NAME, ArchiveBuilder
from services.errors import NotFound
from services.fileops import create_folder as _create_folder, delete_items, save_uploads
from services.listing import build_listing
from services.logging_setup import core_log
from services.paths import PathResolver


def get_resolver() -> PathResolver:
    return current_app.extensions["fileserver.resolver"]


def get_archive() -> ArchiveBuilder:
    return current_app.extensions["fileserver.archive"]


def _sanitize_download_filename(name: str, *, default: str = "download") -> str:
    """Sanitize filename for Content-Disposition header (prevent header injection)."""
    s = (name or "").strip().rsplit("/", 1)[-1]
    s = s.replace("\r", "").replace("\n", "").replace('"', "")
    if not s:
        s = default
    return s[:180]


def _content_disposition_attachment(filename: str) -> str:
    fn = _sanitize_download_filename(filename)
    fn_star = _url_quote(fn, safe="")
    return f"attachment; filename=\"{fn}\"; filename*=UTF-8''{fn_star}"


def create_files_blueprint() -> Blueprint:
    bp = Blueprint("files", __name__)

    @bp.get("/", defaults={"subpath": ""})
    @bp.get("/<path:subpath>")
    def browse(subpath: str) -> Any:
        url_path = request.path
        resolver = get_resolver()
        full_path = resolver.resolve(url_path, follow_symlinks=True)
        try:
            st = resolver.fs.stat(full_path)
        except OSError:
            core_log("info", "path not found", path=full_path, ip=client_addr())
            raise NotFound(url_path) from None

        if not st.is_dir:
            core_log("info", "file served", path=full_path, ip=client_addr())
            return send_file(full_path, conditional=True)

        if not url_path.endswith("/"):
            return redirect(url_path + "/", code=301)

        try:
            listing = build_listing(
                resolver,
                url_path,
                full_path,
                is_logged_in=get_gate().current_user(session_token()) is not None,
            )
        except OSError as e:
            core_log("warning", "error reading directory", path=full_path, error=e, ip=client_addr())
            return "Error reading directory", 500
        return render_template("index.html", listing=listing)

    @bp.route("/download", methods=["GET", "POST"])
    def download() -> Any:
        builder = get_archive()
        client = client_addr()
        plan = builder.plan(request.values.getlist("items"), client=client)

        single = plan.single
        if single is not None:
            core_log("info", "file downloaded", path=single.path, ip=client)
            return send_file(single.path, conditional=True)

        core_log("info", "zip download started", files=len(plan.files), ip=client)
        headers = {"Content-Disposition": _content_disposition_attachment(ZIP_DOWNLOAD_NAME)}
        return Response(builder.stream(plan, client=client), mimetype="application/zip", headers=headers)

    @bp.post("/upload")
    @session_required
    def upload(actor: str) -> Any:
        resolver = get_resolver()
        current = request.form.get("currentPath", "")
        back = resolver.url_for(current, is_dir=True)
        save_uploads(
            resolver,
            current,
            request.files.getlist("uploadFiles"),
            actor=actor,
            client=client_addr(),
        )
        return redirect(back, code=303)

    @bp.post("/create-folder")
    @session_required
    def create_folder(actor: str) -> Any:
        resolver = get_resolver()
        current = request.form.get("currentPath", "")
        folder_name = (request.form.get("folderName") or "").strip()
        if not folder_name:
            return "Folder name is required", 400
        back = resolver.url_for(current, is_dir=True)
        _create_folder(resolver, current, folder_name, actor=actor, client=client_addr())
        return redirect(back, code=303)

    @bp.post("/delete")
    @session_required
    def delete(actor: str) -> Any:
        resolver = get_resolver()
        items = request.form.getlist("items")
        if not items:
            return "No items selected for deletion", 400
        back = resolver.url_for(request.form.get("currentPath", ""), is_dir=True)
        result = delete_items(resolver, items, actor=actor, client=client_addr())
        if result.failed:
            core_log("warning", "delete finished with failures", failed=len(result.failed), deleted=len(result.deleted), ip=client_addr(), user=actor)
        return redirect(back, code=303)

    return bp
