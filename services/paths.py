"""Confinement of client-supplied virtual paths to the served root."""

from __future__ import annotations

import os
import posixpath
from typing import Optional

from services.errors import PathEscape
from services.fs import LocalFilesystem


def normalize_virtual_path(vpath: Optional[str]) -> str:
    """Return the root-relative, "/"-separated form of ``vpath``.

    Backslashes count as separators, redundant separators and ``.``/``..``
    segments are collapsed. The root itself normalizes to ``""``. Anything
    that would climb above the root raises :class:`PathEscape`. Pure string
    work, the filesystem is never consulted.
    """
    raw = (vpath or "").replace("\\", "/")
    if "\x00" in raw:
        raise PathEscape("nul byte in path")
    raw = raw.lstrip("/")
    if not raw:
        return ""
    rel = posixpath.normpath(raw)
    if rel == ".." or rel.startswith("../"):
        raise PathEscape(vpath)
    if rel == ".":
        return ""
    return rel


class PathResolver:
    """Maps virtual paths to absolute paths inside ``root``.

    ``root`` is trusted configuration and is only made absolute here.
    """

    def __init__(self, root: str, fs: Optional[LocalFilesystem] = None) -> None:
        self.root = os.path.normpath(os.path.abspath(root))
        self.fs = fs or LocalFilesystem()
        self._real_root: Optional[str] = None

    def _inside(self, path: str, root: str) -> bool:
        return os.path.commonpath([path, root]) == root

    def resolve(self, vpath: Optional[str], *, follow_symlinks: bool = False) -> str:
        """Resolve ``vpath`` or raise :class:`PathEscape`.

        With ``follow_symlinks`` the lexically accepted result is also
        canonicalized and must still live under the (canonical) root, which
        stops symlinks inside the tree from pointing the caller elsewhere.
        """
        rel = normalize_virtual_path(vpath)
        candidate = os.path.join(self.root, *rel.split("/")) if rel else self.root
        # Component-wise: "/base-evil" is not inside "/base".
        if not self._inside(candidate, self.root):
            raise PathEscape(vpath)
        if not follow_symlinks:
            return candidate

        if self._real_root is None:
            self._real_root = self.fs.realpath(self.root)
        real = self.fs.realpath(candidate)
        if not self._inside(real, self._real_root):
            raise PathEscape(vpath)
        return candidate

    def resolve_entry(self, vpath: Optional[str]) -> str:
        """Resolve ``vpath`` for operations on the entry itself (unlink).

        The final component is not followed, so a symlink is acted on as a
        link; its parent directory must canonicalize inside the root.
        """
        rel = normalize_virtual_path(vpath)
        candidate = self.resolve(vpath)
        if rel:
            parent = posixpath.dirname(rel)
            self.resolve(parent, follow_symlinks=True)
        return candidate

    def relative(self, vpath: Optional[str]) -> str:
        """Root-relative name of ``vpath`` (no leading slash), validated."""
        return normalize_virtual_path(vpath)

    def url_for(self, vpath: Optional[str], *, is_dir: bool = False) -> str:
        """Canonical URL path for ``vpath``; directories keep a trailing slash."""
        rel = normalize_virtual_path(vpath)
        if not rel:
            return "/"
        return "/" + rel + ("/" if is_dir else "")
