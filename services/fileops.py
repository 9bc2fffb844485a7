"""Mutating operations on the served tree: upload, mkdir, delete.

Every function resolves all of its paths before touching the filesystem, so
a request carrying one bad path changes nothing.
"""

from __future__ import annotations

import os
import posixpath
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, List, Optional, Protocol, Tuple

from services.errors import IOFailure, PathEscape
from services.fs import LocalFilesystem
from services.logging_setup import core_log
from services.paths import PathResolver


class Upload(Protocol):
    filename: Optional[str]
    stream: BinaryIO


def upload_basename(filename: Optional[str]) -> str:
    """Last component of a client-side file name ("" when unusable)."""
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    if name in ("", ".", ".."):
        return ""
    return name


def save_uploads(
    resolver: PathResolver,
    current_path: Optional[str],
    uploads: Iterable[Upload],
    *,
    actor: str,
    client: str,
) -> List[str]:
    """Store each upload under ``current_path``; return the virtual names."""
    fs = resolver.fs
    rel_dir = resolver.relative(current_path)
    dest_dir = resolver.resolve(current_path, follow_symlinks=True)

    targets: List[Tuple[Upload, str, str]] = []
    for up in uploads:
        name = upload_basename(up.filename)
        if not name:
            continue
        rel = posixpath.join(rel_dir, name) if rel_dir else name
        targets.append((up, rel, resolver.resolve(rel, follow_symlinks=True)))

    try:
        fs.make_dirs(dest_dir)
    except OSError as e:
        core_log("error", "error creating directory", path=dest_dir, error=e, ip=client, user=actor)
        raise IOFailure(str(e)) from e

    saved: List[str] = []
    for up, rel, dest in targets:
        try:
            fs.copy_stream(up.stream, dest)
        except OSError as e:
            core_log("error", "error saving file", path=dest, error=e, ip=client, user=actor)
            raise IOFailure(str(e)) from e
        core_log("info", "file uploaded", path=dest, ip=client, user=actor)
        saved.append(rel)
    return saved


def create_folder(
    resolver: PathResolver,
    current_path: Optional[str],
    folder_name: str,
    *,
    actor: str,
    client: str,
) -> str:
    rel_dir = resolver.relative(current_path)
    rel = posixpath.join(rel_dir, folder_name) if rel_dir else folder_name
    target = resolver.resolve(rel, follow_symlinks=True)
    if target == resolver.root:
        raise PathEscape(folder_name)
    try:
        resolver.fs.make_dir(target)
    except OSError as e:
        core_log("error", "error creating folder", path=target, error=e, ip=client, user=actor)
        raise IOFailure(str(e)) from e
    core_log("info", "folder created", path=target, ip=client, user=actor)
    return target


def remove_tree(fs: LocalFilesystem, path: str, *, actor: str = "", client: str = "") -> int:
    """Depth-first removal of ``path``; returns the number of entries removed.

    Symlinks are unlinked, never descended into. Stops at the first error.
    """
    st = fs.lstat(path)
    removed = 0
    if st.is_dir and not st.is_link:
        for name in sorted(fs.list_dir(path)):
            removed += remove_tree(fs, os.path.join(path, name), actor=actor, client=client)
        core_log("info", "deleting", path=path, ip=client, user=actor)
        fs.remove_dir(path)
    else:
        core_log("info", "deleting", path=path, ip=client, user=actor)
        fs.remove_file(path)
    return removed + 1


@dataclass
class DeleteResult:
    deleted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def delete_items(
    resolver: PathResolver,
    items: Iterable[str],
    *,
    actor: str,
    client: str,
) -> DeleteResult:
    """Delete every selected item, attempting all of them.

    Raises :class:`PathEscape` before removing anything if any item escapes
    (or names the root itself), and :class:`IOFailure` only when no item
    could be deleted.
    """
    targets: List[Tuple[str, str]] = []
    seen = set()
    for item in items:
        target = resolver.resolve_entry(item)
        if target == resolver.root:
            raise PathEscape(item)
        if target in seen:
            continue
        seen.add(target)
        targets.append((item, target))

    result = DeleteResult()
    for item, target in targets:
        try:
            remove_tree(resolver.fs, target, actor=actor, client=client)
        except OSError as e:
            core_log("error", "error deleting item", path=target, error=e, ip=client, user=actor)
            result.failed.append(item)
            continue
        core_log("info", "item deleted", path=target, ip=client, user=actor)
        result.deleted.append(item)

    if targets and not result.deleted:
        raise IOFailure(f"could not delete {len(result.failed)} item(s)")
    return result
