"""Directory listing data handed to the ``index.html`` template."""

from __future__ import annotations

import os
import posixpath
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import markdown
from markdown.treeprocessors import Treeprocessor

from services.errors import PathEscape
from services.logging_setup import core_log
from services.paths import PathResolver


README_NAME = "README.md"
_SAFE_DATA_PREFIXES = ("data:image/png", "data:image/gif", "data:image/jpeg", "data:image/webp")

_ICONS = {
    ".txt": "description",
    ".pdf": "picture_as_pdf",
    ".jpg": "image",
    ".jpeg": "image",
    ".png": "image",
    ".gif": "image",
    ".bmp": "image",
    ".zip": "archive",
    ".rar": "archive",
    ".7z": "archive",
    ".tar": "archive",
    ".gz": "archive",
    ".doc": "description",
    ".docx": "description",
    ".xls": "grid_on",
    ".xlsx": "grid_on",
    ".ppt": "slideshow",
    ".pptx": "slideshow",
    ".mp3": "audiotrack",
    ".wav": "audiotrack",
    ".aac": "audiotrack",
    ".mp4": "movie",
    ".avi": "movie",
    ".mov": "movie",
    ".mkv": "movie",
}


@dataclass(frozen=True)
class ListingEntry:
    name: str
    is_dir: bool
    size: Optional[int]
    mtime: Optional[datetime]


@dataclass
class DirectoryListing:
    path: str
    full_path: str
    entries: List[ListingEntry]
    parent_dir: str
    is_logged_in: bool
    readme_html: str = ""


def file_icon(filename: str) -> str:
    """Material icon name for a file, by extension."""
    ext = os.path.splitext(filename or "")[1].lower()
    return _ICONS.get(ext, "insert_drive_file")


def readable_size(size: Optional[int]) -> str:
    if size is None:
        return ""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}B"


def split_path(p: str) -> List[str]:
    """Breadcrumb components of a URL path."""
    return [part for part in (p or "").strip("/").split("/") if part]


def join_path(base: str, elem: str) -> str:
    if base in ("", "/"):
        return "/" + elem
    return base.rstrip("/") + "/" + elem


def parent_of(url_path: str) -> str:
    """Parent virtual path, or "" at the root."""
    if url_path in ("", "/"):
        return ""
    parent = posixpath.normpath(posixpath.join("/", url_path.strip("/"), ".."))
    return parent if parent.endswith("/") else parent + "/"


def _is_dangerous_url(url: str) -> bool:
    """Scripting and local schemes are blanked; inline raster images are kept."""
    # Backslash-escaped characters are still stashed as STX<ord>ETX here.
    u = re.sub(r"\x02(\d+)\x03", lambda m: chr(int(m.group(1))), url)
    u = re.sub(r"[\x00-\x20]", "", u).lower()
    if u.startswith("data:"):
        return not u.startswith(_SAFE_DATA_PREFIXES)
    return u.startswith(("javascript:", "vbscript:", "file:"))


class _BlankDangerousUrls(Treeprocessor):
    def run(self, root):
        for el in root.iter():
            for attr in ("href", "src"):
                value = el.get(attr)
                if value is not None and _is_dangerous_url(value):
                    el.set(attr, "")


def markdown_to_html(text: str) -> str:
    """Render README text with raw HTML left out of the output.

    Block and inline HTML come out escaped as text, and links or images
    with a scripting URL lose their target.
    """
    md = markdown.Markdown(extensions=["fenced_code", "tables"])
    md.preprocessors.deregister("html_block")
    md.inlinePatterns.deregister("html")
    # After "inline" (20), which creates the <a>/<img> elements.
    md.treeprocessors.register(_BlankDangerousUrls(md), "blank_dangerous_urls", 5)
    return md.convert(text)


def render_readme(resolver: PathResolver, url_path: str) -> str:
    vpath = join_path(url_path, README_NAME)
    try:
        readme = resolver.resolve(vpath, follow_symlinks=True)
    except PathEscape:
        core_log("warning", "readme outside base directory skipped", path=vpath)
        return ""
    fs = resolver.fs
    if not fs.exists(readme):
        return ""
    try:
        with fs.open_read(readme) as f:
            text = f.read().decode("utf-8", errors="replace")
    except OSError as e:
        core_log("warning", "error reading readme", path=readme, error=e)
        return ""
    return markdown_to_html(text)


def build_listing(
    resolver: PathResolver,
    url_path: str,
    full_path: str,
    *,
    is_logged_in: bool,
) -> DirectoryListing:
    """Read ``full_path`` and assemble the listing record.

    Directories sort first, then files, each by case-insensitive name.
    Entries that vanish or cannot be stat'ed mid-listing keep their name
    with unknown size and time. Raises ``OSError`` if the directory itself
    cannot be read.
    """
    fs = resolver.fs
    entries: List[ListingEntry] = []
    for name in fs.list_dir(full_path):
        try:
            st = fs.stat(os.path.join(full_path, name))
        except OSError as e:
            core_log("debug", "error getting file info", name=name, error=e)
            entries.append(ListingEntry(name=name, is_dir=False, size=None, mtime=None))
            continue
        entries.append(
            ListingEntry(
                name=name,
                is_dir=st.is_dir,
                size=None if st.is_dir else st.size,
                mtime=datetime.fromtimestamp(st.mtime),
            )
        )
    entries.sort(key=lambda e: (not e.is_dir, e.name.lower()))

    return DirectoryListing(
        path=url_path,
        full_path=full_path,
        entries=entries,
        parent_dir=parent_of(url_path),
        is_logged_in=is_logged_in,
        readme_html=render_readme(resolver, url_path),
    )
