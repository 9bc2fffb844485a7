"""Minimal directory-entry interface over the host filesystem.

Path confinement, delete walks and archive streaming only talk to the
filesystem through this interface so they can run against an in-memory fake.
"""

from __future__ import annotations

import os
import shutil
import stat
from dataclasses import dataclass
from typing import BinaryIO, List


@dataclass(frozen=True)
class EntryStat:
    is_dir: bool
    is_link: bool
    size: int
    mtime: float
    mode: int


def _entry_stat(st: os.stat_result) -> EntryStat:
    return EntryStat(
        is_dir=stat.S_ISDIR(st.st_mode),
        is_link=stat.S_ISLNK(st.st_mode),
        size=int(st.st_size),
        mtime=float(st.st_mtime),
        mode=int(st.st_mode),
    )


class LocalFilesystem:
    """Host filesystem implementation. Errors propagate as ``OSError``."""

    def stat(self, path: str) -> EntryStat:
        return _entry_stat(os.stat(path))

    def lstat(self, path: str) -> EntryStat:
        return _entry_stat(os.lstat(path))

    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def realpath(self, path: str) -> str:
        return os.path.realpath(path)

    def list_dir(self, path: str) -> List[str]:
        with os.scandir(path) as it:
            return [entry.name for entry in it]

    def open_read(self, path: str) -> BinaryIO:
        return open(path, "rb")

    def make_dir(self, path: str) -> None:
        os.mkdir(path)

    def make_dirs(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

    def remove_file(self, path: str) -> None:
        os.unlink(path)

    def remove_dir(self, path: str) -> None:
        os.rmdir(path)

    def copy_stream(self, src: BinaryIO, path: str) -> None:
        with open(path, "wb") as dst:
            shutil.copyfileobj(src, dst, 64 * 1024)
